"""
Scan Session Orchestration
==========================

Two-phase (front, side) capture state machine. Each capture runs pose
validation and measurement estimation; the side capture triggers catalog
matching on the front-phase measurements. Every failure path ends in a
defined outcome so the user always receives some recommendation.
"""

import time
import uuid
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .catalog import CatalogStore
from .config import RETRY_THRESHOLD, EngineConfig, ScanPhase, get_config
from .exceptions import (
    CaptureError,
    CaptureInProgressError,
    InsufficientKeypointsError,
    NoPoseDetectedError,
    SessionNotFoundError,
    SessionStateError,
)
from .keypoints import Pose, validate_pose
from .measurement_engine import FallbackMeasurementProvider, MeasurementEstimator, MeasurementSet
from .profile import UserProfile
from .size_matcher import RecommendationFallbackProvider, RecommendationResult, SizeMatcher

GUIDANCE_MESSAGE = "Please ensure your full body is visible in the frame."
ESCALATED_GUIDANCE_MESSAGE = (
    "Having trouble? Try these tips:\n"
    "1. Stand 2-3 meters away\n"
    "2. Ensure good lighting\n"
    "3. Face the camera directly\n"
    "4. Arms slightly away from body"
)
FRONT_COMPLETE_MESSAGE = "Great! Now turn sideways for the side view."
RECOMMENDATION_READY_MESSAGE = "Your recommended sizes are ready."
ESTIMATED_SIZES_MESSAGE = "Proceeding with estimated sizes based on your grade level."


class SessionStatus(Enum):
    PREPARE = "prepare"
    WAITING = "waiting"
    CAPTURING = "capturing"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class CaptureEvent(Enum):
    RETRY = "retry"
    PHASE_COMPLETE = "phase_complete"
    COMPLETED = "completed"
    FALLBACK = "fallback"
    DISCARDED = "discarded"


@dataclass
class CaptureOutcome:
    """What one capture attempt produced and what the user should see"""
    event: CaptureEvent
    phase: ScanPhase
    message: str = ""
    escalated: bool = False
    finished: bool = False
    measurements: Optional[MeasurementSet] = None
    recommendation: Optional[RecommendationResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event': self.event.value,
            'phase': self.phase.value,
            'message': self.message,
            'escalated': self.escalated,
            'finished': self.finished,
            'measurements': self.measurements.to_dict() if self.measurements else None,
            'recommendation': self.recommendation.to_dict() if self.recommendation else None,
        }


class ScanSession:
    """One user's front/side scan, from detector load to recommendation"""

    def __init__(self, profile: UserProfile, catalog: CatalogStore,
                 config: Optional[EngineConfig] = None, detector=None,
                 session_id: Optional[str] = None,
                 detector_factory: Optional[Callable[[], Any]] = None):
        self.id = session_id or uuid.uuid4().hex
        self.profile = profile
        self.config = config or get_config()

        # A factory-built detector belongs to this session alone and is
        # closed once the session finishes
        self.detector = detector
        self.detector_factory = detector_factory
        self._owns_detector = False

        measurement_fallback = FallbackMeasurementProvider(self.config.fallback)
        self.measurement_fallback = measurement_fallback
        self.estimator = MeasurementEstimator(self.config.estimation, measurement_fallback)
        self.size_fallback = RecommendationFallbackProvider(self.config.fallback, self.config.matching)
        self.matcher = SizeMatcher(catalog, self.config.matching, self.size_fallback)

        self.status = SessionStatus.PREPARE
        self.scan_phase = ScanPhase.FRONT
        self.retry_count = 0
        self.front_measurements: Optional[MeasurementSet] = None
        self.side_measurements: Optional[MeasurementSet] = None
        self.result: Optional[RecommendationResult] = None
        self.fallback_result: Optional[RecommendationResult] = None

        self._capture_lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    @property
    def finished(self) -> bool:
        return self.status in (SessionStatus.COMPLETED, SessionStatus.ABANDONED)

    def mark_ready(self):
        """Detector and camera are ready; start accepting captures"""
        if self.status is SessionStatus.PREPARE:
            self.status = SessionStatus.WAITING
            self.logger.info(f"Session {self.id} ready for {self.scan_phase.value} capture")
        elif self.status is not SessionStatus.WAITING:
            raise SessionStateError(f"Session {self.id} cannot become ready from {self.status.value}")

    def abandon(self):
        """Tear down the session; a capture still in flight is discarded when it returns"""
        if self.status is not SessionStatus.COMPLETED:
            self.status = SessionStatus.ABANDONED
            self.logger.info(f"Session {self.id} abandoned")
            if not self._capture_lock.locked():
                self._release_detector()

    def capture(self, source, load: Optional[Callable[[Any], Any]] = None) -> CaptureOutcome:
        """
        Run the detector on a still image for the current phase.

        Args:
            source: Image array, or whatever ``load`` turns into one
            load: Optional loader (file path or upload bytes to RGB array)

        Loader, detector construction and detection failures all end in the
        estimated-sizes outcome instead of propagating.
        """
        if self.detector is None and self.detector_factory is None:
            raise SessionStateError("No pose detector attached to this session")

        def acquire():
            try:
                detector = self._ensure_detector()
                image = load(source) if load is not None else source
                return detector.estimate_pose(image)
            except Exception as e:
                raise CaptureError(f"Capture failed: {e}") from e

        return self._run_capture(acquire)

    def _ensure_detector(self):
        if self.detector is None:
            self.detector = self.detector_factory()
            self._owns_detector = True
        return self.detector

    def _release_detector(self):
        if self._owns_detector and self.detector is not None:
            close = getattr(self.detector, 'close', None)
            if close is not None:
                close()
            self.detector = None
            self._owns_detector = False

    def submit_pose(self, pose: Optional[Pose]) -> CaptureOutcome:
        """Process a pose produced by an external detector for the current phase"""
        return self._run_capture(lambda: pose)

    def _begin_capture(self):
        if not self._capture_lock.acquire(blocking=False):
            raise CaptureInProgressError(f"Session {self.id} is already capturing")
        if self.status is not SessionStatus.WAITING:
            self._capture_lock.release()
            raise SessionStateError(f"Session {self.id} cannot capture while {self.status.value}")
        self.status = SessionStatus.CAPTURING

    def _run_capture(self, acquire: Callable[[], Optional[Pose]]) -> CaptureOutcome:
        self._begin_capture()
        phase = self.scan_phase

        try:
            try:
                measurements = self._measure(acquire())
            except InsufficientKeypointsError as e:
                if self.status is SessionStatus.ABANDONED:
                    return CaptureOutcome(CaptureEvent.DISCARDED, phase, finished=True)
                return self._insufficient(phase, e)
            except Exception as e:
                if self.status is SessionStatus.ABANDONED:
                    return CaptureOutcome(CaptureEvent.DISCARDED, phase, finished=True)
                return self._capture_failed(phase, e)

            if self.status is SessionStatus.ABANDONED:
                self.logger.info(f"Discarding {phase.value} capture for abandoned session {self.id}")
                return CaptureOutcome(CaptureEvent.DISCARDED, phase, finished=True)

            if phase is ScanPhase.FRONT:
                self.front_measurements = measurements
                self.scan_phase = ScanPhase.SIDE
                self.status = SessionStatus.WAITING
                self.logger.info(f"Session {self.id} front scan complete")
                return CaptureOutcome(CaptureEvent.PHASE_COMPLETE, phase,
                                      message=FRONT_COMPLETE_MESSAGE, measurements=measurements)

            self.side_measurements = measurements
            return self._analyze()
        finally:
            if self.finished:
                self._release_detector()
            self._capture_lock.release()

    def _measure(self, pose: Optional[Pose]) -> MeasurementSet:
        est = self.config.estimation
        profile = self.profile

        try:
            validate_pose(pose, est.keypoint_score_threshold, est.min_valid_keypoints)
        except NoPoseDetectedError:
            self.logger.warning(f"No pose detected in {self.scan_phase.value} capture")
            return self.measurement_fallback.measurement_set(
                profile.grade_level, profile.gender, profile.reference_height_cm)

        self.retry_count = 0
        return self.estimator.estimate(pose, profile.reference_height_cm, profile.gender, profile.grade_level)

    def _insufficient(self, phase: ScanPhase, error: InsufficientKeypointsError) -> CaptureOutcome:
        self.retry_count += 1
        escalated = self.retry_count >= RETRY_THRESHOLD
        self.logger.warning(f"Session {self.id} {phase.value} capture rejected "
                            f"({error.valid_count} keypoints), attempt {self.retry_count}")

        if phase is ScanPhase.SIDE:
            # Side view is not consumed by matching; proceed instead of retrying
            profile = self.profile
            self.side_measurements = self.measurement_fallback.measurement_set(
                profile.grade_level, profile.gender, profile.reference_height_cm)
            return self._analyze()

        self.status = SessionStatus.WAITING
        return CaptureOutcome(
            CaptureEvent.RETRY, phase,
            message=ESCALATED_GUIDANCE_MESSAGE if escalated else GUIDANCE_MESSAGE,
            escalated=escalated,
        )

    def _capture_failed(self, phase: ScanPhase, error: Exception) -> CaptureOutcome:
        self.logger.error(f"Session {self.id} {phase.value} capture failed: {error}")
        profile = self.profile
        recommendation = self.size_fallback.recommend(profile.grade_level, profile.gender)

        if phase is ScanPhase.FRONT:
            self.fallback_result = recommendation
            self.status = SessionStatus.WAITING
            return CaptureOutcome(CaptureEvent.FALLBACK, phase, message=ESTIMATED_SIZES_MESSAGE,
                                  recommendation=recommendation)

        self.result = recommendation
        self.status = SessionStatus.COMPLETED
        return CaptureOutcome(CaptureEvent.FALLBACK, phase, message=ESTIMATED_SIZES_MESSAGE,
                              finished=True, recommendation=recommendation)

    def _analyze(self) -> CaptureOutcome:
        self.status = SessionStatus.ANALYZING
        profile = self.profile

        # Only the front-phase measurements drive matching
        try:
            result = self.matcher.recommend(self.front_measurements, profile.gender, profile.grade_level)
        except Exception as e:
            self.logger.error(f"Session {self.id} analysis failed: {e}")
            result = self.size_fallback.recommend(profile.grade_level, profile.gender)

        if self.status is SessionStatus.ABANDONED:
            return CaptureOutcome(CaptureEvent.DISCARDED, ScanPhase.SIDE, finished=True)

        self.result = result
        self.status = SessionStatus.COMPLETED
        self.logger.info(f"Session {self.id} complete: top={result.top_size} bottom={result.bottom_size}")

        return CaptureOutcome(
            CaptureEvent.COMPLETED, ScanPhase.SIDE,
            message=ESTIMATED_SIZES_MESSAGE if result.is_fallback else RECOMMENDATION_READY_MESSAGE,
            finished=True,
            measurements=self.side_measurements,
            recommendation=result,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'status': self.status.value,
            'scan_phase': self.scan_phase.value,
            'retry_count': self.retry_count,
            'profile': self.profile.to_dict(),
            'front_measurements': self.front_measurements.to_dict() if self.front_measurements else None,
            'side_measurements': self.side_measurements.to_dict() if self.side_measurements else None,
            'recommendation': self.result.to_dict() if self.result else None,
        }


class SessionStore:
    """Session-keyed store; entries expire a fixed TTL after creation"""

    def __init__(self, ttl_seconds: float = 900, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._sessions: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def add(self, session: ScanSession) -> ScanSession:
        with self._lock:
            self._sessions[session.id] = (session, self.clock() + self.ttl_seconds)
        return session

    def get(self, session_id: str) -> ScanSession:
        with self._lock:
            item = self._sessions.get(session_id)
            if item is None:
                raise SessionNotFoundError(f"Unknown session: {session_id}")
            session, expires_at = item
            if self.clock() >= expires_at:
                del self._sessions[session_id]
                session.abandon()
                self.logger.info(f"Session {session_id} expired")
                raise SessionNotFoundError(f"Session expired: {session_id}")
            return session

    def remove(self, session_id: str) -> ScanSession:
        with self._lock:
            item = self._sessions.pop(session_id, None)
        if item is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        session = item[0]
        session.abandon()
        return session

    def purge_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [sid for sid, (_, expires_at) in self._sessions.items() if now >= expires_at]
            for sid in expired:
                self._sessions.pop(sid)[0].abandon()
        if expired:
            self.logger.info(f"Purged {len(expired)} expired sessions")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
