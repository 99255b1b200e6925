"""
Keypoint Model and Pose Validation
==================================

Poses arrive from the detector as an unordered list of named keypoints.
They are validated once, then folded into a fixed-schema ``BodyKeypoints``
record so the estimator never searches the list by name.
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from .exceptions import InsufficientKeypointsError, NoPoseDetectedError

logger = logging.getLogger(__name__)

DEFAULT_SCORE_THRESHOLD = 0.2
DEFAULT_MIN_KEYPOINTS = 4


@dataclass(frozen=True)
class Keypoint:
    """A named anatomical landmark in image coordinates"""
    name: str
    x: float
    y: float
    score: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'x': self.x, 'y': self.y, 'score': self.score}


Pose = List[Keypoint]


def parse_pose(data: Any) -> Optional[Pose]:
    """
    Build a Pose from detector or JSON output.

    Accepts a list of ``{name, x, y, score}`` dicts (``visibility`` is read
    when ``score`` is absent) or a mapping of ``name -> {x, y, score}``.
    ``None`` or an empty container means no pose was found.
    """

    if not data:
        return None

    if isinstance(data, dict):
        items = [dict(value, name=name) for name, value in data.items()]
    else:
        items = list(data)

    pose = []
    for item in items:
        if isinstance(item, Keypoint):
            pose.append(item)
            continue
        if not isinstance(item, dict):
            raise TypeError(f"Keypoint must be an object, got {type(item).__name__}")
        score = item.get('score', item.get('visibility'))
        pose.append(Keypoint(
            name=str(item['name']),
            x=float(item['x']),
            y=float(item['y']),
            score=float(score) if score is not None else 0.0,
        ))
    return pose


def denormalize_pose(pose: Optional[Pose], frame_size) -> Optional[Pose]:
    """Scale [0, 1] coordinates to a (width, height) pixel frame"""
    if pose is None:
        return None
    width, height = frame_size
    return [Keypoint(kp.name, kp.x * width, kp.y * height, kp.score) for kp in pose]


def count_valid_keypoints(pose: Iterable[Keypoint], threshold: float = DEFAULT_SCORE_THRESHOLD) -> int:
    return sum(1 for kp in pose if kp.score > threshold)


def validate_pose(pose: Optional[Pose],
                  threshold: float = DEFAULT_SCORE_THRESHOLD,
                  min_keypoints: int = DEFAULT_MIN_KEYPOINTS) -> Pose:
    """
    Reject unusable captures.

    Raises:
        NoPoseDetectedError: the detector found nothing
        InsufficientKeypointsError: fewer than ``min_keypoints`` confident keypoints
    """

    if pose is None:
        raise NoPoseDetectedError("No pose detected in capture")

    valid = count_valid_keypoints(pose, threshold)
    if valid < min_keypoints:
        logger.info(f"Only {valid} keypoints above score {threshold}")
        raise InsufficientKeypointsError(valid, min_keypoints)

    logger.debug(f"Pose validated with {valid} keypoints")
    return pose


@dataclass
class BodyKeypoints:
    """Landmarks used for measurement; absent or low-confidence points are None"""
    nose: Optional[np.ndarray] = None
    left_shoulder: Optional[np.ndarray] = None
    right_shoulder: Optional[np.ndarray] = None
    left_hip: Optional[np.ndarray] = None
    right_hip: Optional[np.ndarray] = None
    left_ankle: Optional[np.ndarray] = None
    right_ankle: Optional[np.ndarray] = None

    @classmethod
    def from_pose(cls, pose: Pose, threshold: float = DEFAULT_SCORE_THRESHOLD) -> 'BodyKeypoints':
        wanted = {f.name for f in fields(cls)}
        found = {}
        # Single pass; first confident occurrence of a name wins
        for kp in pose:
            if kp.name in wanted and kp.name not in found and kp.score > threshold:
                found[kp.name] = kp.as_array()
        return cls(**found)

    def present(self) -> List[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]
