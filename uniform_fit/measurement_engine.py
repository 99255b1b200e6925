"""
Measurement Estimation Engine
=============================

Derives centimetre-scale body measurements from one validated pose and the
user's declared height. The declared height sets the pixel-to-cm scale;
widths are measured between paired keypoints and converted with that scale.
Gaps in chest and hip are filled from grade/gender defaults.
"""

import math
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from .config import DEFAULT_ROW, EstimationConfig, FallbackConfig, Gender
from .exceptions import ScaleUndefinedError
from .keypoints import BodyKeypoints, Pose


@dataclass
class MeasurementSet:
    """Body measurements for one capture phase"""
    shoulder_cm: Optional[float] = None
    chest_cm: Optional[float] = None
    hip_cm: Optional[float] = None
    torso_length_cm: Optional[float] = None
    pixel_height: Optional[float] = None
    detected: bool = False
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def distance(a: Optional[np.ndarray], b: Optional[np.ndarray]) -> Optional[float]:
    """Euclidean distance, None when either point is missing"""
    if a is None or b is None:
        return None
    return float(np.linalg.norm(a - b))


def midpoint(a: Optional[np.ndarray], b: Optional[np.ndarray]) -> Optional[np.ndarray]:
    """Midpoint of two points, None when either is missing"""
    if a is None or b is None:
        return None
    return (a + b) / 2.0


def mid_ankle(body: BodyKeypoints) -> Optional[np.ndarray]:
    """Midpoint of both ankles, or whichever single ankle is visible"""
    if body.left_ankle is not None and body.right_ankle is not None:
        return midpoint(body.left_ankle, body.right_ankle)
    if body.left_ankle is not None:
        return body.left_ankle
    return body.right_ankle


def compute_cm_per_pixel(reference_height_cm: Optional[float], pixel_height: Optional[float]) -> float:
    """
    Scale factor from pixels to centimetres.

    Raises:
        ScaleUndefinedError: height missing/non-finite/non-positive, or no pixel height
    """

    if reference_height_cm is None or not math.isfinite(reference_height_cm) or reference_height_cm <= 0:
        raise ScaleUndefinedError(f"Invalid reference height: {reference_height_cm}")
    if pixel_height is None or not math.isfinite(pixel_height) or pixel_height <= 0:
        raise ScaleUndefinedError(f"Invalid pixel height: {pixel_height}")
    return reference_height_cm / pixel_height


def correct_chest_outlier(chest_cm: Optional[float], shoulder_cm: Optional[float],
                          config: Optional[EstimationConfig] = None) -> Optional[float]:
    """
    Replace anatomically implausible chest estimates.

    A chest below ``chest_min_ratio`` x shoulder becomes ``chest_low_replacement``
    x shoulder; one above ``chest_max_ratio`` x shoulder becomes
    ``chest_high_replacement`` x shoulder. Both replacements lie inside the
    bounds, so applying the correction twice changes nothing.
    """

    if chest_cm is None or shoulder_cm is None:
        return chest_cm

    config = config or EstimationConfig()
    if chest_cm < config.chest_min_ratio * shoulder_cm:
        return config.chest_low_replacement * shoulder_cm
    if chest_cm > config.chest_max_ratio * shoulder_cm:
        return config.chest_high_replacement * shoulder_cm
    return chest_cm


def _lookup(table: Dict[str, Any], grade_level: str, gender: Union[Gender, str]) -> Dict[str, Any]:
    gender_key = gender.value if isinstance(gender, Gender) else str(gender)
    row = table.get(grade_level)
    if isinstance(row, dict) and gender_key in row:
        return row[gender_key]
    return table[DEFAULT_ROW]


class FallbackMeasurementProvider:
    """Grade/gender default chest and hip measurements"""

    def __init__(self, config: Optional[FallbackConfig] = None):
        self.config = config or FallbackConfig()
        self.logger = logging.getLogger(__name__)

    def defaults(self, grade_level: str, gender: Union[Gender, str]) -> Tuple[float, float]:
        """Default (chest_cm, hip_cm) for a grade/gender pair"""
        row = _lookup(self.config.measurements, grade_level, gender)
        return float(row['chest']), float(row['hip'])

    def measurement_set(self, grade_level: str, gender: Union[Gender, str],
                        reference_height_cm: Optional[float] = None) -> MeasurementSet:
        """Complete stand-in measurement set when no pose could be used"""
        row = _lookup(self.config.whole_set_measurements, grade_level, gender)
        chest, hip = float(row['chest']), float(row['hip'])

        if reference_height_cm:
            torso = reference_height_cm * self.config.torso_from_height
        else:
            torso = self.config.default_torso_length_cm

        self.logger.warning(f"Using fallback measurements for {grade_level} / {gender}")

        return MeasurementSet(
            shoulder_cm=round(chest * self.config.shoulder_from_chest, 1),
            chest_cm=chest,
            hip_cm=hip,
            torso_length_cm=round(torso, 1),
            pixel_height=None,
            detected=False,
            is_fallback=True,
        )


class MeasurementEstimator:
    """Turns a validated pose plus reference height into a MeasurementSet"""

    def __init__(self, config: Optional[EstimationConfig] = None,
                 fallback: Optional[FallbackMeasurementProvider] = None):
        self.config = config or EstimationConfig()
        self.fallback = fallback or FallbackMeasurementProvider()
        self.logger = logging.getLogger(__name__)

    def pixel_height(self, body: BodyKeypoints) -> Optional[float]:
        """Body height in pixels: nose to mid-ankle, else scaled shoulder to ankle"""

        height = distance(body.nose, mid_ankle(body))
        if height is not None:
            return height

        shoulder_ankle = distance(body.left_shoulder, body.left_ankle)
        if shoulder_ankle is not None:
            self.logger.info("Nose or ankles missing; estimating height from left shoulder to ankle")
            return shoulder_ankle * self.config.height_from_shoulder_ankle

        return None

    def estimate(self, pose: Pose, reference_height_cm: Optional[float],
                 gender: Union[Gender, str], grade_level: str) -> MeasurementSet:
        """
        Estimate body measurements for one capture.

        Args:
            pose: Validated pose
            reference_height_cm: User-declared height; None leaves the scale undefined
            gender: Catalog gender, used for default substitution
            grade_level: Grade band, used for default substitution

        Returns:
            MeasurementSet with cm values rounded to ``precision_digits``
        """

        cfg = self.config
        body = BodyKeypoints.from_pose(pose, cfg.keypoint_score_threshold)

        pixel_height = self.pixel_height(body)

        try:
            cm_per_pixel = compute_cm_per_pixel(reference_height_cm, pixel_height)
        except ScaleUndefinedError as e:
            self.logger.warning(f"Scale undefined, cm measurements unavailable: {e}")
            cm_per_pixel = None

        def to_cm(value_px: Optional[float]) -> Optional[float]:
            if value_px is None or cm_per_pixel is None:
                return None
            return value_px * cm_per_pixel

        shoulder_px = distance(body.left_shoulder, body.right_shoulder)
        hip_px = distance(body.left_hip, body.right_hip)
        chest_px = shoulder_px * cfg.chest_from_shoulder if shoulder_px is not None else None
        torso_px = distance(midpoint(body.left_shoulder, body.right_shoulder),
                            midpoint(body.left_hip, body.right_hip))

        shoulder_cm = to_cm(shoulder_px)
        chest_cm = correct_chest_outlier(to_cm(chest_px), shoulder_cm, cfg)
        hip_cm = to_cm(hip_px)
        torso_cm = to_cm(torso_px)

        if chest_cm is None or hip_cm is None:
            default_chest, default_hip = self.fallback.defaults(grade_level, gender)
            if chest_cm is None:
                self.logger.warning(f"Chest not measurable, using default {default_chest} cm")
                chest_cm = default_chest
            if hip_cm is None:
                self.logger.warning(f"Hip not measurable, using default {default_hip} cm")
                hip_cm = default_hip

        digits = cfg.precision_digits

        def rounded(value: Optional[float]) -> Optional[float]:
            return round(value, digits) if value is not None else None

        result = MeasurementSet(
            shoulder_cm=rounded(shoulder_cm),
            chest_cm=rounded(chest_cm),
            hip_cm=rounded(hip_cm),
            torso_length_cm=rounded(torso_cm),
            pixel_height=pixel_height,
            detected=shoulder_px is not None,
        )

        self.logger.info(f"Measurements (cm): shoulder={result.shoulder_cm} chest={result.chest_cm} "
                         f"hip={result.hip_cm} torso={result.torso_length_cm} "
                         f"pixel_height={pixel_height} detected={result.detected}")
        return result
