import math

import pytest

from uniform_fit.config import EstimationConfig, FallbackConfig, Gender
from uniform_fit.exceptions import ScaleUndefinedError
from uniform_fit.keypoints import BodyKeypoints
from uniform_fit.measurement_engine import (
    FallbackMeasurementProvider,
    MeasurementEstimator,
    compute_cm_per_pixel,
    correct_chest_outlier,
)

from conftest import make_pose


@pytest.fixture
def estimator():
    return MeasurementEstimator()


def test_front_pose_measurements(estimator):
    result = estimator.estimate(make_pose(), 150.0, Gender.BOYS, "Elementary")

    assert result.pixel_height == pytest.approx(300.0)
    assert result.shoulder_cm == 20.0
    assert result.chest_cm == 26.0
    assert result.hip_cm == 17.5
    assert result.torso_length_cm == 50.0
    assert result.detected is True
    assert result.is_fallback is False


def test_missing_right_shoulder_uses_default_chest(estimator):
    pose = make_pose({'right_shoulder': (80.0, 50.0, 0.1)})
    result = estimator.estimate(pose, 150.0, Gender.BOYS, "Elementary")

    assert result.shoulder_cm is None
    assert result.chest_cm == 65.0
    assert result.hip_cm == 17.5
    assert result.torso_length_cm is None
    assert result.detected is False


def test_pixel_height_uses_nose_to_mid_ankle_when_available(estimator):
    body = BodyKeypoints.from_pose(make_pose())
    assert estimator.pixel_height(body) == pytest.approx(300.0)


def test_pixel_height_single_ankle(estimator):
    body = BodyKeypoints.from_pose(make_pose(drop=('right_ankle',)))
    assert estimator.pixel_height(body) == pytest.approx(math.hypot(10.0, 300.0))


def test_pixel_height_falls_back_to_shoulder_ankle(estimator):
    body = BodyKeypoints.from_pose(make_pose(drop=('nose',)))
    expected = math.hypot(10.0, 250.0) * 1.3
    assert estimator.pixel_height(body) == pytest.approx(expected)


def test_pixel_height_undefined_without_usable_path(estimator):
    pose = make_pose(drop=('nose', 'left_ankle'))
    result = estimator.estimate(pose, 150.0, Gender.GIRLS, "Junior High")

    assert result.pixel_height is None
    assert result.shoulder_cm is None
    assert result.torso_length_cm is None
    # Junior High girls defaults
    assert result.chest_cm == 70.0
    assert result.hip_cm == 85.0
    assert result.detected is True


def test_missing_height_leaves_scale_undefined(estimator):
    result = estimator.estimate(make_pose(), None, Gender.BOYS, "Kindergarten")

    assert result.pixel_height == pytest.approx(300.0)
    assert result.shoulder_cm is None
    assert result.chest_cm == 60.0
    assert result.hip_cm == 65.0


@pytest.mark.parametrize("height,pixels", [
    (None, 300.0), (0.0, 300.0), (-5.0, 300.0), (float('nan'), 300.0),
    (150.0, None), (150.0, 0.0),
])
def test_compute_cm_per_pixel_rejects_invalid_inputs(height, pixels):
    with pytest.raises(ScaleUndefinedError):
        compute_cm_per_pixel(height, pixels)


def test_compute_cm_per_pixel():
    assert compute_cm_per_pixel(150.0, 300.0) == 0.5


def test_chest_outlier_correction():
    assert correct_chest_outlier(10.0, 20.0) == pytest.approx(24.0)
    assert correct_chest_outlier(50.0, 20.0) == pytest.approx(30.0)
    assert correct_chest_outlier(30.0, 20.0) == 30.0
    assert correct_chest_outlier(None, 20.0) is None
    assert correct_chest_outlier(30.0, None) == 30.0


@pytest.mark.parametrize("chest", [1.0, 15.9, 16.0, 26.0, 40.0, 40.1, 500.0])
def test_chest_outlier_correction_bounded_and_idempotent(chest):
    shoulder = 20.0
    corrected = correct_chest_outlier(chest, shoulder)
    assert 0.8 * shoulder <= corrected <= 2 * shoulder
    assert correct_chest_outlier(corrected, shoulder) == corrected


def test_estimator_clamps_implausible_chest():
    wide = MeasurementEstimator(EstimationConfig(chest_from_shoulder=2.5))
    assert wide.estimate(make_pose(), 150.0, Gender.BOYS, "Elementary").chest_cm == 30.0

    narrow = MeasurementEstimator(EstimationConfig(chest_from_shoulder=0.5))
    assert narrow.estimate(make_pose(), 150.0, Gender.BOYS, "Elementary").chest_cm == 24.0


def test_fallback_defaults_by_grade_and_gender():
    provider = FallbackMeasurementProvider()
    assert provider.defaults("Kindergarten", Gender.GIRLS) == (60.0, 65.0)
    assert provider.defaults("Junior High", Gender.BOYS) == (75.0, 80.0)
    assert provider.defaults("Junior High", "Girls") == (70.0, 85.0)
    assert provider.defaults("Senior High", Gender.BOYS) == (65.0, 75.0)
    assert provider.defaults("Elementary", Gender.UNISEX) == (65.0, 75.0)


def test_fallback_table_is_configurable():
    table = FallbackConfig().measurements
    table["Elementary"]["Boys"] = {"chest": 66.0, "hip": 71.0}
    provider = FallbackMeasurementProvider(FallbackConfig(measurements=table))
    assert provider.defaults("Elementary", Gender.BOYS) == (66.0, 71.0)


def test_fallback_measurement_set():
    provider = FallbackMeasurementProvider()
    result = provider.measurement_set("Elementary", Gender.BOYS, 150.0)

    assert result.chest_cm == 68.0
    assert result.hip_cm == 72.0
    assert result.shoulder_cm == 61.2
    assert result.torso_length_cm == 75.0
    assert result.detected is False
    assert result.is_fallback is True

    assert provider.measurement_set("Elementary", Gender.BOYS, None).torso_length_cm == 40.0



@pytest.mark.parametrize("grade,gender,expected", [
    ("Kindergarten", Gender.GIRLS, (58.0, 62.0)),
    ("Elementary", Gender.GIRLS, (65.0, 70.0)),
    ("Junior High", Gender.BOYS, (80.0, 82.0)),
    ("Senior High", Gender.GIRLS, (70.0, 75.0)),
])
def test_whole_set_fallback_table_is_gender_split(grade, gender, expected):
    result = FallbackMeasurementProvider().measurement_set(grade, gender, None)
    assert (result.chest_cm, result.hip_cm) == expected
