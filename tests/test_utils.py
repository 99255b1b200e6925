import csv

import pytest

from uniform_fit.measurement_engine import MeasurementSet
from uniform_fit.size_matcher import RecommendationResult
from uniform_fit.utils import Timer, load_results, save_results


@pytest.fixture
def result():
    return RecommendationResult(top_size="Medium", bottom_size="Size 8", top_entry=None,
                                bottom_entry=None, confidence_top=96.0, confidence_bottom=97.0)


@pytest.fixture
def measurements():
    return MeasurementSet(shoulder_cm=20.0, chest_cm=26.0, hip_cm=17.5, torso_length_cm=50.0,
                          pixel_height=300.0, detected=True)


def test_save_and_load_json(tmp_path, result, measurements):
    path = save_results(result, measurements, str(tmp_path / "out" / "rec.json"),
                        profile={'gender': 'Boys'})

    data = load_results(str(path))
    assert data['recommendation']['top_size'] == "Medium"
    assert data['measurements']['chest_cm'] == 26.0
    assert data['profile'] == {'gender': 'Boys'}


def test_save_and_load_yaml(tmp_path, result):
    path = save_results(result, None, str(tmp_path / "rec.yaml"))

    data = load_results(str(path))
    assert data['recommendation']['confidence_bottom'] == 97.0
    assert data['measurements'] is None


def test_save_csv(tmp_path, result, measurements):
    path = save_results(result, measurements, str(tmp_path / "rec.csv"))

    with open(path, newline='') as f:
        rows = dict(csv.reader(f))
    assert rows['Top Size'] == "Medium"
    assert rows['Chest Cm'] == "26.0"

    with pytest.raises(ValueError):
        load_results(str(path))


def test_unknown_extension_written_as_json(tmp_path, result):
    path = save_results(result, None, str(tmp_path / "rec.txt"))
    assert path.suffix == ".json"
    assert load_results(str(path))['recommendation']['bottom_size'] == "Size 8"


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_results(str(tmp_path / "missing.json"))


def test_timer_measures_duration():
    with Timer("noop") as timer:
        pass
    assert timer.duration >= 0.0
