import pytest

from uniform_fit.catalog import CatalogEntry, InMemoryCatalogStore, SizeSpec
from uniform_fit.config import EngineConfig, Gender
from uniform_fit.keypoints import Keypoint
from uniform_fit.profile import UserProfile


def make_pose(overrides=None, drop=()):
    """Standing pose: shoulders 40px apart, hips 35px, nose to mid-ankle 300px"""
    points = {
        'nose': (100.0, 0.0, 0.9),
        'left_shoulder': (120.0, 50.0, 0.9),
        'right_shoulder': (80.0, 50.0, 0.9),
        'left_hip': (117.5, 150.0, 0.9),
        'right_hip': (82.5, 150.0, 0.9),
        'left_ankle': (110.0, 300.0, 0.9),
        'right_ankle': (90.0, 300.0, 0.9),
    }
    points.update(overrides or {})
    return [Keypoint(name, x, y, score) for name, (x, y, score) in points.items() if name not in drop]


def weak_pose():
    """Only three confident keypoints"""
    return make_pose({
        'left_hip': (117.5, 150.0, 0.1),
        'right_hip': (82.5, 150.0, 0.1),
        'left_ankle': (110.0, 300.0, 0.05),
        'right_ankle': (90.0, 300.0, 0.0),
    })


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def profile():
    return UserProfile(gender=Gender.BOYS, grade_level="Elementary", reference_height_cm=150.0)


@pytest.fixture
def catalog():
    return InMemoryCatalogStore([
        CatalogEntry(category="Polo", gender="Boys", grade_level="Elementary", id="polo",
                     sizes={"Small": SizeSpec(chest=20.0), "Medium": SizeSpec(chest=26.0),
                            "Large": SizeSpec(chest=32.0)}),
        CatalogEntry(category="Blouse", gender="Girls", grade_level="Elementary", id="blouse",
                     sizes={"Small": SizeSpec(chest=26.0)}),
        CatalogEntry(category="Pants", gender="Unisex", grade_level="Elementary", id="pants",
                     sizes={"Size 6": SizeSpec(hips=15.0), "Size 8": SizeSpec(hips=19.0)}),
    ])
