"""
Uniform fit engine: body measurement estimation from pose keypoints and
school uniform size recommendation.
"""

from .config import EngineConfig, Gender, GradeLevel, ScanPhase, get_config, load_config_from_file
from .catalog import CatalogEntry, InMemoryCatalogStore, HttpCatalogStore, SizeSpec, create_catalog_store
from .keypoints import BodyKeypoints, Keypoint, denormalize_pose, parse_pose, validate_pose
from .measurement_engine import FallbackMeasurementProvider, MeasurementEstimator, MeasurementSet
from .profile import UserProfile, parse_height_to_cm
from .session import CaptureEvent, CaptureOutcome, ScanSession, SessionStatus, SessionStore
from .size_matcher import RecommendationFallbackProvider, RecommendationResult, SizeMatcher

__version__ = "1.0.0"
