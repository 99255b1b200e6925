"""
Configuration Management for the Uniform Fit Engine
===================================================

Dataclass configuration sections for pose estimation, catalog matching,
grade/gender fallback tables, catalog access and the HTTP service.
"""

import os
import yaml
import json
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field, asdict
from enum import Enum


class Gender(Enum):
    """Catalog gender partitions"""
    BOYS = "Boys"
    GIRLS = "Girls"
    UNISEX = "Unisex"


class GradeLevel(Enum):
    """School grade bands used by the uniform catalog"""
    KINDERGARTEN = "Kindergarten"
    ELEMENTARY = "Elementary"
    JUNIOR_HIGH = "Junior High"


class ScanPhase(Enum):
    """Capture stages within one session"""
    FRONT = "front"
    SIDE = "side"


class GarmentClass(Enum):
    """Independent size-matching partitions"""
    TOP = "top"
    BOTTOM = "bottom"


# Escalated positioning guidance is shown on this many consecutive
# insufficient captures. Fixed contract, not part of the loaded config.
RETRY_THRESHOLD = 3

DEFAULT_ROW = "default"


@dataclass
class EstimationConfig:
    """Pose validation and measurement estimation parameters"""
    keypoint_score_threshold: float = 0.2
    min_valid_keypoints: int = 4

    # Empirical multipliers
    height_from_shoulder_ankle: float = 1.3
    chest_from_shoulder: float = 1.3

    # Chest outlier correction, as ratios of shoulder width
    chest_min_ratio: float = 0.8
    chest_max_ratio: float = 2.0
    chest_low_replacement: float = 1.2
    chest_high_replacement: float = 1.5

    precision_digits: int = 1

    # Frame size used when a detector reports normalized coordinates
    frame_size: tuple = (640, 480)


@dataclass
class MatchingConfig:
    """Catalog matching configuration"""
    top_categories: List[str] = field(default_factory=lambda: [
        "Polo", "Blouse", "PE_Shirt", "Full_Uniform", "Full_PE"
    ])
    bottom_categories: List[str] = field(default_factory=lambda: [
        "Pants", "Skirt", "Short", "PE_Pants"
    ])

    confidence_floor: float = 80.0
    confidence_ceiling: float = 100.0
    penalty_per_cm: float = 2.0
    fallback_confidence: float = 75.0


@dataclass
class FallbackConfig:
    """Grade/gender default tables"""
    measurements: Dict[str, Any] = field(default_factory=lambda: {
        "Kindergarten": {
            "Boys": {"chest": 60.0, "hip": 65.0},
            "Girls": {"chest": 60.0, "hip": 65.0},
        },
        "Elementary": {
            "Boys": {"chest": 65.0, "hip": 70.0},
            "Girls": {"chest": 65.0, "hip": 70.0},
        },
        "Junior High": {
            "Boys": {"chest": 75.0, "hip": 80.0},
            "Girls": {"chest": 70.0, "hip": 85.0},
        },
        DEFAULT_ROW: {"chest": 65.0, "hip": 75.0},
    })

    # Stand-in set when no pose could be used at all
    whole_set_measurements: Dict[str, Any] = field(default_factory=lambda: {
        "Kindergarten": {
            "Boys": {"chest": 60.0, "hip": 64.0},
            "Girls": {"chest": 58.0, "hip": 62.0},
        },
        "Elementary": {
            "Boys": {"chest": 68.0, "hip": 72.0},
            "Girls": {"chest": 65.0, "hip": 70.0},
        },
        "Junior High": {
            "Boys": {"chest": 80.0, "hip": 82.0},
            "Girls": {"chest": 75.0, "hip": 85.0},
        },
        DEFAULT_ROW: {"chest": 70.0, "hip": 75.0},
    })

    sizes: Dict[str, Any] = field(default_factory=lambda: {
        "Kindergarten": {
            "Boys": {"top": "Small", "bottom": "Size 6"},
            "Girls": {"top": "Small", "bottom": "Size 6"},
        },
        "Elementary": {
            "Boys": {"top": "Medium", "bottom": "Size 8"},
            "Girls": {"top": "Medium", "bottom": "Size 8"},
        },
        "Junior High": {
            "Boys": {"top": "Large", "bottom": "Size 11"},
            "Girls": {"top": "Medium", "bottom": "Size 10"},
        },
        DEFAULT_ROW: {"top": "Medium", "bottom": "Size 8"},
    })

    shoulder_from_chest: float = 0.9
    torso_from_height: float = 0.5
    default_torso_length_cm: float = 40.0


@dataclass
class CatalogConfig:
    """Catalog store access"""
    source: Optional[str] = None      # YAML/JSON file
    base_url: Optional[str] = None    # HTTP catalog service
    timeout_seconds: float = 10.0


@dataclass
class ServiceConfig:
    """HTTP service and runtime settings"""
    host: str = "0.0.0.0"
    port: int = 5000
    session_ttl_seconds: int = 900
    max_content_length_mb: int = 16
    allowed_image_extensions: List[str] = field(default_factory=lambda: [
        "png", "jpg", "jpeg", "bmp", "webp"
    ])
    log_level: str = "INFO"
    log_file: Optional[str] = None


SECTIONS = ['estimation', 'matching', 'fallback', 'catalog', 'service']


class EngineConfig:
    """Configuration container for the estimation and recommendation engine"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path

        self.estimation = EstimationConfig()
        self.matching = MatchingConfig()
        self.fallback = FallbackConfig()
        self.catalog = CatalogConfig()
        self.service = ServiceConfig()

        if config_path and os.path.exists(config_path):
            self.load_config(config_path)

        self._validate_config()

    def _validate_config(self):
        """Validate configuration settings"""

        est = self.estimation
        if not 0.0 <= est.keypoint_score_threshold <= 1.0:
            raise ValueError(f"Invalid keypoint score threshold: {est.keypoint_score_threshold}")
        if est.min_valid_keypoints < 1:
            raise ValueError("min_valid_keypoints must be at least 1")
        if est.chest_min_ratio >= est.chest_max_ratio:
            raise ValueError("Invalid chest outlier bounds")
        if not est.chest_min_ratio <= est.chest_low_replacement <= est.chest_max_ratio:
            raise ValueError("chest_low_replacement must lie within the outlier bounds")
        if not est.chest_min_ratio <= est.chest_high_replacement <= est.chest_max_ratio:
            raise ValueError("chest_high_replacement must lie within the outlier bounds")

        match = self.matching
        if match.confidence_floor > match.confidence_ceiling:
            raise ValueError("Confidence floor above ceiling")
        overlap = set(match.top_categories) & set(match.bottom_categories)
        if overlap:
            raise ValueError(f"Categories listed as both top and bottom: {sorted(overlap)}")

        for table_name in ('measurements', 'whole_set_measurements', 'sizes'):
            table = getattr(self.fallback, table_name)
            if DEFAULT_ROW not in table:
                raise ValueError(f"Fallback {table_name} table needs a '{DEFAULT_ROW}' row")

        if self.catalog.timeout_seconds <= 0:
            raise ValueError("Catalog timeout must be positive")
        if self.service.session_ttl_seconds <= 0:
            raise ValueError("Session TTL must be positive")

    def load_config(self, config_path: str):
        """Load configuration from file"""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if config_path.suffix.lower() in ['.yaml', '.yml']:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        elif config_path.suffix.lower() == '.json':
            with open(config_path, 'r') as f:
                config_data = json.load(f)
        else:
            raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

        for section_name, section_data in config_data.items():
            if section_name in SECTIONS and isinstance(section_data, dict):
                self._update_config_section(section_name, section_data)

    def _update_config_section(self, section_name: str, config_data: Dict[str, Any]):
        """Update a configuration section"""
        section = getattr(self, section_name)

        for key, value in config_data.items():
            if hasattr(section, key):
                current_value = getattr(section, key)
                if isinstance(current_value, dict) and isinstance(value, dict):
                    current_value.update(value)
                elif isinstance(current_value, tuple) and isinstance(value, list):
                    setattr(section, key, tuple(value))
                else:
                    setattr(section, key, value)

    def save_config(self, config_path: str):
        """Save configuration to file"""
        config_data = self.to_dict()
        config_path = Path(config_path)

        if config_path.suffix.lower() in ['.yaml', '.yml']:
            with open(config_path, 'w') as f:
                yaml.safe_dump(config_data, f, default_flow_style=False, indent=2)
        elif config_path.suffix.lower() == '.json':
            with open(config_path, 'w') as f:
                json.dump(config_data, f, indent=2)
        else:
            raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        data = {name: asdict(getattr(self, name)) for name in SECTIONS}
        # Tuples do not survive safe_dump
        data['estimation']['frame_size'] = list(self.estimation.frame_size)
        return data

    def __str__(self) -> str:
        return f"EngineConfig(threshold={self.estimation.keypoint_score_threshold}, " \
               f"catalog={self.catalog.source or self.catalog.base_url or 'none'})"

    def __repr__(self) -> str:
        return self.__str__()


_global_config = None


def get_config() -> EngineConfig:
    """Get global configuration instance"""
    global _global_config
    if _global_config is None:
        _global_config = EngineConfig()
    return _global_config


def set_config(config: EngineConfig):
    """Set global configuration instance"""
    global _global_config
    _global_config = config


def load_config_from_file(config_path: str) -> EngineConfig:
    """Load configuration from file and set as global"""
    config = EngineConfig(config_path)
    set_config(config)
    return config
