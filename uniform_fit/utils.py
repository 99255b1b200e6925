"""
Utility functions for the uniform fit engine
"""

import sys
import csv
import json
import logging
import platform
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

import cv2
import numpy as np
import yaml

from .measurement_engine import MeasurementSet
from .size_matcher import RecommendationResult


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Setup logging configuration"""

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    else:
        Path("logs").mkdir(exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        handlers.append(logging.FileHandler(f"logs/uniform_fit_{timestamp}.log"))

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        handlers=handlers
    )


def load_image(image_path: Union[str, Path]) -> np.ndarray:
    """Read an image file as RGB"""
    image = cv2.imread(str(image_path))
    if image is None:
        raise ValueError(f"Could not load image: {image_path}")
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes (JPEG/PNG/...) as RGB"""
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("Could not decode image data")
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def build_export(result: RecommendationResult, measurements: Optional[MeasurementSet],
                 profile: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Assemble the record handed to the checkout flow"""
    return {
        'timestamp': datetime.now().isoformat(),
        'profile': profile or {},
        'measurements': measurements.to_dict() if measurements else None,
        'recommendation': result.to_dict(),
    }


def save_results(result: RecommendationResult, measurements: Optional[MeasurementSet],
                 file_path: str, profile: Optional[Dict[str, Any]] = None) -> Path:
    """
    Save a recommendation and its front-phase measurements

    Args:
        result: Recommendation to save
        measurements: Front-phase measurements shown alongside the sizes
        file_path: Output path; format follows the extension (.json, .yaml, .csv)
        profile: Session inputs to record

    Returns:
        Path actually written
    """

    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    export_data = build_export(result, measurements, profile)

    if file_path.suffix.lower() in ['.yaml', '.yml']:
        with open(file_path, 'w') as f:
            yaml.safe_dump(export_data, f, default_flow_style=False, indent=2)

    elif file_path.suffix.lower() == '.csv':
        with open(file_path, 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(['Field', 'Value'])
            writer.writerow(['Top Size', result.top_size])
            writer.writerow(['Top Confidence', result.confidence_top])
            writer.writerow(['Bottom Size', result.bottom_size])
            writer.writerow(['Bottom Confidence', result.confidence_bottom])
            writer.writerow(['Estimated', result.is_fallback])
            if measurements:
                for name, value in measurements.to_dict().items():
                    writer.writerow([name.replace('_', ' ').title(), value])

    else:
        if file_path.suffix.lower() != '.json':
            file_path = file_path.with_suffix('.json')
        with open(file_path, 'w') as f:
            json.dump(export_data, f, indent=2)

    return file_path


def load_results(file_path: str) -> Dict[str, Any]:
    """Load a saved recommendation file"""

    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Results file not found: {file_path}")

    if file_path.suffix.lower() == '.json':
        with open(file_path, 'r') as f:
            return json.load(f)

    elif file_path.suffix.lower() in ['.yaml', '.yml']:
        with open(file_path, 'r') as f:
            return yaml.safe_load(f)

    else:
        raise ValueError(f"Unsupported file format: {file_path.suffix}")


class Timer:
    """Simple timer context manager for performance measurement"""

    def __init__(self, name: str = "Operation"):
        self.name = name
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = datetime.now()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = datetime.now()
        logging.info(f"{self.name} took {self.duration:.3f} seconds")

    @property
    def duration(self) -> float:
        """Get duration in seconds"""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0


def get_system_info() -> Dict[str, Any]:
    """Get system information for debugging"""

    import psutil

    try:
        import mediapipe
        mediapipe_version = getattr(mediapipe, '__version__', 'unknown')
    except ImportError:
        mediapipe_version = "Not available"

    return {
        'platform': platform.platform(),
        'python_version': platform.python_version(),
        'opencv_version': cv2.__version__,
        'mediapipe_version': mediapipe_version,
        'cpu_count': psutil.cpu_count(),
        'memory_gb': round(psutil.virtual_memory().total / (1024**3), 2),
    }
