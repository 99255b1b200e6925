"""
MediaPipe Pose Detector Adapter
===============================

Wraps MediaPipe Pose behind ``estimate_pose(image) -> Pose | None`` so the
scan session can drive it like any other detector.
"""

import logging
from typing import Optional

import mediapipe as mp
import numpy as np

from .keypoints import Keypoint, Pose

# MediaPipe Pose landmark index -> keypoint name
MEDIAPIPE_LANDMARK_NAMES = {
    0: 'nose',
    1: 'left_eye_inner', 2: 'left_eye', 3: 'left_eye_outer',
    4: 'right_eye_inner', 5: 'right_eye', 6: 'right_eye_outer',
    7: 'left_ear', 8: 'right_ear',
    9: 'mouth_left', 10: 'mouth_right',
    11: 'left_shoulder', 12: 'right_shoulder',
    13: 'left_elbow', 14: 'right_elbow',
    15: 'left_wrist', 16: 'right_wrist',
    17: 'left_pinky', 18: 'right_pinky',
    19: 'left_index', 20: 'right_index',
    21: 'left_thumb', 22: 'right_thumb',
    23: 'left_hip', 24: 'right_hip',
    25: 'left_knee', 26: 'right_knee',
    27: 'left_ankle', 28: 'right_ankle',
    29: 'left_heel', 30: 'right_heel',
    31: 'left_foot_index', 32: 'right_foot_index'
}


class MediaPipePoseDetector:
    """Single-person still-image pose detector"""

    def __init__(self, model_complexity: int = 1, min_detection_confidence: float = 0.5):
        self.logger = logging.getLogger(__name__)
        self.mp_pose = mp.solutions.pose
        self.pose_detector = self.mp_pose.Pose(
            static_image_mode=True,
            model_complexity=model_complexity,
            enable_segmentation=False,
            min_detection_confidence=min_detection_confidence,
        )
        self.logger.info("MediaPipe pose detector initialized")

    def estimate_pose(self, image: np.ndarray) -> Optional[Pose]:
        """
        Detect one pose in an RGB image.

        Returns:
            Keypoints in pixel coordinates with visibility as score,
            or None when no person is found
        """

        if image is None or image.ndim != 3:
            raise ValueError("Expected an RGB image array")

        results = self.pose_detector.process(image)
        if not results.pose_landmarks:
            self.logger.info("No pose detected in image")
            return None

        h, w = image.shape[:2]
        pose = []
        for idx, landmark in enumerate(results.pose_landmarks.landmark):
            name = MEDIAPIPE_LANDMARK_NAMES.get(idx)
            if name is None:
                continue
            pose.append(Keypoint(name=name, x=landmark.x * w, y=landmark.y * h,
                                 score=float(landmark.visibility)))

        self.logger.debug(f"Detected {len(pose)} landmarks")
        return pose

    def close(self):
        self.pose_detector.close()
