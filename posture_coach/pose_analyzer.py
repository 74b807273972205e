"""Human pose landmark extraction using MediaPipe.

This module turns frames into Landmark Sets in pixel coordinates and
parses landmark payloads computed in the browser into the same shape.
"""

import logging
from typing import Any, Iterable, List, Mapping

import numpy as np

from posture_coach.exceptions import InvalidPayloadError, ModelInitializationError
from posture_coach.models import Landmark

logger = logging.getLogger("PoseAnalyzer")

COCO17_NAMES = [
    'nose',
    'left_eye',
    'right_eye',
    'left_ear',
    'right_ear',
    'left_shoulder',
    'right_shoulder',
    'left_elbow',
    'right_elbow',
    'left_wrist',
    'right_wrist',
    'left_hip',
    'right_hip',
    'left_knee',
    'right_knee',
    'left_ankle',
    'right_ankle',
]


class PoseAnalyzer:
    """Extracts COCO-17 landmarks from RGB frames with MediaPipe Pose.

    Attributes:
        mp_pose: MediaPipe Pose solution module
        pose: Initialized MediaPipe Pose instance
    """

    def __init__(
        self,
        model_complexity: int = 1,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5
    ) -> None:
        """Initialize the MediaPipe Pose model.

        Raises:
            ModelInitializationError: MediaPipe is missing or fails to load
        """
        try:
            import mediapipe as mp
            self.mp_pose = mp.solutions.pose
            self.pose = self.mp_pose.Pose(
                static_image_mode=False,
                model_complexity=model_complexity,
                smooth_landmarks=True,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=min_tracking_confidence
            )
        except Exception as e:
            raise ModelInitializationError(
                "MediaPipe Pose is unavailable. Reinstall with: pip install mediapipe"
            ) from e
        logger.info("MediaPipe Pose loaded (complexity=%d)", model_complexity)

    def estimate(self, frame_rgb: np.ndarray) -> List[Landmark]:
        """Estimate landmarks for one RGB frame.

        Args:
            frame_rgb: Input frame in RGB format with shape (H, W, 3)

        Returns:
            Landmarks in pixel space, empty when no person is detected
        """
        height, width = frame_rgb.shape[:2]
        results = self.pose.process(frame_rgb)
        if not results or not results.pose_landmarks:
            return []

        raw = results.pose_landmarks.landmark
        landmarks = []
        for name in COCO17_NAMES:
            point = raw[self.mp_pose.PoseLandmark[name.upper()].value]
            landmarks.append(Landmark(
                name=name,
                confidence=float(getattr(point, 'visibility', 0.0) or 0.0),
                x=float(point.x) * width,
                y=float(point.y) * height
            ))
        return landmarks

    def close(self) -> None:
        """Release MediaPipe resources."""
        self.pose.close()


def landmarks_from_keypoints(keypoints: Iterable[Mapping[str, Any]]) -> List[Landmark]:
    """Parse browser keypoints (``{name, score, x, y}``) into Landmarks.

    Raises:
        InvalidPayloadError: A keypoint lacks a field or has a bad value
    """
    if isinstance(keypoints, (str, bytes)) or not isinstance(keypoints, Iterable):
        raise InvalidPayloadError('keypoints must be a list of objects')

    landmarks = []
    for i, point in enumerate(keypoints):
        if not isinstance(point, Mapping):
            raise InvalidPayloadError(f'keypoint {i} is not an object')
        try:
            confidence = point['score'] if 'score' in point else point['confidence']
            landmarks.append(Landmark(
                name=str(point['name']),
                confidence=float(confidence),
                x=float(point['x']),
                y=float(point['y'])
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidPayloadError(f'keypoint {i} is malformed: {e}') from e
    return landmarks

