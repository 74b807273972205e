"""Shoulder-level posture check.

Classifies a single frame's landmarks into one of three feedback messages.
There is no history and no smoothing, so the result follows the raw model
output frame by frame.
"""

from typing import Any, Dict, Optional, Tuple

from posture_coach.config import PostureThresholds
from posture_coach.models import Feedback, LandmarkSet, find_landmark


class PostureEvaluator:
    """Stateless shoulder-level classifier.

    Attributes:
        thresholds: Visibility and shoulder difference limits
    """

    def __init__(self, thresholds: Optional[PostureThresholds] = None) -> None:
        self.thresholds = thresholds or PostureThresholds()

    def evaluate(self, landmarks: LandmarkSet) -> Tuple[Feedback, Dict[str, Any]]:
        """Classify one frame's landmarks.

        Args:
            landmarks: Landmarks of the latest frame, pixel coordinates

        Returns:
            Tuple of (feedback, metrics) where metrics holds the measured
            ``shoulder_diff`` in pixels (None when shoulders are not visible)
        """
        left = find_landmark(landmarks, 'left_shoulder')
        right = find_landmark(landmarks, 'right_shoulder')
        min_conf = self.thresholds.min_confidence

        if (left is None or right is None
                or left.confidence < min_conf or right.confidence < min_conf):
            return Feedback.SHOULDERS_NOT_VISIBLE, {'shoulder_diff': None}

        shoulder_diff = abs(left.y - right.y)
        if shoulder_diff > self.thresholds.max_shoulder_diff_px:
            return Feedback.UNEVEN_SHOULDERS, {'shoulder_diff': shoulder_diff}
        return Feedback.GOOD_POSTURE, {'shoulder_diff': shoulder_diff}


def evaluate_posture(
    landmarks: LandmarkSet,
    thresholds: Optional[PostureThresholds] = None
) -> Feedback:
    """Shorthand for ``PostureEvaluator(thresholds).evaluate(...)[0]``."""
    return PostureEvaluator(thresholds).evaluate(landmarks)[0]
