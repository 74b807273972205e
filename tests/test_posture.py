import pytest

from posture_coach.config import PostureThresholds
from posture_coach.models import Feedback, Landmark
from posture_coach.posture import PostureEvaluator, evaluate_posture


def test_uneven_shoulders_scenario(make_shoulders):
    # Shoulders at y=100 / y=140 with confidences 0.5 / 0.6
    landmarks = make_shoulders(100.0, 140.0, 0.5, 0.6)
    assert evaluate_posture(landmarks) is Feedback.UNEVEN_SHOULDERS


def test_difference_of_exactly_thirty_is_good(make_shoulders):
    assert evaluate_posture(make_shoulders(100.0, 130.0)) is Feedback.GOOD_POSTURE
    assert evaluate_posture(make_shoulders(130.0, 100.0)) is Feedback.GOOD_POSTURE


def test_just_over_thirty_is_uneven(make_shoulders):
    assert evaluate_posture(make_shoulders(100.0, 130.5)) is Feedback.UNEVEN_SHOULDERS


def test_level_shoulders_are_good(make_shoulders):
    assert evaluate_posture(make_shoulders(120.0, 121.0)) is Feedback.GOOD_POSTURE


@pytest.mark.parametrize('left_conf, right_conf', [(0.29, 0.9), (0.9, 0.29), (0.0, 0.0)])
def test_low_confidence_means_not_visible(make_shoulders, left_conf, right_conf):
    landmarks = make_shoulders(100.0, 100.0, left_conf, right_conf)
    assert evaluate_posture(landmarks) is Feedback.SHOULDERS_NOT_VISIBLE


def test_confidence_at_threshold_is_visible(make_shoulders):
    landmarks = make_shoulders(100.0, 100.0, 0.3, 0.3)
    assert evaluate_posture(landmarks) is Feedback.GOOD_POSTURE


@pytest.mark.parametrize('missing', ['left_shoulder', 'right_shoulder'])
def test_missing_shoulder_means_not_visible(make_shoulders, missing):
    landmarks = [lm for lm in make_shoulders(100.0, 100.0) if lm.name != missing]
    assert evaluate_posture(landmarks) is Feedback.SHOULDERS_NOT_VISIBLE


def test_empty_landmark_set():
    assert evaluate_posture([]) is Feedback.SHOULDERS_NOT_VISIBLE


def test_first_duplicate_name_wins():
    landmarks = [
        Landmark('left_shoulder', 0.9, 0.0, 100.0),
        Landmark('left_shoulder', 0.9, 0.0, 500.0),
        Landmark('right_shoulder', 0.9, 0.0, 110.0),
    ]
    assert evaluate_posture(landmarks) is Feedback.GOOD_POSTURE


def test_metrics_report_shoulder_difference(make_shoulders):
    feedback, metrics = PostureEvaluator().evaluate(make_shoulders(100.0, 140.0))
    assert feedback is Feedback.UNEVEN_SHOULDERS
    assert metrics['shoulder_diff'] == pytest.approx(40.0)


def test_custom_thresholds(make_shoulders):
    evaluator = PostureEvaluator(PostureThresholds(min_confidence=0.8, max_shoulder_diff_px=50.0))
    assert evaluator.evaluate(make_shoulders(100.0, 140.0))[0] is Feedback.GOOD_POSTURE
    assert evaluator.evaluate(make_shoulders(100.0, 140.0, 0.5, 0.9))[0] is Feedback.SHOULDERS_NOT_VISIBLE


def test_feedback_texts():
    assert Feedback.UNEVEN_SHOULDERS.text == 'Sit/stand upright. Keep your shoulders level.'
    assert Feedback.GOOD_POSTURE.text == 'Good posture!'
    assert Feedback.SHOULDERS_NOT_VISIBLE.text == 'Shoulders not visible. Adjust camera.'
