import asyncio
from dataclasses import replace

import pytest

from posture_coach.config import RepetitionConfig
from posture_coach.exceptions import CaptureInitializationError, ModelInitializationError
from posture_coach.live import ExerciseLoop, PostureLoop, build_parser
from posture_coach.models import Feedback, Prediction


def run(loop_obj):
    return asyncio.run(loop_obj.run())


def test_posture_loop_reports_feedback(fakes, settings, make_shoulders):
    capture = fakes['capture'](frames=3)
    analyzer = fakes['analyzer'](make_shoulders(100.0, 140.0, 0.5, 0.6))
    seen = []
    live = PostureLoop(capture, lambda: analyzer, settings, on_feedback=seen.append)

    assert run(live) is Feedback.UNEVEN_SHOULDERS
    assert seen == [Feedback.UNEVEN_SHOULDERS] * 3
    assert capture.released
    assert analyzer.closed


def test_posture_loop_skips_failed_cycles(fakes, settings, make_shoulders):
    capture = fakes['capture'](frames=3)
    analyzer = fakes['analyzer'](make_shoulders(100.0, 110.0), errors=2)
    live = PostureLoop(capture, lambda: analyzer, settings)

    assert run(live) is Feedback.GOOD_POSTURE
    assert analyzer.calls == 3


def test_camera_failure_reports_init_failed(fakes, settings):
    capture = fakes['capture'](fail=CaptureInitializationError('no camera'))
    built = []
    live = PostureLoop(capture, lambda: built.append(1), settings)

    assert run(live) is Feedback.INIT_FAILED
    assert built == []
    assert live.cycles == 0


def test_model_failure_reports_init_failed(fakes, settings):
    def broken():
        raise ModelInitializationError('missing model.json')

    capture = fakes['capture']()
    live = ExerciseLoop(capture, fakes['analyzer'], broken, settings)

    assert run(live) is Feedback.INIT_FAILED
    assert live.cycles == 0
    assert capture.released


def test_in_flight_result_is_discarded_after_stop(fakes, settings, make_shoulders):
    capture = fakes['capture']()
    live = None

    class StoppingAnalyzer(fakes['analyzer']):
        def estimate(self, frame_rgb):
            live.stop()
            return super().estimate(frame_rgb)

    analyzer = StoppingAnalyzer(make_shoulders(100.0, 140.0))
    live = PostureLoop(capture, lambda: analyzer, settings)

    assert run(live) is Feedback.INITIALIZING
    assert analyzer.calls == 1


def test_exercise_loop_stops_at_target(fakes, settings):
    capture = fakes['capture']()
    classifier = fakes['classifier']([Prediction('Squat', 1.0)])
    completed = []
    live = ExerciseLoop(
        capture, fakes['analyzer'], lambda: classifier, settings,
        activity='Squat', target=1, on_complete=completed.append
    )

    assert run(live) is Feedback.POSTURE_CORRECT
    assert classifier.calls == 1
    assert live.cycles == 1
    assert len(completed) == 1
    assert completed[0].current_count == 1
    assert capture.released
    assert classifier.closed


def test_exercise_loop_waits_out_cooldown(fakes, settings):
    settings = replace(settings, repetition=RepetitionConfig(cooldown_seconds=0.05))
    capture = fakes['capture']()
    classifier = fakes['classifier']([Prediction('Squat', 1.0)])
    completed = []
    live = ExerciseLoop(
        capture, fakes['analyzer'], lambda: classifier, settings,
        activity='Squat', target=2, on_complete=completed.append
    )

    run(live)
    assert live.tracker.state.current_count == 2
    # Every frame during the cooldown was a hit that did not count
    assert classifier.calls > 2
    assert len(completed) == 1


def test_exercise_loop_ends_when_source_is_exhausted(fakes, settings):
    capture = fakes['capture'](frames=2)
    classifier = fakes['classifier']([Prediction('Pushup', 1.0)])
    live = ExerciseLoop(capture, fakes['analyzer'], lambda: classifier, settings, activity='Squat')

    assert run(live) is Feedback.KEEP_CORRECTING
    assert live.tracker.state.current_count == 0
    assert classifier.calls == 2


def test_parser_defaults(settings):
    args = build_parser(settings).parse_args(['exercise', '--target', '7'])
    assert args.mode == 'exercise'
    assert args.target == 7
    assert args.activity == 'Squat'
    with pytest.raises(SystemExit):
        build_parser(settings).parse_args(['dance'])
