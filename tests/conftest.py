import numpy as np
import pytest

from posture_coach.app import create_app
from posture_coach.config import RepetitionConfig, Settings
from posture_coach.models import Landmark, Prediction


class FakeHandle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Records scheduled callbacks; tests fire them by hand."""

    def __init__(self):
        self.handles = []

    def __call__(self, delay, callback):
        handle = FakeHandle(delay, callback)
        self.handles.append(handle)
        return handle

    def fire_pending(self):
        for handle in list(self.handles):
            if not handle.cancelled:
                handle.cancelled = True
                handle.callback()


class FakeAnalyzer:
    def __init__(self, landmarks=None, errors=0):
        self.landmarks = landmarks if landmarks is not None else []
        self.errors = errors
        self.calls = 0
        self.closed = False

    def estimate(self, frame_rgb):
        self.calls += 1
        if self.errors:
            self.errors -= 1
            raise RuntimeError('inference blew up')
        return list(self.landmarks)

    def close(self):
        self.closed = True


class FakeClassifier:
    def __init__(self, predictions=None):
        self.predictions = predictions if predictions is not None else []
        self.calls = 0
        self.closed = False

    def predict(self, landmarks, width, height):
        self.calls += 1
        return list(self.predictions)

    def close(self):
        self.closed = True


class FakeCapture:
    """Yields ``frames`` frames (forever when None), then None."""

    def __init__(self, frames=None, fail=None):
        self.remaining = frames
        self.fail = fail
        self.acquired = False
        self.released = False

    def acquire(self):
        if self.fail is not None:
            raise self.fail
        self.acquired = True
        return self

    def read(self):
        if self.remaining is not None:
            if self.remaining <= 0:
                return None
            self.remaining -= 1
        return np.zeros((8, 8, 3), dtype=np.uint8)

    def release(self):
        self.released = True


def shoulders(left_y, right_y, left_conf=0.9, right_conf=0.9):
    return [
        Landmark('nose', 0.9, 120.0, 50.0),
        Landmark('left_shoulder', left_conf, 100.0, left_y),
        Landmark('right_shoulder', right_conf, 200.0, right_y),
    ]


@pytest.fixture
def make_shoulders():
    return shoulders


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def fakes():
    return {
        'analyzer': FakeAnalyzer,
        'classifier': FakeClassifier,
        'capture': FakeCapture,
        'scheduler': FakeScheduler,
    }


@pytest.fixture
def squat_hit():
    return [Prediction('Pushup', 0.0), Prediction('Squat', 1.0)]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        model_dir=str(tmp_path),
        frame_interval_seconds=0.0,
        repetition=RepetitionConfig(default_activity='Squat', default_target=3),
    )


@pytest.fixture
def analyzer(make_shoulders):
    return FakeAnalyzer(make_shoulders(100.0, 140.0, 0.5, 0.6))


@pytest.fixture
def classifier(squat_hit):
    return FakeClassifier(squat_hit)


@pytest.fixture
def app(settings, analyzer, classifier, scheduler):
    app = create_app(
        settings,
        pose_analyzer_factory=lambda: analyzer,
        classifier_factory=lambda: classifier,
        scheduler=scheduler,
    )
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
