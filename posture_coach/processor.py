"""Frame processing pipeline for posture checks and repetition counting.

This module handles:
- Landmark extraction for posted frames
- Shoulder-level posture feedback
- Activity classification and repetition counting with a cooldown
"""

import logging
from typing import Any, Callable, Dict, Optional, Sequence

import numpy as np

from posture_coach import session
from posture_coach.capture import to_rgb
from posture_coach.config import RepetitionConfig, Settings
from posture_coach.exceptions import InitializationError
from posture_coach.models import Feedback, Landmark, Phase, Prediction, SessionState
from posture_coach.posture import PostureEvaluator

logger = logging.getLogger("FrameProcessor")

# schedule(delay_seconds, callback) -> handle with a cancel() method
Scheduler = Callable[[float, Callable[[], None]], Any]


class RepetitionTracker:
    """Owns one session's state and drives it through the transitions.

    Attributes:
        config: Cooldown, hit and default settings
        state: Current immutable SessionState
        feedback: Last feedback shown to the user
        failed: Set once initialization failed; the session stays halted
    """

    def __init__(
        self,
        config: RepetitionConfig,
        schedule: Scheduler,
        activity: Optional[str] = None,
        target: Optional[int] = None,
        on_complete: Optional[Callable[[SessionState], None]] = None
    ) -> None:
        self.config = config
        self._schedule = schedule
        self._on_complete = on_complete
        self.state = session.new_session(
            activity or config.default_activity,
            target if target is not None else config.default_target
        )
        self.feedback = Feedback.INITIALIZING
        self.failed = False
        self._generation = 0
        self._pending = None
        self._completion_fired = False

    @property
    def progress(self) -> float:
        return session.progress_percent(self.state)

    def start(self) -> None:
        """Camera and model are ready."""
        if self.failed or self.state.phase is not Phase.IDLE:
            return
        self.state = session.start(self.state)
        self.feedback = Feedback.DETECTING

    def fail(self) -> None:
        """Halt after an initialization failure."""
        self.failed = True
        self.feedback = Feedback.INIT_FAILED
        self._disarm()

    def configure(self, activity: Optional[str] = None, target: Optional[int] = None) -> None:
        """Change activity and/or target; the count and cooldown reset."""
        self.state = session.configure(self.state, activity, target)
        self._disarm()
        self._completion_fired = False
        if not self.failed:
            self.feedback = (
                Feedback.INITIALIZING if self.state.phase is Phase.IDLE else Feedback.DETECTING
            )

    def observe(self, predictions: Sequence[Prediction]) -> Feedback:
        """Evaluate one frame's predictions and update the count."""
        if self.failed or self.state.phase in (Phase.IDLE, Phase.COMPLETED):
            return self.feedback

        top = session.top_prediction(predictions)
        if top is None:
            return self.feedback

        if not session.is_hit(top, self.state.selected_activity, self.config.hit_probability):
            self.feedback = Feedback.KEEP_CORRECTING
            return self.feedback

        self.feedback = Feedback.POSTURE_CORRECT
        self.state, counted = session.register_hit(self.state)
        if counted:
            generation = self._generation
            self._pending = self._schedule(
                self.config.cooldown_seconds,
                lambda: self._cooldown_elapsed(generation)
            )
            logger.info(
                "%s rep %d/%d",
                self.state.selected_activity,
                self.state.current_count,
                self.state.target_count
            )
            if self.state.completed:
                self._fire_completion()
        return self.feedback

    def stop(self) -> None:
        """User stop command: end the session as if completed."""
        if not self.state.completed:
            self.state = session.complete(self.state)
        self._fire_completion()

    def close(self) -> None:
        """Cancel any pending cooldown timer."""
        self._disarm()

    def _cooldown_elapsed(self, generation: int) -> None:
        # Timers armed before the last reset are stale
        if generation != self._generation:
            return
        self._pending = None
        self.state = session.end_cooldown(self.state)

    def _disarm(self) -> None:
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _fire_completion(self) -> None:
        if self._completion_fired:
            return
        self._completion_fired = True
        if self._on_complete is not None:
            self._on_complete(self.state)

    def to_dict(self) -> Dict[str, Any]:
        data = self.state.to_dict()
        data.update({
            'progress': self.progress,
            'feedback': self.feedback.text,
            'code': self.feedback.name,
            'completed': self.state.completed,
        })
        return data


class FrameProcessor:
    """Runs pose models on posted frames and builds client responses.

    Models are created on first use so pages that infer in the browser never
    load them on the server.

    Attributes:
        settings: Application settings
        posture_evaluator: Stateless shoulder-level classifier
    """

    def __init__(
        self,
        settings: Settings,
        pose_analyzer_factory: Callable[[], Any],
        classifier_factory: Callable[[], Any]
    ) -> None:
        self.settings = settings
        self.posture_evaluator = PostureEvaluator(settings.posture)
        self._pose_analyzer_factory = pose_analyzer_factory
        self._classifier_factory = classifier_factory
        self._pose_analyzer = None
        self._classifier = None

    @property
    def pose_analyzer(self) -> Any:
        """Lazily created landmark model; raises InitializationError."""
        if self._pose_analyzer is None:
            self._pose_analyzer = self._pose_analyzer_factory()
        return self._pose_analyzer

    @property
    def classifier(self) -> Any:
        """Lazily created activity classifier; raises InitializationError."""
        if self._classifier is None:
            self._classifier = self._classifier_factory()
        return self._classifier

    def process_posture(
        self,
        landmarks: Optional[Sequence[Landmark]] = None,
        frame: Optional[np.ndarray] = None
    ) -> Dict[str, Any]:
        """Evaluate shoulder posture from landmarks or a raw frame.

        Returns:
            Dictionary containing feedback text, feedback code, metrics and
            debug data. Initialization errors propagate.
        """
        response = {
            'feedback': Feedback.SHOULDERS_NOT_VISIBLE.text,
            'code': Feedback.SHOULDERS_NOT_VISIBLE.name,
            'metrics': {'shoulder_diff': None},
            'debug': {'landmarks_visible': False, 'skipped': False}
        }

        if landmarks is None:
            if frame is None:
                raise ValueError('either landmarks or frame is required')
            analyzer = self.pose_analyzer
            try:
                landmarks = analyzer.estimate(to_rgb(frame))
            except InitializationError:
                raise
            except Exception:
                logger.exception("Pose estimation failed; skipping frame")
                response['debug']['skipped'] = True
                return response

        feedback, metrics = self.posture_evaluator.evaluate(landmarks)
        response.update({
            'feedback': feedback.text,
            'code': feedback.name,
            'metrics': metrics,
        })
        response['debug']['landmarks_visible'] = bool(landmarks)
        return response

    def process_exercise(
        self,
        tracker: RepetitionTracker,
        predictions: Optional[Sequence[Prediction]] = None,
        frame: Optional[np.ndarray] = None
    ) -> Dict[str, Any]:
        """Update a session from predictions or a raw frame.

        Returns:
            The tracker's state as a response dictionary plus debug data.
            Initialization errors propagate; the caller halts the session.
        """
        skipped = False
        if predictions is None and not tracker.failed and not tracker.state.completed:
            if frame is None:
                raise ValueError('either predictions or frame is required')
            analyzer = self.pose_analyzer
            classifier = self.classifier
            try:
                height, width = frame.shape[:2]
                landmarks = analyzer.estimate(to_rgb(frame))
                predictions = classifier.predict(landmarks, width, height)
            except InitializationError:
                raise
            except Exception:
                logger.exception("Classification failed; skipping frame")
                skipped = True

        if not skipped and predictions is not None:
            tracker.observe(predictions)

        response = tracker.to_dict()
        response['debug'] = {'skipped': skipped}
        return response

    def close(self) -> None:
        """Release model resources."""
        if self._pose_analyzer is not None:
            self._pose_analyzer.close()
            self._pose_analyzer = None
        if self._classifier is not None:
            self._classifier.close()
            self._classifier = None
