"""
live.py - Local camera loop
===========================
Runs the capture -> inference -> evaluation pipeline on this machine's
camera without a browser. One asyncio loop drives everything: each cycle
awaits the camera and the model in the default executor, evaluates the
result and re-queues itself. Cooldown ends are ``loop.call_later``
callbacks on the same loop.
"""

import argparse
import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Optional, Sequence

from posture_coach.capture import CameraSource, to_rgb
from posture_coach.classifier import PoseClassifier
from posture_coach.config import Settings, load_settings
from posture_coach.exceptions import InitializationError
from posture_coach.models import Feedback, SessionState
from posture_coach.pose_analyzer import PoseAnalyzer
from posture_coach.posture import PostureEvaluator
from posture_coach.processor import RepetitionTracker

logger = logging.getLogger("LiveLoop")


class LiveLoop:
    """Base loop: owns the capture source and the liveness flag.

    Subclasses implement ``setup`` (load models), ``evaluate`` (one frame)
    and ``teardown_models``.
    """

    def __init__(
        self,
        capture: Any,
        settings: Settings,
        on_feedback: Optional[Callable[[Feedback], None]] = None
    ) -> None:
        self.capture = capture
        self.settings = settings
        self.on_feedback = on_feedback
        self.feedback = Feedback.INITIALIZING
        self.running = False
        self.cycles = 0

    async def run(self) -> Feedback:
        """Initialize, loop until stopped, then tear down.

        Returns:
            The last feedback shown (INIT_FAILED when setup failed)
        """
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.capture.acquire)
            await self.setup(loop)
        except InitializationError as e:
            logger.error("Initialization failed: %s", e)
            self._show(Feedback.INIT_FAILED)
            self.teardown()
            return self.feedback

        self.running = True
        try:
            while self.running:
                await self._cycle(loop)
                if not self.running:
                    break
                # Yield to timers and other tasks, like a display refresh
                await asyncio.sleep(self.settings.frame_interval_seconds)
        finally:
            self.teardown()
        return self.feedback

    async def _cycle(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            frame = await loop.run_in_executor(None, self.capture.read)
            if not self.running:
                return
            if frame is None:
                logger.info("Capture source exhausted")
                self.stop()
                return
            await self.evaluate(loop, frame)
        except Exception:
            logger.exception("Detection error; skipping cycle")
        self.cycles += 1

    def stop(self) -> None:
        """Flip the liveness flag; in-flight inference results are discarded."""
        self.running = False

    def teardown(self) -> None:
        self.running = False
        self.capture.release()
        self.teardown_models()

    def _show(self, feedback: Feedback) -> None:
        self.feedback = feedback
        if self.on_feedback is not None:
            self.on_feedback(feedback)

    async def setup(self, loop: asyncio.AbstractEventLoop) -> None:
        raise NotImplementedError

    async def evaluate(self, loop: asyncio.AbstractEventLoop, frame: Any) -> None:
        raise NotImplementedError

    def teardown_models(self) -> None:
        raise NotImplementedError


class PostureLoop(LiveLoop):
    """Shoulder-level feedback for every frame."""

    def __init__(
        self,
        capture: Any,
        analyzer_factory: Callable[[], Any],
        settings: Settings,
        on_feedback: Optional[Callable[[Feedback], None]] = None
    ) -> None:
        super().__init__(capture, settings, on_feedback)
        self.analyzer_factory = analyzer_factory
        self.analyzer = None
        self.evaluator = PostureEvaluator(settings.posture)

    async def setup(self, loop: asyncio.AbstractEventLoop) -> None:
        self.analyzer = await loop.run_in_executor(None, self.analyzer_factory)

    async def evaluate(self, loop: asyncio.AbstractEventLoop, frame: Any) -> None:
        landmarks = await loop.run_in_executor(None, self.analyzer.estimate, to_rgb(frame))
        if not self.running or not landmarks:
            return
        feedback, _ = self.evaluator.evaluate(landmarks)
        self._show(feedback)

    def teardown_models(self) -> None:
        if self.analyzer is not None:
            self.analyzer.close()
            self.analyzer = None


class ExerciseLoop(LiveLoop):
    """Repetition counting; stops on its own once the target is reached."""

    def __init__(
        self,
        capture: Any,
        analyzer_factory: Callable[[], Any],
        classifier_factory: Callable[[], Any],
        settings: Settings,
        activity: Optional[str] = None,
        target: Optional[int] = None,
        on_feedback: Optional[Callable[[Feedback], None]] = None,
        on_complete: Optional[Callable[[SessionState], None]] = None
    ) -> None:
        super().__init__(capture, settings, on_feedback)
        self.analyzer_factory = analyzer_factory
        self.classifier_factory = classifier_factory
        self.analyzer = None
        self.classifier = None
        self._activity = activity
        self._target = target
        self._on_complete = on_complete
        self.tracker: Optional[RepetitionTracker] = None

    async def setup(self, loop: asyncio.AbstractEventLoop) -> None:
        self.tracker = RepetitionTracker(
            self.settings.repetition,
            loop.call_later,
            activity=self._activity,
            target=self._target,
            on_complete=self._completed
        )
        self.analyzer = await loop.run_in_executor(None, self.analyzer_factory)
        self.classifier = await loop.run_in_executor(None, self.classifier_factory)
        self.tracker.start()
        self._show(self.tracker.feedback)

    async def evaluate(self, loop: asyncio.AbstractEventLoop, frame: Any) -> None:
        height, width = frame.shape[:2]
        landmarks = await loop.run_in_executor(None, self.analyzer.estimate, to_rgb(frame))
        if not self.running:
            return
        predictions = await loop.run_in_executor(
            None, self.classifier.predict, landmarks, width, height
        )
        if not self.running:
            return
        self._show(self.tracker.observe(predictions))

    def change_activity(self, activity: Optional[str] = None, target: Optional[int] = None) -> None:
        """User picked a new activity or target."""
        if self.tracker is not None:
            self.tracker.configure(activity, target)
            self.tracker.start()

    def _completed(self, state: SessionState) -> None:
        self.stop()
        logger.info(
            "Completed %d/%d %s", state.current_count, state.target_count, state.selected_activity
        )
        if self._on_complete is not None:
            self._on_complete(state)

    def teardown_models(self) -> None:
        if self.tracker is not None:
            self.tracker.close()
        if self.classifier is not None:
            self.classifier.close()
            self.classifier = None
        if self.analyzer is not None:
            self.analyzer.close()
            self.analyzer = None


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Posture check and repetition counter on the local camera'
    )
    parser.add_argument('mode', choices=['posture', 'exercise'],
                        help='Shoulder-level check or repetition counting')
    parser.add_argument('--camera', type=str, default=str(settings.camera_index),
                        help='Camera index or video file path')
    parser.add_argument('--model-dir', type=str, default=settings.model_dir,
                        help='Directory holding model.json and metadata.json')
    parser.add_argument('--activity', type=str, default=settings.repetition.default_activity,
                        help='Activity label to count')
    parser.add_argument('--target', type=int, default=settings.repetition.default_target,
                        help='Repetitions to reach before stopping')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)
    args = build_parser(settings).parse_args(argv)
    if args.target < 1:
        logger.error("--target must be a positive integer")
        return 2

    settings = replace(settings, model_dir=args.model_dir)
    source = int(args.camera) if args.camera.isdigit() else args.camera
    capture = CameraSource(source)

    def show(feedback: Feedback) -> None:
        logger.info("%s", feedback.text)

    if args.mode == 'posture':
        live_loop = PostureLoop(capture, PoseAnalyzer, settings, on_feedback=show)
    else:
        live_loop = ExerciseLoop(
            capture,
            PoseAnalyzer,
            lambda: PoseClassifier.load(settings.model_location, settings.metadata_location),
            settings,
            activity=args.activity,
            target=args.target,
            on_feedback=show
        )

    try:
        feedback = asyncio.run(live_loop.run())
    except KeyboardInterrupt:
        return 130
    return 1 if feedback is Feedback.INIT_FAILED else 0


if __name__ == '__main__':
    raise SystemExit(main())
