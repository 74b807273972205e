#The code is according to PEP 8 coding styles standards
import logging
import os
import threading
from typing import Any, Callable, Dict, Optional

from flask import (
    Blueprint,
    Flask,
    current_app,
    jsonify,
    render_template,
    request,
    send_from_directory,
    url_for,
)

from posture_coach.capture import decode_frame
from posture_coach.classifier import PoseClassifier, predictions_from_payload
from posture_coach.config import Settings, load_settings
from posture_coach.exceptions import InitializationError, InvalidPayloadError
from posture_coach.models import Feedback, SessionState
from posture_coach.pose_analyzer import PoseAnalyzer, landmarks_from_keypoints
from posture_coach.processor import FrameProcessor, RepetitionTracker, Scheduler
from posture_coach.program import ProgramRecommender

logger = logging.getLogger("PostureCoachApp")

# Package directory for resolving template and static paths
base_dir = os.path.dirname(os.path.abspath(__file__))

coach_bp = Blueprint('coach', __name__)


def timer_scheduler(lock: threading.Lock) -> Scheduler:
    """Run callbacks on a daemon ``threading.Timer`` while holding ``lock``."""
    def schedule(delay: float, callback: Callable[[], None]) -> threading.Timer:
        def fire() -> None:
            with lock:
                callback()

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        timer.start()
        return timer
    return schedule


class CoachRuntime:
    """Per-app state: the frame processor and live exercise sessions.

    All session mutation, including cooldown timers, happens under
    ``session_lock``.
    """

    def __init__(
        self,
        settings: Settings,
        frame_processor: FrameProcessor,
        scheduler: Optional[Scheduler] = None
    ) -> None:
        self.settings = settings
        self.frame_processor = frame_processor
        self.program_recommender = ProgramRecommender()
        self.sessions: Dict[str, RepetitionTracker] = {}
        self.session_lock = threading.Lock()
        self.schedule = scheduler or timer_scheduler(self.session_lock)

    def new_tracker(
        self,
        session_id: str,
        activity: Optional[str] = None,
        target: Optional[int] = None
    ) -> RepetitionTracker:
        def on_complete(state: SessionState) -> None:
            logger.info(
                "Session %s finished %s: %d/%d",
                session_id, state.selected_activity, state.current_count, state.target_count
            )

        tracker = RepetitionTracker(
            self.settings.repetition,
            self.schedule,
            activity=activity,
            target=target,
            on_complete=on_complete
        )
        self.sessions[session_id] = tracker
        return tracker

    def get_tracker(self, session_id: str) -> RepetitionTracker:
        tracker = self.sessions.get(session_id)
        if tracker is None:
            tracker = self.new_tracker(session_id)
            tracker.start()
        return tracker

    def end_session(self, session_id: str) -> None:
        tracker = self.sessions.pop(session_id, None)
        if tracker is not None:
            tracker.close()


def _runtime() -> CoachRuntime:
    return current_app.extensions['posture_coach']


def _session_id() -> str:
    # sendBeacon cannot set headers, so the id may also arrive as a query arg
    return request.headers.get('X-Session-ID') or request.args.get('session_id', 'default')


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InvalidPayloadError('request body must be a JSON object')
    return body


def _read_settings_payload(body: Dict[str, Any]):
    """Validate optional ``activity`` and ``target`` fields."""
    config = _runtime().settings.repetition
    activity = body.get('activity')
    if activity is not None and activity not in config.activities:
        raise InvalidPayloadError(f'unknown activity: {activity}')

    target = body.get('target')
    if target is not None:
        if isinstance(target, bool):
            raise InvalidPayloadError('target must be a positive integer')
        try:
            target = int(target)
        except (TypeError, ValueError) as e:
            raise InvalidPayloadError('target must be a positive integer') from e
        if target < 1:
            raise InvalidPayloadError('target must be a positive integer')
    return activity, target


def _exercise_response(session_id: str, tracker: RepetitionTracker,
                       response: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Attach navigation data; a completed session is dropped."""
    runtime = _runtime()
    response = response or tracker.to_dict()
    response['next_url'] = None
    if tracker.state.completed:
        state = tracker.state
        response['next_url'] = url_for(
            'coach.generate_program',
            activity=state.selected_activity,
            count=state.current_count,
            target=state.target_count
        )
        response['redirect_delay'] = runtime.settings.repetition.completion_delay_seconds
        runtime.end_session(session_id)
    return response


@coach_bp.route('/')
def index():
    """Render the landing page."""
    return render_template('index.html')


@coach_bp.route('/health')
def health():
    """Health check endpoint for monitoring."""
    return jsonify({'status': 'healthy'})


@coach_bp.route('/posture')
def posture_page():
    """Render the live posture check page."""
    return render_template(
        'posture.html',
        initial_feedback=Feedback.INITIALIZING.text,
        init_failed=Feedback.INIT_FAILED.text
    )


@coach_bp.route('/exercise')
def exercise_page():
    """Render the exercise counter page."""
    config = _runtime().settings.repetition
    return render_template(
        'exercise.html',
        activities=config.activities,
        default_activity=config.default_activity,
        default_target=config.default_target,
        initial_feedback=Feedback.DETECTING.text,
        init_failed=Feedback.INIT_FAILED.text
    )


@coach_bp.route('/generate-program')
def generate_program():
    """Render the follow-on program for a finished session."""
    config = _runtime().settings.repetition
    activity = request.args.get('activity', config.default_activity)
    count = request.args.get('count', 0, type=int)
    target = request.args.get('target', config.default_target, type=int)
    target = max(target, 1)
    recommender = _runtime().program_recommender
    program = recommender.get_program(activity, count, target)
    return render_template(
        'generate_program.html',
        program=program,
        recommendations=recommender.get_recommendations(activity, count, target)
    )


@coach_bp.route('/pose-model/<path:filename>')
def pose_model(filename):
    """Serve ``model.json``, ``metadata.json`` and weight shards to the browser."""
    model_dir = os.path.abspath(_runtime().settings.model_dir)
    return send_from_directory(model_dir, filename)


@coach_bp.route('/posture/evaluate', methods=['POST'])
def evaluate_posture():
    """
    Evaluate shoulder posture for one frame.

    Expects:
        JSON with either 'keypoints' (browser inference results, each
        {name, score, x, y} in pixels) or a base64-encoded 'image'.

    Returns:
        JSON containing feedback text, feedback code and shoulder metrics.
    """
    body = _json_body()
    processor = _runtime().frame_processor
    if 'keypoints' in body:
        landmarks = landmarks_from_keypoints(body['keypoints'])
        return jsonify(processor.process_posture(landmarks=landmarks))
    if 'image' in body:
        frame = decode_frame(body['image'])
        return jsonify(processor.process_posture(frame=frame))
    raise InvalidPayloadError("expected 'keypoints' or 'image'")


@coach_bp.route('/exercise/start', methods=['POST'])
def start_exercise():
    """Begin a session once the page has its camera and model ready."""
    activity, target = _read_settings_payload(_json_body())
    runtime = _runtime()
    session_id = _session_id()
    with runtime.session_lock:
        tracker = runtime.new_tracker(session_id, activity, target)
        tracker.start()
        return jsonify(tracker.to_dict())


@coach_bp.route('/exercise/settings', methods=['POST'])
def exercise_settings():
    """Change activity or target; the count restarts from zero."""
    activity, target = _read_settings_payload(_json_body())
    runtime = _runtime()
    with runtime.session_lock:
        tracker = runtime.get_tracker(_session_id())
        tracker.configure(activity, target)
        tracker.start()
        return jsonify(tracker.to_dict())


@coach_bp.route('/exercise/frame', methods=['POST'])
def exercise_frame():
    """
    Evaluate one exercise frame.

    Expects:
        JSON with either 'predictions' (browser classifier output, each
        {className, probability}) or a base64-encoded 'image'.
        Optional session ID in 'X-Session-ID' header.

    Returns:
        JSON containing count, target, progress, feedback, phase and,
        once completed, the follow-on 'next_url'.
    """
    body = _json_body()
    predictions = frame = None
    if 'predictions' in body:
        predictions = predictions_from_payload(body['predictions'])
    elif 'image' in body:
        frame = decode_frame(body['image'])
    else:
        raise InvalidPayloadError("expected 'predictions' or 'image'")

    runtime = _runtime()
    session_id = _session_id()
    with runtime.session_lock:
        tracker = runtime.get_tracker(session_id)
        try:
            response = runtime.frame_processor.process_exercise(
                tracker, predictions=predictions, frame=frame
            )
        except InitializationError:
            tracker.fail()
            raise
        return jsonify(_exercise_response(session_id, tracker, response))


@coach_bp.route('/exercise/stop', methods=['POST'])
def stop_exercise():
    """Stop command from the user; the page tears down its camera."""
    runtime = _runtime()
    session_id = _session_id()
    with runtime.session_lock:
        tracker = runtime.get_tracker(session_id)
        tracker.stop()
        return jsonify(_exercise_response(session_id, tracker))


@coach_bp.route('/exercise/state')
def exercise_state():
    runtime = _runtime()
    with runtime.session_lock:
        tracker = runtime.sessions.get(_session_id())
        if tracker is None:
            return jsonify({'error': 'Not found', 'message': 'no active session'}), 404
        return jsonify(tracker.to_dict())


@coach_bp.app_errorhandler(InvalidPayloadError)
def handle_invalid_payload(e):
    """Malformed client input (HTTP 400)."""
    return jsonify({'error': 'Bad request', 'message': str(e)}), 400


@coach_bp.app_errorhandler(InitializationError)
def handle_initialization_error(e):
    """Camera or model could not be brought up (HTTP 503)."""
    logger.error("Initialization failed: %s", e)
    return jsonify({
        'error': 'Initialization failed',
        'message': Feedback.INIT_FAILED.text,
        'code': Feedback.INIT_FAILED.name
    }), 503


@coach_bp.app_errorhandler(500)
def handle_server_error(e):
    """
    Global error handler for unhandled internal server errors (HTTP 500).
    """
    return jsonify({
        'error': 'Internal server error',
        'message': str(e)
    }), 500


def create_app(
    settings: Optional[Settings] = None,
    pose_analyzer_factory: Optional[Callable[[], Any]] = None,
    classifier_factory: Optional[Callable[[], Any]] = None,
    scheduler: Optional[Scheduler] = None
) -> Flask:
    """Build the Flask app. Factories and scheduler may be replaced in tests."""
    settings = settings or load_settings()

    app = Flask(
        __name__,
        template_folder=os.path.join(base_dir, 'templates'),
        static_folder=os.path.join(base_dir, 'static')
    )
    app.config['SECRET_KEY'] = settings.secret_key or os.urandom(24)
    app.config['DEBUG'] = settings.debug

    frame_processor = FrameProcessor(
        settings,
        pose_analyzer_factory or PoseAnalyzer,
        classifier_factory or (
            lambda: PoseClassifier.load(settings.model_location, settings.metadata_location)
        )
    )
    app.extensions['posture_coach'] = CoachRuntime(settings, frame_processor, scheduler)
    app.register_blueprint(coach_bp)
    return app


def main() -> None:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)
    app = create_app(settings)
    # Run server on 0.0.0.0 to allow external access (e.g., mobile testing)
    app.run(host=settings.host, port=settings.port, debug=settings.debug, threaded=True)


# App entry point
if __name__ == '__main__':
    main()
