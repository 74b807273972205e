"""Runtime configuration.

Every value has a default and can be overridden through environment
variables prefixed with ``POSTURE_COACH_`` (``PORT`` and ``SECRET_KEY`` are
read unprefixed so the app runs unchanged on common hosting platforms).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

ENV_PREFIX = 'POSTURE_COACH_'

DEFAULT_ACTIVITIES: Tuple[str, ...] = (
    'Pushup',
    'Pullup',
    'Squat',
    'Dead Lift',
    'Shoulder Press',
    'Plank',
    'Bench Press',
    'Triceps Dips',
)


@dataclass(frozen=True)
class PostureThresholds:
    # Shoulders below this confidence count as not visible
    min_confidence: float = 0.3
    # Larger vertical gap (pixels) between shoulders is "uneven"
    max_shoulder_diff_px: float = 30.0


@dataclass(frozen=True)
class RepetitionConfig:
    cooldown_seconds: float = 3.0
    # Top prediction must score exactly this to count as a hit
    hit_probability: float = 1.0
    default_activity: str = 'Squat'
    default_target: int = 5
    activities: Tuple[str, ...] = DEFAULT_ACTIVITIES
    # Follow-on view and the pause before navigating to it
    completion_url: str = '/generate-program'
    completion_delay_seconds: float = 0.5


@dataclass(frozen=True)
class Settings:
    host: str = '0.0.0.0'
    port: int = 10000
    debug: bool = False
    secret_key: Optional[str] = None
    log_level: str = 'INFO'
    model_dir: str = str(Path('models') / 'pose-model')
    model_file: str = 'model.json'
    metadata_file: str = 'metadata.json'
    camera_index: int = 0
    # Pause between local loop cycles, roughly one display refresh
    frame_interval_seconds: float = 1.0 / 60.0
    posture: PostureThresholds = field(default_factory=PostureThresholds)
    repetition: RepetitionConfig = field(default_factory=RepetitionConfig)

    @property
    def model_location(self) -> str:
        return str(Path(self.model_dir) / self.model_file)

    @property
    def metadata_location(self) -> str:
        return str(Path(self.model_dir) / self.metadata_file)


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    val = env.get(ENV_PREFIX + name)
    if val is None or not val.strip():
        return None
    return val.strip()


def _as_bool(val: str) -> bool:
    return val.lower() in ('1', 'true', 'yes', 'on')


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables, falling back to defaults."""
    env = os.environ if environ is None else environ
    base = Settings()
    posture = PostureThresholds()
    repetition = RepetitionConfig()

    min_conf = _get(env, 'MIN_CONFIDENCE')
    max_diff = _get(env, 'MAX_SHOULDER_DIFF')
    posture = PostureThresholds(
        min_confidence=float(min_conf) if min_conf else posture.min_confidence,
        max_shoulder_diff_px=float(max_diff) if max_diff else posture.max_shoulder_diff_px,
    )

    cooldown = _get(env, 'COOLDOWN_SECONDS')
    activity = _get(env, 'DEFAULT_ACTIVITY')
    target = _get(env, 'DEFAULT_TARGET')
    activities = _get(env, 'ACTIVITIES')
    repetition = RepetitionConfig(
        cooldown_seconds=float(cooldown) if cooldown else repetition.cooldown_seconds,
        hit_probability=repetition.hit_probability,
        default_activity=activity or repetition.default_activity,
        default_target=int(target) if target else repetition.default_target,
        activities=(
            tuple(a.strip() for a in activities.split(',') if a.strip())
            if activities else repetition.activities
        ),
        completion_url=_get(env, 'COMPLETION_URL') or repetition.completion_url,
        completion_delay_seconds=repetition.completion_delay_seconds,
    )
    if repetition.default_target < 1:
        raise ValueError('POSTURE_COACH_DEFAULT_TARGET must be a positive integer')

    debug = _get(env, 'DEBUG')
    camera = _get(env, 'CAMERA_INDEX')
    interval = _get(env, 'FRAME_INTERVAL')
    return Settings(
        host=_get(env, 'HOST') or base.host,
        port=int(env.get('PORT') or base.port),
        debug=_as_bool(debug) if debug else base.debug,
        secret_key=env.get('SECRET_KEY') or base.secret_key,
        log_level=(_get(env, 'LOG_LEVEL') or base.log_level).upper(),
        model_dir=_get(env, 'MODEL_DIR') or base.model_dir,
        model_file=base.model_file,
        metadata_file=base.metadata_file,
        camera_index=int(camera) if camera else base.camera_index,
        frame_interval_seconds=float(interval) if interval else base.frame_interval_seconds,
        posture=posture,
        repetition=repetition,
    )
