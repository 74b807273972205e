#The code is according to PEP 8 coding styles standards
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple


class Feedback(Enum):
    """Short messages shown verbatim to the user."""

    INITIALIZING = 'Initializing...'
    SHOULDERS_NOT_VISIBLE = 'Shoulders not visible. Adjust camera.'
    UNEVEN_SHOULDERS = 'Sit/stand upright. Keep your shoulders level.'
    GOOD_POSTURE = 'Good posture!'
    DETECTING = 'Detecting...'
    POSTURE_CORRECT = '✅ Posture Correct!'
    KEEP_CORRECTING = '❗ Keep correcting your posture'
    INIT_FAILED = 'Initialization failed. Please refresh.'

    @property
    def text(self) -> str:
        return self.value


class Phase(Enum):
    """Lifecycle of a repetition counting session."""

    IDLE = 'idle'
    DETECTING = 'detecting'
    COOLDOWN = 'cooldown'
    COMPLETED = 'completed'


@dataclass(frozen=True)
class Landmark:
    """
    A named anatomical point for one frame.
    Position is in frame pixel space, confidence in [0, 1].
    """
    name: str
    confidence: float
    x: float
    y: float

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)


# Ordered landmarks of a single frame; duplicate names are not rejected
LandmarkSet = Sequence[Landmark]


def find_landmark(landmarks: LandmarkSet, name: str) -> Optional[Landmark]:
    """Return the first landmark called ``name``, or None."""
    for landmark in landmarks:
        if landmark.name == name:
            return landmark
    return None


@dataclass(frozen=True)
class Prediction:
    """One activity label scored by the pose classifier."""
    label: str
    probability: float


@dataclass(frozen=True)
class SessionState:
    """
    Stores per-user session state for repetition counting.
    Never mutated in place; see ``posture_coach.session`` for transitions.
    """
    selected_activity: str
    target_count: int
    current_count: int = 0  # Number of repetitions counted so far
    cooldown_active: bool = False  # Hits are ignored while True
    phase: Phase = Phase.IDLE

    @property
    def completed(self) -> bool:
        return self.phase is Phase.COMPLETED

    def to_dict(self) -> dict:
        return {
            'activity': self.selected_activity,
            'target': self.target_count,
            'count': self.current_count,
            'cooldown': self.cooldown_active,
            'phase': self.phase.value,
        }
