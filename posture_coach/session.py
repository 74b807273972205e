"""Transition functions for the repetition counting session.

Each function takes a SessionState and returns a new one; nothing here
keeps time or schedules callbacks. ``RepetitionTracker`` in
``posture_coach.processor`` wires these to a scheduler.
"""

from dataclasses import replace
from typing import Iterable, Optional, Tuple

from posture_coach.models import Phase, Prediction, SessionState


def new_session(activity: str, target: int) -> SessionState:
    """Create an idle session for ``activity`` with ``target`` repetitions."""
    if target < 1:
        raise ValueError(f'target count must be a positive integer, got {target}')
    return SessionState(selected_activity=activity, target_count=target)


def start(state: SessionState) -> SessionState:
    """Idle -> Detecting once camera and model are ready."""
    if state.phase is not Phase.IDLE:
        return state
    return replace(state, phase=Phase.DETECTING)


def configure(
    state: SessionState,
    activity: Optional[str] = None,
    target: Optional[int] = None
) -> SessionState:
    """Apply a new activity and/or target.

    The count and cooldown always reset and a running session goes back
    through Idle to Detecting. An idle session stays idle.
    """
    fresh = new_session(
        activity if activity is not None else state.selected_activity,
        target if target is not None else state.target_count,
    )
    if state.phase is Phase.IDLE:
        return fresh
    return start(fresh)


def top_prediction(predictions: Iterable[Prediction]) -> Optional[Prediction]:
    """Highest probability prediction; the earliest one wins ties."""
    best = None
    for prediction in predictions:
        if best is None or prediction.probability > best.probability:
            best = prediction
    return best


def is_hit(prediction: Prediction, activity: str, hit_probability: float = 1.0) -> bool:
    """Whether the top prediction counts as a correct repetition.

    The probability must equal ``hit_probability`` exactly, not exceed a
    threshold.
    """
    return prediction.label == activity and prediction.probability == hit_probability


def register_hit(state: SessionState) -> Tuple[SessionState, bool]:
    """Apply one qualifying detection.

    Returns:
        Tuple of (new_state, counted). ``counted`` is True only when the
        count was incremented, which is also when the caller must schedule
        ``end_cooldown``.
    """
    if state.phase is not Phase.DETECTING or state.cooldown_active:
        return state, False

    count = state.current_count + 1
    phase = Phase.COMPLETED if count >= state.target_count else Phase.COOLDOWN
    return replace(state, current_count=count, cooldown_active=True, phase=phase), True


def end_cooldown(state: SessionState) -> SessionState:
    """Cooldown -> Detecting. A completed session only drops the flag."""
    if not state.cooldown_active:
        return state
    if state.phase is Phase.COOLDOWN:
        return replace(state, cooldown_active=False, phase=Phase.DETECTING)
    return replace(state, cooldown_active=False)


def complete(state: SessionState) -> SessionState:
    """Force the terminal state, e.g. on an explicit stop command."""
    return replace(state, phase=Phase.COMPLETED)


def progress_percent(state: SessionState) -> float:
    """Share of the target reached, capped at 100."""
    return min(state.current_count / state.target_count * 100.0, 100.0)
