"""State machine abstractions for explicit state management.

Both the recorder and the playback controller are small finite-state
machines. Spelling their transitions out here means:
- All valid states are enumerated
- Valid transitions are defined explicitly
- Invalid transitions are caught immediately (fail-fast)
- State history can be tracked for debugging a failed replay

Usage:
------
    recorder = create_recorder_state_machine()
    recorder.transition(RecorderState.RECORDING)  # OK
    recorder.transition(RecorderState.RECORDING)  # Raises InvalidStateError
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Generic, List, TypeVar

from replay.exceptions import InvalidStateError
from replay.result import Err, Ok, Result

# Type variable for state enum types
S = TypeVar("S", bound=Enum)


@dataclass
class StateTransition(Generic[S]):
    """Record of a state transition for debugging.

    Attributes:
        from_state: The state before transition
        to_state: The state after transition
        tick: The playback tick (or action index) when the transition occurred
        reason: Optional description of why transition happened
    """

    from_state: S
    to_state: S
    tick: int
    reason: str = ""


class StateMachine(Generic[S]):
    """A generic state machine with explicit transition validation.

    Example:
        machine = StateMachine(PlaybackState.IDLE, PLAYBACK_TRANSITIONS)
        machine.transition(PlaybackState.WAITING)  # OK
        machine.state  # PlaybackState.WAITING
    """

    def __init__(
        self,
        initial_state: S,
        valid_transitions: Dict[S, List[S]],
        track_history: bool = False,
        max_history: int = 100,
    ) -> None:
        """Initialize the state machine.

        Args:
            initial_state: The starting state
            valid_transitions: Map of state -> list of valid target states
            track_history: Whether to record transition history
            max_history: Maximum number of transitions to keep in history
        """
        self._state = initial_state
        self._transitions = valid_transitions
        self._track_history = track_history
        self._max_history = max_history
        self._history: List[StateTransition[S]] = []

        if initial_state not in valid_transitions:
            raise ValueError(
                f"Initial state {initial_state} not in valid_transitions. "
                f"Valid states: {list(valid_transitions.keys())}"
            )

    @property
    def state(self) -> S:
        """Get the current state."""
        return self._state

    @property
    def history(self) -> List[StateTransition[S]]:
        """Get transition history (empty if tracking disabled)."""
        return self._history.copy()

    def can_transition(self, target: S) -> bool:
        """Check if transition to target state is valid."""
        return target in self._transitions.get(self._state, [])

    def is_terminal(self) -> bool:
        """True when the current state has no outgoing transitions."""
        return not self._transitions.get(self._state)

    def try_transition(self, target: S, tick: int = 0, reason: str = "") -> Result[S, str]:
        """Attempt to transition to a new state.

        Returns Ok(new_state) if successful, Err(message) if invalid.
        """
        if not self.can_transition(target):
            valid_targets = self._transitions.get(self._state, [])
            return Err(
                f"Invalid transition: {self._state.name} -> {target.name}. "
                f"Valid targets from {self._state.name}: {[t.name for t in valid_targets]}"
            )

        old_state = self._state
        self._state = target

        if self._track_history:
            self._record_transition(old_state, target, tick, reason)

        return Ok(target)

    def transition(self, target: S, tick: int = 0, reason: str = "") -> S:
        """Transition to a new state, raising on invalid transition.

        Use this when an invalid transition is a programming error that
        should never happen. Use try_transition() when the transition
        might legitimately fail.

        Raises:
            InvalidStateError: If the transition is invalid
        """
        result = self.try_transition(target, tick, reason)
        if result.is_err():
            raise InvalidStateError(result.error)
        return result.unwrap()

    def _record_transition(self, from_state: S, to_state: S, tick: int, reason: str) -> None:
        self._history.append(
            StateTransition(
                from_state=from_state,
                to_state=to_state,
                tick=tick,
                reason=reason,
            )
        )

        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history :]

    def __repr__(self) -> str:
        return f"StateMachine(state={self._state.name})"


# ============================================================================
# Recorder State Machine
# ============================================================================


class RecorderState(Enum):
    """Lifecycle of an action recorder."""

    IDLE = "idle"
    RECORDING = "recording"


RECORDER_TRANSITIONS: Dict[RecorderState, List[RecorderState]] = {
    RecorderState.IDLE: [RecorderState.RECORDING],
    RecorderState.RECORDING: [RecorderState.IDLE],
}


def create_recorder_state_machine(track_history: bool = False) -> StateMachine[RecorderState]:
    """Create a state machine for the idle -> recording -> idle cycle."""
    return StateMachine(
        initial_state=RecorderState.IDLE,
        valid_transitions=RECORDER_TRANSITIONS,
        track_history=track_history,
    )


# ============================================================================
# Playback State Machine
# ============================================================================


class PlaybackState(Enum):
    """States of one playback run.

    IDLE is only the initial state; COMPLETE and ERROR are terminal for the run.
    """

    IDLE = "idle"
    WAITING = "waiting"  # Counting down before the next action
    EXECUTING = "executing"  # An action task is being stepped each tick
    PAUSED = "paused"  # Operator paused; countdown and task are frozen
    COMPLETE = "complete"  # Finished or cancelled
    ERROR = "error"  # Desynchronization or input failure


# Interval pseudo-actions are verified while still WAITING, hence WAITING -> ERROR.
PLAYBACK_TRANSITIONS: Dict[PlaybackState, List[PlaybackState]] = {
    PlaybackState.IDLE: [PlaybackState.WAITING],
    PlaybackState.WAITING: [
        PlaybackState.EXECUTING,
        PlaybackState.PAUSED,
        PlaybackState.COMPLETE,
        PlaybackState.ERROR,
    ],
    PlaybackState.EXECUTING: [
        PlaybackState.WAITING,
        PlaybackState.PAUSED,
        PlaybackState.COMPLETE,
        PlaybackState.ERROR,
    ],
    PlaybackState.PAUSED: [PlaybackState.WAITING, PlaybackState.COMPLETE],
    PlaybackState.COMPLETE: [],
    PlaybackState.ERROR: [],
}


def create_playback_state_machine(track_history: bool = True) -> StateMachine[PlaybackState]:
    """Create a state machine for one playback run.

    Args:
        track_history: Whether to track transition history (default True for debugging)
    """
    return StateMachine(
        initial_state=PlaybackState.IDLE,
        valid_transitions=PLAYBACK_TRANSITIONS,
        track_history=track_history,
    )
