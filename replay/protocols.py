"""Protocols describing what recording and playback need from a host.

The replay engine never touches rendering, layout or simulation rules
directly. A host (the interactive application, or the headless reference
host used in tests) satisfies these structural protocols instead:

    PlaybackViewState      - where things are on screen, what is animating
    PlaybackInputSimulator - synthesize the inputs a real user would make
    BackgroundTimeControl  - advance or freeze the background engine
    ModelAccess            - snapshots and the injected RNG
    PlaybackLifecycle      - callbacks the playback controller fires

``SimulationHost`` is what the coordinator wraps; ``PlaybackHost`` is what
the playback controller drives. A non-GUI host can satisfy all of them with
plain function calls against an in-memory model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from replay.playback.controller import PlaybackFailure
    from replay.result import Result
    from replay.session.models import RecordedAction
    from replay.session.snapshots import ModelSnapshot, OrchestratorSnapshot
    from replay.util.rng import ModelRNG


@dataclass(frozen=True)
class ScreenPoint:
    x: float
    y: float


@dataclass(frozen=True)
class MenuSliceInfo:
    """Location of an action inside the currently open pie menu."""

    slice_index: int
    item_count: int


@dataclass(frozen=True)
class InputResult:
    """Outcome of a synthesized input.

    Attributes:
        success: Whether the input hit something actionable
        error: Why the input failed, when it did
        message: Extra detail, e.g. "thought-bubble-dismissed" when the click
            only closed a bubble and must be repeated
    """

    success: bool
    error: Optional[str] = None
    message: Optional[str] = None


@runtime_checkable
class PlaybackViewState(Protocol):
    """Read-only view geometry and animation state."""

    def get_subject_screen_position(self, subject_id: str) -> Optional[ScreenPoint]:
        """Screen position of a subject or special control, None if not shown."""
        ...

    def get_menu_center(self) -> Optional[ScreenPoint]:
        """Centre of the open pie menu, None when no menu is open."""
        ...

    def get_menu_slice_position(
        self, index: int, center: ScreenPoint, item_count: int
    ) -> ScreenPoint:
        ...

    def is_view_transitioning(self) -> bool:
        ...

    def has_pending_queued_operations(self) -> bool:
        """True while queued blend operations have not been applied yet."""
        ...

    def has_active_exit_animations(self) -> bool:
        ...

    def find_action_in_open_menu(self, action_id: str) -> Optional[MenuSliceInfo]:
        """Find ``action_id`` in the open menu.

        Returns:
            Slice location, or None if no menu is open or it lacks the action
        """
        ...

    def get_mode(self) -> str:
        """Current view mode, "panorama" or "foreground"."""
        ...


@runtime_checkable
class PlaybackInputSimulator(Protocol):
    """Synthesizes user input through the same paths a real user takes."""

    def simulate_hover(self, x: float, y: float) -> None:
        ...

    def simulate_click_at_position(self, x: float, y: float) -> InputResult:
        ...

    def simulate_click_on_subject(self, subject_id: str) -> InputResult:
        ...

    def get_last_action_result(self) -> Optional[InputResult]:
        """Result of the last completed model action, if any was reported."""
        ...

    def clear_last_action_result(self) -> None:
        ...


@runtime_checkable
class BackgroundTimeControl(Protocol):
    """Control over the simulation's background behaviour engine."""

    def advance_background_ticks(self, count: int) -> None:
        """Apply exactly ``count`` discrete background ticks, instantly."""
        ...

    def get_background_diagnostics(self) -> Dict[str, Any]:
        ...

    def suspend_background_time(self) -> None:
        """Stop background time from advancing with real elapsed time."""
        ...

    def resume_background_time(self) -> None:
        ...

    def execute_spontaneous_blend(self, subject_id: str) -> None:
        """Replay a blend the background engine raised on its own."""
        ...


@runtime_checkable
class ModelAccess(Protocol):
    """Snapshots of, and the RNG injected into, the simulation model."""

    def get_model_snapshot(self) -> ModelSnapshot:
        ...

    def get_orchestrator_snapshot(self) -> Optional[OrchestratorSnapshot]:
        ...

    def restore_orchestrator_snapshot(self, snapshot: OrchestratorSnapshot) -> None:
        ...

    def get_subject_name(self, subject_id: str) -> str:
        """Human-readable name of a subject (the id itself if unknown)."""
        ...

    def set_rng(self, rng: ModelRNG) -> None:
        """Make ``rng`` the sole source of randomness for the model."""
        ...


@runtime_checkable
class PlaybackLifecycle(Protocol):
    """Callbacks fired by the playback controller."""

    def on_action_completed(self, action: RecordedAction) -> Result[None, str]:
        """Verify the live state after ``action``; Err carries the diagnosis."""
        ...

    def on_playback_complete(self) -> None:
        ...

    def on_playback_cancelled(self) -> None:
        ...

    def on_playback_error(self, failure: PlaybackFailure) -> None:
        ...


@runtime_checkable
class SimulationHost(
    PlaybackViewState, PlaybackInputSimulator, BackgroundTimeControl, ModelAccess, Protocol
):
    """Everything a host exposes about its simulation."""


@runtime_checkable
class PlaybackHost(
    PlaybackViewState,
    PlaybackInputSimulator,
    BackgroundTimeControl,
    PlaybackLifecycle,
    Protocol,
):
    """What the playback controller consumes."""

    def get_subject_name(self, subject_id: str) -> str:
        ...

    def restore_orchestrator_snapshot(self, snapshot: OrchestratorSnapshot) -> None:
        ...
