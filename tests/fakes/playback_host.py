"""Scriptable fake playback host.

Implements the ``PlaybackHost`` protocol with plain bookkeeping: every
input the controller synthesizes is appended to ``events`` so tests can
assert on exactly what was clicked, in which order, and when.
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional

from replay.protocols import InputResult, MenuSliceInfo, ScreenPoint
from replay.result import Err, Ok, Result
from replay.session.models import RecordedAction
from replay.session.snapshots import OrchestratorSnapshot

CLOUD_MENU = ["notice_part", "who_do_you_see", "job", "be_with", "validate"]


class FakePlaybackHost:
    """A host whose busy flags, click outcomes and verification are scripted.

    Attributes:
        events: ("click", subject), ("click_at", x, y), ("hover", x, y), ("ticks", n),
            ("restore", snapshot) and ("spontaneous", subject) in call order
        transition_polls: Remaining polls for which a view transition is reported
        pending_polls: Remaining polls for which queued operations are reported
        exit_polls: Remaining polls for which exit animations are reported
        position_results: Results returned by successive position clicks
        subject_results: Fixed click result per subject
        action_results: Last-action result reported after clicking a subject
        verify_failures: Verification call number -> error message to return
    """

    def __init__(self) -> None:
        self.mode = "panorama"
        self.positions: Dict[str, ScreenPoint] = {
            "*": ScreenPoint(400, 520),
            "*mode*": ScreenPoint(774, 26),
            "*ray*": ScreenPoint(400, 400),
            "p1": ScreenPoint(120, 250),
            "p2": ScreenPoint(260, 250),
        }
        self.names = {"p1": "Critic", "p2": "Exile", "*": "Self"}
        self.menus: Dict[str, List[str]] = {
            "*": ["feel_toward", "expand_deepen"],
            "*ray*": ["age", "identity", "gratitude"],
            "p1": list(CLOUD_MENU),
            "p2": list(CLOUD_MENU),
        }
        self.open_menu: Optional[str] = None
        self.events: List[Any] = []
        self.transition_polls = 0
        self.pending_polls = 0
        self.exit_polls = 0
        self.position_results: Deque[InputResult] = deque()
        self.subject_results: Dict[str, InputResult] = {}
        self.action_results: Dict[str, InputResult] = {}
        self.last_action_result: Optional[InputResult] = None
        self.verify_failures: Dict[int, str] = {}
        self.verified: List[RecordedAction] = []
        self.suspended = False
        self.completed = False
        self.cancel_calls = 0
        self.resume_calls = 0
        self.failures: List[Any] = []

    # PlaybackViewState

    def get_subject_screen_position(self, subject_id: str) -> Optional[ScreenPoint]:
        return self.positions.get(subject_id)

    def get_menu_center(self) -> Optional[ScreenPoint]:
        if self.open_menu is None:
            return None
        return self.positions[self.open_menu]

    def get_menu_slice_position(self, index: int, center: ScreenPoint, item_count: int) -> ScreenPoint:
        return ScreenPoint(center.x + 10 * index, center.y - 60)

    def is_view_transitioning(self) -> bool:
        return self._poll("transition_polls")

    def has_pending_queued_operations(self) -> bool:
        return self._poll("pending_polls")

    def has_active_exit_animations(self) -> bool:
        return self._poll("exit_polls")

    def _poll(self, attr: str) -> bool:
        remaining = getattr(self, attr)
        if remaining <= 0:
            return False
        setattr(self, attr, remaining - 1)
        return True

    def find_action_in_open_menu(self, action_id: str) -> Optional[MenuSliceInfo]:
        if self.open_menu is None:
            return None
        items = self.menus[self.open_menu]
        if action_id not in items:
            return None
        return MenuSliceInfo(items.index(action_id), len(items))

    def get_mode(self) -> str:
        return self.mode

    # PlaybackInputSimulator

    def simulate_hover(self, x: float, y: float) -> None:
        self.events.append(("hover", x, y))

    def simulate_click_at_position(self, x: float, y: float) -> InputResult:
        self.events.append(("click_at", x, y))
        result = self.position_results.popleft() if self.position_results else InputResult(True)
        if result.message is None:
            self.open_menu = None
        return result

    def simulate_click_on_subject(self, subject_id: str) -> InputResult:
        self.events.append(("click", subject_id))
        if subject_id in self.subject_results:
            return self.subject_results[subject_id]
        if subject_id not in self.positions:
            return InputResult(False, error=f"Subject not found: {subject_id}")
        if subject_id == "*mode*":
            self.mode = "foreground" if self.mode == "panorama" else "panorama"
        elif subject_id in self.menus:
            self.open_menu = subject_id
        if subject_id in self.action_results:
            self.last_action_result = self.action_results[subject_id]
        return InputResult(True)

    def get_last_action_result(self) -> Optional[InputResult]:
        return self.last_action_result

    def clear_last_action_result(self) -> None:
        self.last_action_result = None

    # BackgroundTimeControl

    def advance_background_ticks(self, count: int) -> None:
        self.events.append(("ticks", count))

    def get_background_diagnostics(self) -> Dict[str, Any]:
        return {"suspended": self.suspended}

    def suspend_background_time(self) -> None:
        self.suspended = True

    def resume_background_time(self) -> None:
        self.suspended = False
        self.resume_calls += 1

    def execute_spontaneous_blend(self, subject_id: str) -> None:
        self.events.append(("spontaneous", subject_id))

    def restore_orchestrator_snapshot(self, snapshot: OrchestratorSnapshot) -> None:
        self.events.append(("restore", snapshot))

    def get_subject_name(self, subject_id: str) -> str:
        return self.names.get(subject_id, subject_id)

    # PlaybackLifecycle

    def on_action_completed(self, action: RecordedAction) -> Result[None, str]:
        index = len(self.verified)
        self.verified.append(action)
        if index in self.verify_failures:
            return Err(self.verify_failures[index])
        return Ok(None)

    def on_playback_complete(self) -> None:
        self.completed = True

    def on_playback_cancelled(self) -> None:
        self.cancel_calls += 1

    def on_playback_error(self, failure: Any) -> None:
        self.failures.append(failure)

    # Helpers for assertions

    def clicks(self) -> List[str]:
        return [e[1] for e in self.events if e[0] == "click"]

    def position_clicks(self) -> int:
        return sum(1 for e in self.events if e[0] == "click_at")
