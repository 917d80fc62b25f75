"""Headless host: a complete ``SimulationHost`` without a screen.

Lays subjects out on a fixed grid, opens pie menus on click and keeps the
cosmetic timers (view transitions, exit animations, queued blends) a GUI
would have, so the playback controller can drive it through exactly the
same input paths as a real application.

Background time advances in ``update(dt)`` only while nothing is queued,
and every model action that runs, whether triggered by input or by the
background engine, is reported through ``on_action``. Wire both callbacks
to a coordinator with ``attach`` to record a session.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from replay.actions import (
    CLOUD_MENU_ACTIONS,
    MODE_CHANGE,
    MODE_TOGGLE_CLOUD_ID,
    RAY_CLOUD_ID,
    RAY_FIELD_ACTIONS,
    RAY_FIELD_SELECT,
    SELECT_TARGET,
    SPONTANEOUS_BLEND,
    STAR_CLOUD_ID,
    STAR_MENU_ACTIONS,
    is_star_menu_action,
)
from replay.config.playback import CLICK_RETRY_LIMIT
from replay.headless.model import FOREGROUND, PANORAMA
from replay.headless.simulator import HeadlessSimulator
from replay.playback.controller import THOUGHT_BUBBLE_DISMISSED
from replay.protocols import InputResult, MenuSliceInfo, ScreenPoint
from replay.session.models import RecordedAction
from replay.session.snapshots import (
    AttentionDemand,
    ModelSnapshot,
    OrchestratorSnapshot,
    ViewSnapshot,
)
from replay.util.rng import ModelRNG

logger = logging.getLogger(__name__)

SCREEN_WIDTH = 800
SCREEN_HEIGHT = 600
GRID_COLUMNS = 5
MENU_RADIUS = 60.0
SUBJECT_HIT_RADIUS = 40.0
SLICE_HIT_RADIUS = 25.0
BUBBLE_HIT_RADIUS = 20.0
BUBBLE_OFFSET_Y = -60.0
TRANSITION_SECONDS = 0.6
EXIT_ANIMATION_SECONDS = 0.8

STAR_POSITION = ScreenPoint(SCREEN_WIDTH / 2, SCREEN_HEIGHT - 80)
MODE_TOGGLE_POSITION = ScreenPoint(SCREEN_WIDTH - 26, 26)

ActionListener = Callable[[RecordedAction], Any]
TickListener = Callable[[int, Tuple[AttentionDemand, ...], OrchestratorSnapshot], Any]


@dataclass
class _OpenMenu:
    owner: str
    center: ScreenPoint
    items: List[str]


def _distance(a: ScreenPoint, x: float, y: float) -> float:
    return math.hypot(a.x - x, a.y - y)


class HeadlessHost:
    """Screenless host around a ``HeadlessSimulator``.

    Attributes:
        on_action: Called with every action that ran successfully
        on_background_ticks: Called with (count, demands, orchestrator before)
            after each batch of real-time background ticks
    """

    def __init__(self, simulator: HeadlessSimulator) -> None:
        self.simulator = simulator
        self.on_action: Optional[ActionListener] = None
        self.on_background_ticks: Optional[TickListener] = None
        self._menu: Optional[_OpenMenu] = None
        self._last_action_result: Optional[InputResult] = None
        self._background_suspended = False
        self._transition_remaining = 0.0
        self._transition_direction = "none"
        self._exit_animation_remaining = 0.0
        self._hover: Optional[ScreenPoint] = None

    def attach(self, coordinator: Any) -> None:
        """Report executed actions and background ticks to ``coordinator``."""
        self.on_action = coordinator.record_action
        self.on_background_ticks = coordinator.on_background_ticks

    def export_model(self) -> Dict[str, Any]:
        """Opaque model dict from which a fresh host can be rebuilt."""
        return self.simulator.to_model_dict()

    @property
    def mode(self) -> str:
        return self.simulator.model.mode

    # ------------------------------------------------------------------
    # Frame update
    # ------------------------------------------------------------------

    def update(self, dt: float) -> None:
        """Advance cosmetic timers and, unless suspended, background time."""
        self._transition_remaining = max(0.0, self._transition_remaining - dt)
        if self._transition_remaining == 0.0:
            self._transition_direction = "none"
        self._exit_animation_remaining = max(0.0, self._exit_animation_remaining - dt)

        model = self.simulator.model
        if model.pending_blends:
            self.simulator.resolve_pending_blends(dt)
        if self._background_suspended or model.pending_blends:
            return

        before = self.simulator.get_orchestrator_snapshot()
        batch = self.simulator.advance_time(dt)
        if batch.count == 0:
            return
        if self.on_background_ticks is not None:
            self.on_background_ticks(batch.count, batch.demands, before)
        self._handle_demands(batch.demands)

    def _handle_demands(self, demands: Iterable[AttentionDemand]) -> None:
        for cloud_id in dict.fromkeys(d.cloud_id for d in demands):
            if self.simulator.model.is_blended(cloud_id):
                continue
            logger.info("%s demands attention", self.get_subject_name(cloud_id))
            self._apply(RecordedAction(SPONTANEOUS_BLEND, cloud_id=cloud_id))

    # ------------------------------------------------------------------
    # Scripted user input (for driving recordings)
    # ------------------------------------------------------------------

    def perform(
        self,
        action: str,
        cloud_id: str = "",
        target_cloud_id: Optional[str] = None,
        field: Optional[str] = None,
        new_mode: Optional[str] = None,
    ) -> InputResult:
        """Carry out ``action`` the way a user would, through clicks.

        Raises:
            ValueError: For actions a user cannot perform directly
        """
        if action == SPONTANEOUS_BLEND:
            raise ValueError("Spontaneous blends are raised by the simulation, not the user")
        # Input waits for queued blends, as playback does
        self.simulator.resolve_pending_blends()

        if action == MODE_CHANGE:
            if self.mode == new_mode:
                return InputResult(True)
            return self.simulate_click_on_subject(MODE_TOGGLE_CLOUD_ID)

        if action == SELECT_TARGET:
            if self.mode != PANORAMA:
                self.simulate_click_on_subject(MODE_TOGGLE_CLOUD_ID)
            return self.simulate_click_on_subject(cloud_id)

        if target_cloud_id:
            return self.simulate_click_on_subject(target_cloud_id)

        if action == RAY_FIELD_SELECT:
            menu_id, item = RAY_CLOUD_ID, field or ""
        elif is_star_menu_action(action):
            menu_id, item = STAR_CLOUD_ID, action
        else:
            menu_id, item = cloud_id, action

        opened = self.simulate_click_on_subject(menu_id)
        if not opened.success:
            return opened
        slice_info = self.find_action_in_open_menu(item)
        center = self.get_menu_center()
        if slice_info is None or center is None:
            return InputResult(False, error=f"'{item}' is not in the menu")

        position = self.get_menu_slice_position(slice_info.slice_index, center, slice_info.item_count)
        result = self.simulate_click_at_position(position.x, position.y)
        retries = 0
        while result.message == THOUGHT_BUBBLE_DISMISSED and retries < CLICK_RETRY_LIMIT:
            retries += 1
            result = self.simulate_click_at_position(position.x, position.y)
        return result

    # ------------------------------------------------------------------
    # PlaybackViewState
    # ------------------------------------------------------------------

    def get_subject_screen_position(self, subject_id: str) -> Optional[ScreenPoint]:
        if subject_id == STAR_CLOUD_ID:
            return STAR_POSITION
        if subject_id == MODE_TOGGLE_CLOUD_ID:
            return MODE_TOGGLE_POSITION
        if subject_id == RAY_CLOUD_ID:
            ray_target = self.simulator.model.self_ray
            if ray_target is None:
                return None
            target = self._part_position(ray_target)
            if target is None:
                return None
            return ScreenPoint((STAR_POSITION.x + target.x) / 2, (STAR_POSITION.y + target.y) / 2)
        return self._part_position(subject_id)

    def _part_position(self, cloud_id: str) -> Optional[ScreenPoint]:
        for index, part_id in enumerate(self.simulator.model.parts):
            if part_id == cloud_id:
                column, row = index % GRID_COLUMNS, index // GRID_COLUMNS
                return ScreenPoint(120.0 + 140.0 * column, 250.0 + 120.0 * row)
        return None

    def get_menu_center(self) -> Optional[ScreenPoint]:
        return self._menu.center if self._menu else None

    def get_menu_slice_position(self, index: int, center: ScreenPoint, item_count: int) -> ScreenPoint:
        angle = -math.pi / 2 + index * 2 * math.pi / max(item_count, 1)
        return ScreenPoint(
            center.x + MENU_RADIUS * math.cos(angle),
            center.y + MENU_RADIUS * math.sin(angle),
        )

    def is_view_transitioning(self) -> bool:
        return self._transition_remaining > 0

    def has_pending_queued_operations(self) -> bool:
        return bool(self.simulator.model.pending_blends)

    def has_active_exit_animations(self) -> bool:
        return self._exit_animation_remaining > 0

    def find_action_in_open_menu(self, action_id: str) -> Optional[MenuSliceInfo]:
        if self._menu is None or action_id not in self._menu.items:
            return None
        return MenuSliceInfo(self._menu.items.index(action_id), len(self._menu.items))

    def get_mode(self) -> str:
        return self.mode

    # ------------------------------------------------------------------
    # PlaybackInputSimulator
    # ------------------------------------------------------------------

    def simulate_hover(self, x: float, y: float) -> None:
        self._hover = ScreenPoint(x, y)

    def simulate_click_at_position(self, x: float, y: float) -> InputResult:
        model = self.simulator.model
        for bubble in reversed(model.thought_bubbles):
            anchor = self._part_position(bubble.cloud_id)
            if anchor is None:
                continue
            bubble_point = ScreenPoint(anchor.x, anchor.y + BUBBLE_OFFSET_Y)
            if _distance(bubble_point, x, y) <= BUBBLE_HIT_RADIUS:
                model.dismiss_bubble(bubble.id)
                return InputResult(True, message=THOUGHT_BUBBLE_DISMISSED)

        menu = self._menu
        if menu is not None:
            hit = self._slice_at(menu, x, y)
            self._menu = None
            if hit is not None:
                return self._select_menu_item(menu, hit)

        for subject_id in (MODE_TOGGLE_CLOUD_ID, STAR_CLOUD_ID, RAY_CLOUD_ID, *model.parts):
            position = self.get_subject_screen_position(subject_id)
            if position is not None and _distance(position, x, y) <= SUBJECT_HIT_RADIUS:
                return self.simulate_click_on_subject(subject_id)
        return InputResult(False, error=f"Nothing at ({x:.0f}, {y:.0f})")

    def _slice_at(self, menu: _OpenMenu, x: float, y: float) -> Optional[str]:
        best: Optional[Tuple[float, str]] = None
        for index, item in enumerate(menu.items):
            position = self.get_menu_slice_position(index, menu.center, len(menu.items))
            distance = _distance(position, x, y)
            if distance <= SLICE_HIT_RADIUS and (best is None or distance < best[0]):
                best = (distance, item)
        return best[1] if best else None

    def _select_menu_item(self, menu: _OpenMenu, item: str) -> InputResult:
        if menu.owner == RAY_CLOUD_ID:
            ray_target = self.simulator.model.self_ray or ""
            return self._apply(RecordedAction(RAY_FIELD_SELECT, cloud_id=ray_target, field=item))
        if menu.owner == STAR_CLOUD_ID:
            return self._apply(RecordedAction(item))
        return self._apply(RecordedAction(item, cloud_id=menu.owner))

    def simulate_click_on_subject(self, subject_id: str) -> InputResult:
        model = self.simulator.model
        if subject_id == MODE_TOGGLE_CLOUD_ID:
            self._menu = None
            other = FOREGROUND if model.mode == PANORAMA else PANORAMA
            return self._apply(RecordedAction(MODE_CHANGE, new_mode=other))
        if subject_id == STAR_CLOUD_ID:
            self._open_menu(STAR_CLOUD_ID, [a.id for a in STAR_MENU_ACTIONS])
            return InputResult(True)
        if subject_id == RAY_CLOUD_ID:
            if model.self_ray is None:
                return InputResult(False, error="No self ray to click")
            self._open_menu(RAY_CLOUD_ID, [a.id for a in RAY_FIELD_ACTIONS])
            return InputResult(True)
        if not model.has_part(subject_id):
            return InputResult(False, error=f"Subject not found: {subject_id}")

        self._menu = None
        pending = model.pending_action
        if pending is not None:
            source = pending.source_cloud_id or subject_id
            return self._apply(
                RecordedAction(pending.action_id, cloud_id=source, target_cloud_id=subject_id)
            )
        if model.mode == PANORAMA:
            return self._apply(RecordedAction(SELECT_TARGET, cloud_id=subject_id))
        self._open_menu(subject_id, self._cloud_menu_items(subject_id))
        return InputResult(True)

    def _cloud_menu_items(self, cloud_id: str) -> List[str]:
        model = self.simulator.model
        blended = model.is_blended(cloud_id)
        items = []
        for action in CLOUD_MENU_ACTIONS:
            if action.id == "separate" and not blended:
                continue
            if action.id == "blend" and (blended or model.is_pending_blend(cloud_id)):
                continue
            if action.id == "join_conference" and (model.is_target(cloud_id) or blended):
                continue
            items.append(action.id)
        return items

    def _open_menu(self, owner: str, items: List[str]) -> None:
        center = self.get_subject_screen_position(owner)
        if center is None:
            return
        self._menu = _OpenMenu(owner, center, items)

    def get_last_action_result(self) -> Optional[InputResult]:
        return self._last_action_result

    def clear_last_action_result(self) -> None:
        self._last_action_result = None

    def _apply(self, action: RecordedAction) -> InputResult:
        model = self.simulator.model
        mode_before = model.mode
        outcome = self.simulator.execute_action(
            action.action,
            action.cloud_id,
            action.target_cloud_id,
            action.field,
            action.new_mode,
        )
        result = InputResult(
            outcome.success,
            error=None if outcome.success else outcome.message,
            message=outcome.message or None,
        )
        self._last_action_result = result
        if not outcome.success:
            logger.info("Action %s on %s failed: %s", action.action, action.cloud_id, outcome.message)
            return result

        if model.mode != mode_before:
            self._transition_remaining = TRANSITION_SECONDS
            self._transition_direction = "forward" if model.mode == FOREGROUND else "reverse"
        if action.action in (SPONTANEOUS_BLEND, "step_back"):
            self._exit_animation_remaining = EXIT_ANIMATION_SECONDS
        if self.on_action is not None:
            self.on_action(action)
        return result

    # ------------------------------------------------------------------
    # BackgroundTimeControl
    # ------------------------------------------------------------------

    def advance_background_ticks(self, count: int) -> None:
        self.simulator.advance_intervals(count)

    def get_background_diagnostics(self) -> Dict[str, Any]:
        return {
            "accumulatedTime": self.simulator.time.accumulated_time,
            "intervalCount": self.simulator.time.interval_count,
            "suspended": self._background_suspended,
            "pendingBlends": len(self.simulator.model.pending_blends),
            "rngCount": self.simulator.rng_count,
        }

    def suspend_background_time(self) -> None:
        self._background_suspended = True

    def resume_background_time(self) -> None:
        self._background_suspended = False

    def execute_spontaneous_blend(self, subject_id: str) -> None:
        self._apply(RecordedAction(SPONTANEOUS_BLEND, cloud_id=subject_id))

    # ------------------------------------------------------------------
    # ModelAccess
    # ------------------------------------------------------------------

    def get_model_snapshot(self) -> ModelSnapshot:
        return self.simulator.get_model_snapshot(self._view_snapshot())

    def _view_snapshot(self) -> ViewSnapshot:
        model = self.simulator.model
        progress = 0.0
        if self._transition_remaining > 0:
            progress = 1.0 - self._transition_remaining / TRANSITION_SECONDS
        return ViewSnapshot(
            mode=model.mode,
            seats=tuple(model.targets),
            transition_direction=self._transition_direction,
            transition_progress=progress,
        )

    def get_orchestrator_snapshot(self) -> OrchestratorSnapshot:
        return self.simulator.get_orchestrator_snapshot()

    def restore_orchestrator_snapshot(self, snapshot: OrchestratorSnapshot) -> None:
        self.simulator.restore_orchestrator_snapshot(snapshot)

    def get_subject_name(self, subject_id: str) -> str:
        if subject_id == STAR_CLOUD_ID:
            return "Self"
        if subject_id == RAY_CLOUD_ID:
            return "Self ray"
        if subject_id == MODE_TOGGLE_CLOUD_ID:
            return "Mode toggle"
        return self.simulator.model.part_name(subject_id)

    def set_rng(self, rng: ModelRNG) -> None:
        self.simulator.set_rng(rng)
