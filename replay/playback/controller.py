"""Playback controller.

Replays a recorded session against a live host by synthesizing the inputs
the recording user made, one action at a time, and asking the host to
verify the live state after each one.

The controller is single-threaded and cooperatively scheduled. The host
calls ``update(dt)`` once per frame and nothing else drives it:

    WAITING    count down the pause between actions
    EXECUTING  step the current action task once
    PAUSED     nothing moves (countdown and task are frozen)

An action task is a generator. Every place where the recording user would
have waited (a view transition, queued operations, exit animations, a
hover dwell) is a ``yield`` that resumes on the next frame with that
frame's delta time. Waits on presentation effects are bounded: when one
times out the controller logs a warning and carries on, because those
conditions are about animation timing, not simulation state.

Verification failures end the run in ERROR. Nothing is retried.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Generator, Optional, Tuple

from replay.actions import (
    MODE_CHANGE,
    MODE_TOGGLE_CLOUD_ID,
    RAY_CLOUD_ID,
    RAY_FIELD_SELECT,
    SELECT_TARGET,
    SPONTANEOUS_BLEND,
    STAR_CLOUD_ID,
    format_action_label,
    is_cloud_menu_action,
    is_star_menu_action,
)
from replay.config.playback import PlaybackConfig
from replay.exceptions import InvalidStateError
from replay.playback.panel import PlaybackPanel
from replay.protocols import InputResult, MenuSliceInfo, PlaybackHost
from replay.session.models import RecordedAction, RecordedSession
from replay.state_machine import PlaybackState, create_playback_state_machine

logger = logging.getLogger(__name__)

THOUGHT_BUBBLE_DISMISSED = "thought-bubble-dismissed"

# A step of an action task: yields to wait a frame, receives that frame's dt,
# returns whether it succeeded.
Task = Generator[None, float, bool]

_ACTIVE_STATES = (PlaybackState.WAITING, PlaybackState.EXECUTING, PlaybackState.PAUSED)


@dataclass(frozen=True)
class PlaybackFailure:
    """Why a playback run stopped in ERROR.

    Attributes:
        message: Human-readable diagnosis
        action_index: Index of the failing action in the session
        action: The failing action, if any
    """

    message: str
    action_index: int
    action: Optional[RecordedAction] = None


class PlaybackController:
    """Timed state machine that replays a session through a host."""

    def __init__(self, host: PlaybackHost, config: Optional[PlaybackConfig] = None) -> None:
        self._host = host
        self._config = config or PlaybackConfig()
        self._machine = create_playback_state_machine()
        self._session: Optional[RecordedSession] = None
        self._actions: Tuple[RecordedAction, ...] = ()
        self._index = 0
        self._countdown = 0.0
        self._task: Optional[Generator[None, float, None]] = None
        self._stepping = False
        self._can_resume = True
        self._torn_down = True
        self._error_message = ""
        self._error_index: Optional[int] = None
        self._panel = PlaybackPanel(
            on_pause=self.pause,
            on_resume=self.resume,
            on_cancel=self.cancel,
            on_advance=self.advance,
            long_wait_threshold=self._config.long_wait_threshold,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self._machine.state

    @property
    def is_playing(self) -> bool:
        return self.state in (PlaybackState.WAITING, PlaybackState.EXECUTING)

    @property
    def is_paused(self) -> bool:
        return self.state == PlaybackState.PAUSED

    @property
    def is_active(self) -> bool:
        """True from start() until the run completes, fails or is cancelled."""
        return self.state in _ACTIVE_STATES

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def countdown(self) -> float:
        return self._countdown

    @property
    def error_message(self) -> str:
        return self._error_message

    @property
    def error_index(self) -> Optional[int]:
        return self._error_index

    @property
    def panel(self) -> PlaybackPanel:
        return self._panel

    @property
    def session(self) -> Optional[RecordedSession]:
        return self._session

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self, session: RecordedSession) -> None:
        """Begin replaying ``session``.

        Raises:
            InvalidStateError: If a run is already active
        """
        if self.is_active:
            raise InvalidStateError("Playback already active; cancel it before starting another")

        logger.info("[Playback] Starting playback with %d actions", len(session.actions))
        self._machine = create_playback_state_machine()
        self._session = session
        self._actions = tuple(session.actions)
        self._index = 0
        self._task = None
        self._can_resume = True
        self._torn_down = False
        self._error_message = ""
        self._error_index = None
        self._countdown = self._config.inter_action_delay
        self._machine.transition(PlaybackState.WAITING, reason="start")

        self._host.suspend_background_time()
        self._panel.show()
        self._refresh_panel()

    def update(self, delta_time: float) -> None:
        """Advance playback by one frame of ``delta_time`` seconds."""
        state = self.state
        if state == PlaybackState.WAITING:
            self._countdown -= delta_time
            if self._countdown <= 0:
                if self._task is not None:
                    # Task suspended by pause; pick it up where it stopped
                    self._machine.transition(PlaybackState.EXECUTING, self._index, "resume task")
                    self._step_task(0.0)
                else:
                    self._execute_next_action()
            self._refresh_panel()
        elif state == PlaybackState.EXECUTING:
            self._step_task(delta_time)
            self._refresh_panel()

    def pause(self) -> None:
        if not self.is_playing:
            return
        self._machine.transition(PlaybackState.PAUSED, self._index, "pause")
        self._refresh_panel()

    def resume(self) -> None:
        if self.state != PlaybackState.PAUSED or not self._can_resume:
            return
        self._machine.transition(PlaybackState.WAITING, self._index, "resume")
        self._refresh_panel()

    def advance(self) -> None:
        """Skip the rest of the current wait."""
        if self.state != PlaybackState.WAITING:
            return
        self._countdown = 0.0

    def cancel(self) -> None:
        """Stop the run and tear down. Does nothing once the run has ended."""
        if not self.is_active:
            return
        logger.info("[Playback] Cancelled at action %d of %d", self._index, len(self._actions))
        self._drop_task()
        self._machine.transition(PlaybackState.COMPLETE, self._index, "cancel")
        self._teardown()
        self._host.on_playback_cancelled()

    def dismiss(self) -> None:
        """Close the error panel after a failed run."""
        if self.state != PlaybackState.ERROR:
            return
        self._panel.hide()

    def on_user_state_modification(self) -> None:
        """The simulation was changed outside playback; the run cannot continue."""
        if not self.is_active:
            return
        logger.warning("[Playback] Simulation modified outside playback; cancelling")
        self._can_resume = False
        self.cancel()

    # ------------------------------------------------------------------
    # Action sequencing
    # ------------------------------------------------------------------

    def _execute_next_action(self) -> None:
        if self._index >= len(self._actions):
            self._complete()
            return

        action = self._actions[self._index]
        if action.is_interval:
            self._replay_intervals(action)
            return

        self._machine.transition(PlaybackState.EXECUTING, self._index, action.action)
        self._task = self._run_action(action)
        self._step_task(None)

    def _replay_intervals(self, action: RecordedAction) -> None:
        """Apply recorded background ticks; no input is synthesized."""
        count = action.count or 0
        if self._config.restore_orchestrator_on_intervals and action.orch_state is not None:
            self._host.restore_orchestrator_snapshot(action.orch_state)
        if count > 0:
            self._host.advance_background_ticks(count)

        if action.rng_count is not None:
            result = self._host.on_action_completed(action)
            if result.is_err():
                self._fail(str(result.error), f"action {self._index}")
                return

        logger.debug("[Playback] Action %d: %d background ticks", self._index, count)
        self._index += 1
        # Intervals run back to back with the action that follows them
        self._countdown = 0.0

    def _step_task(self, value: Optional[float]) -> None:
        task = self._task
        if task is None:
            return
        finished = False
        self._stepping = True
        try:
            task.send(value)  # type: ignore[arg-type]
        except StopIteration:
            finished = True
        finally:
            self._stepping = False

        if finished:
            self._task = None
            if self.state == PlaybackState.EXECUTING:
                self._finish_current_action()
        elif not self.is_active:
            self._drop_task()

    def _finish_current_action(self) -> None:
        action = self._actions[self._index]
        result = self._host.on_action_completed(action)
        if result.is_err():
            self._fail(str(result.error), f"action {self._index}")
            return
        logger.info("[Playback] Action %d (%s) completed and verified", self._index, action.action)
        self._index += 1
        self._advance_to_next_action()

    def _advance_to_next_action(self) -> None:
        if self._index < len(self._actions):
            self._countdown = self._config.inter_action_delay
            self._machine.transition(PlaybackState.WAITING, self._index, "next action")
        else:
            self._complete()

    def _complete(self) -> None:
        logger.info("[Playback] Playback complete (%d actions)", len(self._actions))
        self._machine.transition(PlaybackState.COMPLETE, self._index, "complete")
        self._refresh_panel()
        self._teardown()
        self._host.on_playback_complete()

    def _fail(self, message: str, context: str = "") -> None:
        full_message = f"{message} - {context}" if context else message
        self._error_message = full_message
        self._error_index = self._index
        action = self._actions[self._index] if self._index < len(self._actions) else None
        self._machine.transition(PlaybackState.ERROR, self._index, message)

        logger.error("[Playback Error] %s", full_message)
        logger.error(
            "[Playback] Failing action %d of %d: %s",
            self._index,
            len(self._actions),
            action,
        )
        if not self._torn_down:
            self._host.resume_background_time()
            self._torn_down = True
        self._host.on_playback_error(
            PlaybackFailure(message=full_message, action_index=self._index, action=action)
        )
        self._refresh_panel()

    def _teardown(self) -> None:
        self._panel.hide()
        if self._torn_down:
            return
        self._torn_down = True
        self._host.resume_background_time()

    def _drop_task(self) -> None:
        # A task cannot be closed from inside its own step; _step_task
        # drops it once the step returns.
        if self._task is not None and not self._stepping:
            self._task.close()
            self._task = None

    def _refresh_panel(self) -> None:
        next_action = self._next_displayable_action()
        label = format_action_label(next_action, self._host.get_subject_name) if next_action else ""
        self._panel.refresh(self.state, self._countdown, label, self._error_message)

    def _next_displayable_action(self) -> Optional[RecordedAction]:
        for action in self._actions[self._index :]:
            if not action.is_interval:
                return action
        return None

    # ------------------------------------------------------------------
    # Action tasks
    # ------------------------------------------------------------------

    def _run_action(self, action: RecordedAction) -> Generator[None, float, None]:
        kind = action.action
        logger.info(
            "[Playback] executeAction #%d: %s cloudId=%s targetCloudId=%s",
            self._index,
            kind,
            action.cloud_id,
            action.target_cloud_id,
        )

        if kind == SPONTANEOUS_BLEND:
            self._host.execute_spontaneous_blend(action.cloud_id)
            yield from self._wait_until_clear(
                self._host.has_active_exit_animations,
                self._config.exit_animation_timeout,
                "exit animations",
            )
            return

        yield from self._wait_until_clear(
            self._host.is_view_transitioning, self._config.transition_timeout, "transition"
        )
        yield from self._wait_until_clear(
            self._host.has_pending_queued_operations,
            self._config.pending_operations_timeout,
            "pending blends",
        )

        if kind == SELECT_TARGET:
            yield from self._execute_select_target(action)
        elif kind == RAY_FIELD_SELECT:
            yield from self._execute_ray_field_action(action)
        elif kind == MODE_CHANGE:
            yield from self._execute_mode_change(action)
        elif is_star_menu_action(kind) or is_cloud_menu_action(kind):
            yield from self._execute_menu_action(action)
        else:
            logger.warning("[Playback] Unknown action: %s", kind)

    def _execute_select_target(self, action: RecordedAction) -> Task:
        yield from self._toggle_to_panorama()
        return (yield from self._hover_and_click_subject(action.cloud_id))

    def _execute_menu_action(self, action: RecordedAction) -> Task:
        kind = action.action
        if action.target_cloud_id:
            # Completes a pending action: only the target needs clicking
            return (
                yield from self._hover_and_click_subject(
                    action.target_cloud_id,
                    f"{kind} target {action.target_cloud_id}",
                    expect_action=True,
                )
            )

        menu_id = STAR_CLOUD_ID if is_star_menu_action(kind) else action.cloud_id
        opened = yield from self._hover_and_click_subject(menu_id, f"opening menu for {menu_id}")
        if not opened:
            return False

        slice_info = self._host.find_action_in_open_menu(kind)
        if slice_info is None:
            self._fail(f"Action '{kind}' not found in open menu", menu_id)
            return False
        return (yield from self._select_slice(menu_id, slice_info))

    def _execute_ray_field_action(self, action: RecordedAction) -> Task:
        opened = yield from self._hover_and_click_subject(RAY_CLOUD_ID, "opening ray menu")
        if not opened:
            return False

        slice_info = self._host.find_action_in_open_menu(action.field or "")
        if slice_info is None:
            self._fail(f"Field '{action.field}' not found in ray menu", action.cloud_id)
            return False
        return (yield from self._select_slice(RAY_CLOUD_ID, slice_info))

    def _execute_mode_change(self, action: RecordedAction) -> Task:
        target_mode = action.new_mode
        if not target_mode or self._host.get_mode() == target_mode:
            return True
        return (yield from self._hover_and_click_subject(MODE_TOGGLE_CLOUD_ID, f"mode -> {target_mode}"))

    def _toggle_to_panorama(self) -> Task:
        if self._host.get_mode() == "panorama":
            return True
        toggled = yield from self._hover_and_click_subject(MODE_TOGGLE_CLOUD_ID, "mode toggle")
        yield from self._delay(self._config.intra_action_delay)
        return toggled

    def _select_slice(self, menu_id: str, slice_info: MenuSliceInfo) -> Task:
        center = self._host.get_menu_center()
        if center is None:
            self._fail("Menu center not found", menu_id)
            return False
        position = self._host.get_menu_slice_position(
            slice_info.slice_index, center, slice_info.item_count
        )
        self._host.simulate_hover(position.x, position.y)
        yield from self._delay(self._config.slice_hover_pause)
        return (
            yield from self._click_at_position(
                position.x, position.y, f"selecting slice {slice_info.slice_index}"
            )
        )

    def _hover_and_click_subject(
        self, subject_id: str, context: Optional[str] = None, expect_action: bool = False
    ) -> Task:
        position = self._host.get_subject_screen_position(subject_id)
        if position is not None:
            self._host.simulate_hover(position.x, position.y)
        yield from self._delay(self._config.hover_pause)

        self._host.clear_last_action_result()
        result = self._host.simulate_click_on_subject(subject_id)
        return (yield from self._handle_click_result(result, context or subject_id, expect_action))

    def _click_at_position(self, x: float, y: float, context: str) -> Task:
        retries = 0
        while True:
            self._host.clear_last_action_result()
            result = self._host.simulate_click_at_position(x, y)
            if (
                result.message == THOUGHT_BUBBLE_DISMISSED
                and retries < self._config.click_retry_limit
            ):
                # The click only closed a bubble covering the target
                retries += 1
                yield from self._delay(self._config.click_retry_delay)
                continue
            return (yield from self._handle_click_result(result, context, expect_action=False))

    def _handle_click_result(self, result: InputResult, context: str, expect_action: bool) -> Task:
        if not result.success:
            self._fail(result.error or "Click failed", context)
            return False

        if expect_action:
            yield from self._delay(self._config.expect_action_settle)
            action_result = self._host.get_last_action_result()
            if action_result is not None and not action_result.success:
                self._fail(action_result.error or "Action failed", context)
                return False
        return True

    def _delay(self, seconds: float) -> Generator[None, float, None]:
        remaining = seconds
        while remaining > 0:
            remaining -= yield

    def _wait_until_clear(
        self, is_busy: Callable[[], bool], timeout: float, what: str
    ) -> Generator[None, float, bool]:
        """Poll ``is_busy`` once per frame until it clears or ``timeout`` elapses.

        Returns:
            False if the wait timed out (a warning is logged and playback goes on)
        """
        waited = 0.0
        while is_busy():
            if waited > timeout:
                logger.warning("[Playback] Timeout waiting for %s", what)
                return False
            waited += yield
        return True
