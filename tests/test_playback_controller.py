"""Tests for the playback controller state machine and action tasks."""

import logging
from collections import deque
from dataclasses import replace

import pytest

from replay.config import PlaybackConfig
from replay.exceptions import InvalidStateError
from replay.playback import THOUGHT_BUBBLE_DISMISSED, PlaybackController
from replay.protocols import InputResult
from replay.session import ModelSnapshot, OrchestratorSnapshot, RecordedAction, RecordedSession
from replay.state_machine import PlaybackState
from tests.fakes.playback_host import FakePlaybackHost

CONFIG = PlaybackConfig(
    inter_action_delay=1.0,
    intra_action_delay=0.5,
    hover_pause=0.0,
    slice_hover_pause=0.5,
    expect_action_settle=0.25,
    click_retry_delay=0.25,
    transition_timeout=1.0,
    pending_operations_timeout=1.0,
    exit_animation_timeout=1.0,
)

SELECT_P1 = RecordedAction("select_a_target", cloud_id="p1")


def _session(*actions: RecordedAction) -> RecordedSession:
    return RecordedSession(
        seed=42,
        code_version="test",
        platform="desktop",
        initial_state=ModelSnapshot.empty(),
        actions=actions,
    )


def _run(controller: PlaybackController, dt: float = 0.25, max_frames: int = 200) -> None:
    for _ in range(max_frames):
        if not controller.is_active:
            return
        controller.update(dt)


@pytest.fixture
def host():
    return FakePlaybackHost()


@pytest.fixture
def controller(host):
    return PlaybackController(host, CONFIG)


class TestLifecycle:
    def test_start_suspends_background_time(self, controller, host):
        controller.start(_session(SELECT_P1))
        assert controller.state == PlaybackState.WAITING
        assert controller.is_active and controller.is_playing
        assert controller.countdown == 1.0
        assert host.suspended
        assert controller.panel.visible

    def test_waits_inter_action_delay_before_first_action(self, controller, host):
        controller.start(_session(SELECT_P1))
        controller.update(0.5)
        assert host.clicks() == []
        controller.update(0.5)
        assert host.clicks() == ["p1"]

    def test_completion_tears_down(self, controller, host):
        controller.start(_session(SELECT_P1))
        _run(controller)
        assert controller.state == PlaybackState.COMPLETE
        assert host.completed
        assert not host.suspended
        assert host.verified == [SELECT_P1]
        assert not controller.panel.visible

    def test_empty_session_completes(self, controller, host):
        controller.start(_session())
        controller.update(1.0)
        assert controller.state == PlaybackState.COMPLETE
        assert host.completed

    def test_second_start_while_active_raises(self, controller):
        controller.start(_session(SELECT_P1))
        with pytest.raises(InvalidStateError):
            controller.start(_session(SELECT_P1))

    def test_can_start_again_after_completion(self, controller, host):
        controller.start(_session(SELECT_P1))
        _run(controller)
        controller.start(_session(RecordedAction("select_a_target", cloud_id="p2")))
        assert controller.state == PlaybackState.WAITING
        assert controller.current_index == 0
        _run(controller)
        assert host.clicks() == ["p1", "p2"]

    def test_actions_run_in_order_with_delay_between(self, controller, host):
        second = RecordedAction("select_a_target", cloud_id="p2")
        controller.start(_session(SELECT_P1, second))
        controller.update(1.0)
        assert host.clicks() == ["p1"]
        assert controller.state == PlaybackState.WAITING
        assert controller.current_index == 1
        controller.update(0.5)
        assert host.clicks() == ["p1"]
        controller.update(0.5)
        assert host.clicks() == ["p1", "p2"]
        assert controller.state == PlaybackState.COMPLETE


class TestMenuActions:
    def test_cloud_menu_action_dwells_on_slice(self, controller, host):
        controller.start(_session(RecordedAction("job", cloud_id="p2")))
        controller.update(1.0)
        assert host.clicks() == ["p2"]
        assert controller.state == PlaybackState.EXECUTING
        controller.update(0.25)
        assert host.position_clicks() == 0
        controller.update(0.25)
        assert host.position_clicks() == 1
        # job is the third item of the fake cloud menu
        assert ("hover", 280, 190) in host.events
        assert host.events[-1] == ("click_at", 280, 190)
        assert controller.state == PlaybackState.COMPLETE

    def test_star_menu_action_opens_star_menu(self, controller, host):
        controller.start(_session(RecordedAction("feel_toward")))
        _run(controller)
        assert host.clicks() == ["*"]
        assert host.position_clicks() == 1
        assert controller.state == PlaybackState.COMPLETE

    def test_pending_completion_clicks_only_the_target(self, controller, host):
        action = RecordedAction("notice_part", cloud_id="p1", target_cloud_id="p2")
        controller.start(_session(action))
        _run(controller)
        assert host.clicks() == ["p2"]
        assert host.position_clicks() == 0
        assert controller.state == PlaybackState.COMPLETE

    def test_failed_completion_is_an_error(self, controller, host):
        host.action_results["p2"] = InputResult(False, error="A part cannot notice itself")
        action = RecordedAction("notice_part", cloud_id="p1", target_cloud_id="p2")
        controller.start(_session(action))
        _run(controller)
        assert controller.state == PlaybackState.ERROR
        assert controller.error_message == "A part cannot notice itself - notice_part target p2"

    def test_ray_field_select(self, controller, host):
        controller.start(_session(RecordedAction("ray_field_select", cloud_id="p1", field="identity")))
        _run(controller)
        assert host.clicks() == ["*ray*"]
        assert host.events[-1] == ("click_at", 410, 340)
        assert controller.state == PlaybackState.COMPLETE

    def test_ray_field_missing_from_menu(self, controller, host):
        controller.start(_session(RecordedAction("ray_field_select", cloud_id="p1", field="apologize")))
        _run(controller)
        assert controller.state == PlaybackState.ERROR
        assert controller.error_message == "Field 'apologize' not found in ray menu - p1"

    def test_action_missing_from_menu(self, controller, host):
        controller.start(_session(RecordedAction("help_protected", cloud_id="p1")))
        _run(controller)
        assert controller.state == PlaybackState.ERROR
        assert controller.error_message == "Action 'help_protected' not found in open menu - p1"
        assert controller.error_index == 0
        failure = host.failures[0]
        assert failure.action_index == 0
        assert failure.action.action == "help_protected"
        assert not host.suspended

    def test_missing_menu_center(self, controller, host):
        host.get_menu_center = lambda: None
        controller.start(_session(RecordedAction("job", cloud_id="p1")))
        _run(controller)
        assert controller.error_message == "Menu center not found - p1"

    def test_unknown_subject(self, controller, host):
        controller.start(_session(RecordedAction("select_a_target", cloud_id="p9")))
        _run(controller)
        assert controller.state == PlaybackState.ERROR
        assert controller.error_message.startswith("Subject not found: p9")

    def test_unknown_action_kind_is_skipped(self, controller, host, caplog):
        with caplog.at_level(logging.WARNING, logger="replay.playback.controller"):
            controller.start(_session(RecordedAction("backlash", cloud_id="p1")))
            _run(controller)
        assert "Unknown action: backlash" in caplog.text
        assert controller.state == PlaybackState.COMPLETE


class TestClickRetry:
    def test_dismissed_bubble_click_is_retried(self, controller, host):
        dismissed = InputResult(True, message=THOUGHT_BUBBLE_DISMISSED)
        host.position_results = deque([dismissed, dismissed])
        controller.start(_session(RecordedAction("job", cloud_id="p1")))
        _run(controller)
        assert host.position_clicks() == 3
        assert controller.state == PlaybackState.COMPLETE

    def test_retries_are_bounded(self, controller, host):
        dismissed = InputResult(True, message=THOUGHT_BUBBLE_DISMISSED)
        host.position_results = deque([dismissed] * 6)
        controller.start(_session(RecordedAction("job", cloud_id="p1")))
        _run(controller)
        assert host.position_clicks() == 1 + CONFIG.click_retry_limit

    def test_failed_position_click(self, controller, host):
        host.position_results = deque([InputResult(False, error="Nothing at (0, 0)")])
        controller.start(_session(RecordedAction("job", cloud_id="p1")))
        _run(controller)
        assert controller.state == PlaybackState.ERROR
        assert controller.error_message == "Nothing at (0, 0) - selecting slice 2"


class TestModeActions:
    def test_mode_change_already_in_mode(self, controller, host):
        controller.start(_session(RecordedAction("mode_change", new_mode="panorama")))
        _run(controller)
        assert host.clicks() == []
        assert controller.state == PlaybackState.COMPLETE
        assert len(host.verified) == 1

    def test_mode_change_clicks_toggle(self, controller, host):
        controller.start(_session(RecordedAction("mode_change", new_mode="foreground")))
        _run(controller)
        assert host.clicks() == ["*mode*"]
        assert host.mode == "foreground"

    def test_select_target_toggles_to_panorama_first(self, controller, host):
        host.mode = "foreground"
        controller.start(_session(SELECT_P1))
        controller.update(1.0)
        assert host.clicks() == ["*mode*"]
        controller.update(0.25)
        assert host.clicks() == ["*mode*"]
        controller.update(0.25)
        assert host.clicks() == ["*mode*", "p1"]
        assert controller.state == PlaybackState.COMPLETE


class TestWaits:
    def test_waits_for_view_transition(self, controller, host):
        host.transition_polls = 2
        controller.start(_session(SELECT_P1))
        controller.update(1.0)
        controller.update(0.25)
        assert host.clicks() == []
        controller.update(0.25)
        assert host.clicks() == ["p1"]

    def test_waits_for_pending_operations(self, controller, host):
        host.pending_polls = 1
        controller.start(_session(SELECT_P1))
        controller.update(1.0)
        assert host.clicks() == []
        controller.update(0.25)
        assert host.clicks() == ["p1"]

    def test_wait_timeout_logs_and_continues(self, controller, host, caplog):
        host.transition_polls = 10_000
        with caplog.at_level(logging.WARNING, logger="replay.playback.controller"):
            controller.start(_session(SELECT_P1))
            _run(controller)
        assert "Timeout waiting for transition" in caplog.text
        assert controller.state == PlaybackState.COMPLETE
        assert host.clicks() == ["p1"]

    def test_spontaneous_blend_waits_for_exit_animation_only(self, controller, host):
        host.exit_polls = 1
        host.transition_polls = 5
        controller.start(_session(RecordedAction("spontaneous_blend", cloud_id="p2")))
        controller.update(1.0)
        assert ("spontaneous", "p2") in host.events
        assert controller.state == PlaybackState.EXECUTING
        controller.update(0.25)
        assert controller.state == PlaybackState.COMPLETE
        assert host.transition_polls == 5
        assert host.clicks() == []


class TestIntervals:
    def test_interval_restores_and_ticks_without_input(self, controller, host):
        orch = OrchestratorSnapshot(regulation_score=0.2)
        interval = RecordedAction("process_intervals", count=3, rng_count=1, orch_state=orch)
        controller.start(_session(interval, SELECT_P1))
        controller.update(1.0)

        assert host.events == [("restore", orch), ("ticks", 3)]
        assert host.verified == [interval]
        assert controller.state == PlaybackState.WAITING
        assert controller.current_index == 1
        assert controller.countdown == 0.0

        controller.update(0.25)
        assert host.clicks() == ["p1"]

    def test_interval_without_rng_count_is_not_verified(self, controller, host):
        controller.start(_session(RecordedAction("process_intervals", count=2)))
        _run(controller)
        assert host.verified == []
        assert ("ticks", 2) in host.events
        assert controller.state == PlaybackState.COMPLETE

    def test_zero_count_interval_applies_no_ticks(self, controller, host):
        controller.start(_session(RecordedAction("process_intervals", count=0, rng_count=0)))
        _run(controller)
        assert not any(e[0] == "ticks" for e in host.events)

    def test_orchestrator_restore_can_be_disabled(self, host):
        controller = PlaybackController(host, replace(CONFIG, restore_orchestrator_on_intervals=False))
        interval = RecordedAction("process_intervals", count=1, orch_state=OrchestratorSnapshot())
        controller.start(_session(interval))
        _run(controller)
        assert host.events == [("ticks", 1)]

    def test_interval_verification_failure(self, controller, host):
        host.verify_failures[0] = "Sync mismatch: model RNG count: expected 1, got 2"
        controller.start(_session(RecordedAction("process_intervals", count=1, rng_count=1), SELECT_P1))
        controller.update(1.0)
        assert controller.state == PlaybackState.ERROR
        assert controller.error_message.endswith(" - action 0")
        assert host.clicks() == []


class TestVerificationFailure:
    def test_mismatch_stops_the_run(self, controller, host):
        host.verify_failures[0] = "Sync mismatch: missing targets: Critic"
        controller.start(_session(SELECT_P1, RecordedAction("select_a_target", cloud_id="p2")))
        controller.update(1.0)
        assert controller.state == PlaybackState.ERROR
        assert controller.error_message == "Sync mismatch: missing targets: Critic - action 0"
        assert not controller.is_active
        controller.update(5.0)
        assert host.clicks() == ["p1"]
        assert not host.suspended

    def test_error_panel_and_dismiss(self, controller, host):
        host.verify_failures[0] = "Sync mismatch: selfRay: expected Critic, got none"
        controller.start(_session(SELECT_P1))
        controller.update(1.0)
        panel = controller.panel
        assert panel.visible and panel.error
        assert panel.countdown_text == "Error"
        assert panel.action_text == controller.error_message
        controller.dismiss()
        assert not panel.visible


class TestOperatorControls:
    def test_pause_freezes_countdown(self, controller, host):
        controller.start(_session(SELECT_P1))
        controller.update(0.5)
        controller.pause()
        assert controller.state == PlaybackState.PAUSED
        controller.update(5.0)
        assert controller.countdown == 0.5
        assert host.clicks() == []
        controller.resume()
        assert controller.state == PlaybackState.WAITING
        controller.update(0.5)
        assert host.clicks() == ["p1"]

    def test_pause_suspends_running_task(self, controller, host):
        controller.start(_session(RecordedAction("job", cloud_id="p1")))
        controller.update(1.0)
        assert controller.state == PlaybackState.EXECUTING
        controller.pause()
        controller.update(5.0)
        assert host.position_clicks() == 0
        controller.resume()
        _run(controller)
        assert host.position_clicks() == 1
        assert controller.state == PlaybackState.COMPLETE

    def test_pause_and_resume_outside_a_run_are_ignored(self, controller):
        controller.pause()
        controller.resume()
        assert controller.state == PlaybackState.IDLE

    def test_advance_skips_countdown(self, controller, host):
        controller.start(_session(SELECT_P1))
        controller.advance()
        controller.update(0.0)
        assert host.clicks() == ["p1"]

    def test_cancel(self, controller, host):
        controller.start(_session(SELECT_P1))
        controller.update(0.5)
        controller.cancel()
        assert controller.state == PlaybackState.COMPLETE
        assert host.cancel_calls == 1 and not host.completed
        assert not host.suspended
        assert not controller.panel.visible
        controller.cancel()
        assert controller.state == PlaybackState.COMPLETE
        assert host.cancel_calls == 1
        assert host.resume_calls == 1

    def test_cancel_drops_running_task(self, controller, host):
        controller.start(_session(RecordedAction("job", cloud_id="p1")))
        controller.update(1.0)
        controller.cancel()
        controller.update(1.0)
        assert host.position_clicks() == 0

    def test_user_modification_cancels(self, controller, host):
        controller.start(_session(SELECT_P1))
        controller.pause()
        controller.on_user_state_modification()
        assert controller.state == PlaybackState.COMPLETE
        assert host.cancel_calls == 1
        controller.cancel()
        controller.on_user_state_modification()
        assert host.cancel_calls == 1
        assert host.resume_calls == 1


class TestPanel:
    def test_shows_next_user_action(self, controller):
        interval = RecordedAction("process_intervals", count=2)
        controller.start(_session(interval, SELECT_P1))
        assert controller.panel.action_text == "Select: Critic"
        assert controller.panel.countdown_text == ""
        assert not controller.panel.show_advance

    def test_long_wait_shows_countdown_and_advance(self, host):
        controller = PlaybackController(host, replace(CONFIG, inter_action_delay=12.0))
        controller.start(_session(SELECT_P1))
        panel = controller.panel
        assert panel.countdown_text == "0:15"
        assert panel.show_advance
        panel.press_advance()
        assert controller.countdown == 0.0

    def test_two_step_stop(self, controller, host):
        controller.start(_session(SELECT_P1))
        panel = controller.panel
        panel.request_dismiss()
        assert controller.state == PlaybackState.PAUSED
        assert panel.action_text == "Stop playback?"
        assert panel.show_resume and panel.show_final_dismiss
        panel.abort_dismiss()
        assert controller.state == PlaybackState.WAITING
        assert panel.action_text == "Select: Critic"
        panel.request_dismiss()
        panel.confirm_dismiss()
        assert controller.state == PlaybackState.COMPLETE
        assert host.cancel_calls == 1

    def test_paused_text(self, controller):
        controller.start(_session(SELECT_P1))
        controller.pause()
        assert controller.panel.countdown_text == "Paused"
