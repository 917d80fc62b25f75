"""Tests for ActionRecorder: stamping, interval folding and lifecycle."""

import pytest

from replay.exceptions import InvalidStateError, UnseededRNGError
from replay.recorder import ActionRecorder
from replay.session import AttentionDemand, ModelSnapshot, OrchestratorSnapshot, RecordedAction
from replay.util.rng import SeededRNG, SystemRNG


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def _snapshot(**fields) -> ModelSnapshot:
    return ModelSnapshot.from_dict(fields)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorder(clock):
    return ActionRecorder(clock=clock, wall_clock=lambda: 1700000000.0)


@pytest.fixture
def rng():
    return SeededRNG(42)


def _start(recorder, rng, **kwargs):
    recorder.start(_snapshot(), "1.0.0", "desktop", rng, **kwargs)


class TestLifecycle:
    def test_start_requires_seeded_rng(self, recorder):
        with pytest.raises(UnseededRNGError):
            recorder.start(_snapshot(), "1.0.0", "desktop", SystemRNG())
        assert not recorder.is_recording

    def test_unknown_platform(self, recorder, rng):
        with pytest.raises(ValueError):
            recorder.start(_snapshot(), "1.0.0", "console", rng)

    def test_double_start_raises(self, recorder, rng):
        _start(recorder, rng)
        with pytest.raises(InvalidStateError):
            _start(recorder, rng)

    def test_record_while_idle_raises(self, recorder):
        with pytest.raises(InvalidStateError):
            recorder.record(RecordedAction("job", cloud_id="p1"), None, _snapshot())

    def test_stop_while_idle_raises(self, recorder):
        with pytest.raises(InvalidStateError):
            recorder.stop(_snapshot())

    def test_stop_seals_session_and_returns_to_idle(self, recorder, rng):
        rng.random("before")
        _start(recorder, rng, initial_model={"parts": []})
        final = _snapshot(targets=["p1"])
        session = recorder.stop(final)

        assert not recorder.is_recording
        assert session.seed == 42
        assert session.code_version == "1.0.0"
        assert session.platform == "desktop"
        assert session.timestamp == 1700000000.0
        assert session.final_state == final
        assert session.is_sealed
        assert session.initial_model == {"parts": []}
        assert session.actions == ()

    def test_recorder_can_restart_after_stop(self, recorder, rng):
        _start(recorder, rng)
        recorder.stop(_snapshot())
        _start(recorder, rng)
        assert recorder.is_recording
        assert recorder.actions == []


class TestRecording:
    def test_action_is_stamped(self, recorder, rng, clock):
        _start(recorder, rng)
        rng.random("who_do_you_see")
        clock.now += 2.5
        model = _snapshot(targets=["p1"])
        orch = OrchestratorSnapshot(regulation_score=0.5)

        stored = recorder.record(RecordedAction("who_do_you_see", cloud_id="p1"), orch, model)

        assert stored.rng_count == 1
        assert [d.label for d in stored.rng_log] == ["who_do_you_see"]
        assert stored.model_state == model
        assert stored.orch_state == orch
        assert stored.elapsed_time == pytest.approx(2.5)

    def test_rng_log_holds_only_draws_since_previous_action(self, recorder, rng):
        _start(recorder, rng)
        rng.random("a")
        recorder.record(RecordedAction("job", cloud_id="p1"), None, _snapshot())
        rng.random("b")
        rng.random("c")
        stored = recorder.record(RecordedAction("job", cloud_id="p2"), None, _snapshot())
        assert stored.rng_count == 3
        assert [d.label for d in stored.rng_log] == ["b", "c"]
        assert [d.index for d in stored.rng_log] == [1, 2]

    def test_actions_property_is_a_copy(self, recorder, rng):
        _start(recorder, rng)
        recorder.record(RecordedAction("job", cloud_id="p1"), None, _snapshot())
        recorder.actions.clear()
        assert len(recorder.actions) == 1

    def test_get_session_does_not_stop(self, recorder, rng):
        _start(recorder, rng)
        recorder.record(RecordedAction("job", cloud_id="p1"), None, _snapshot())
        session = recorder.get_session()
        assert recorder.is_recording
        assert session.final_state is None
        assert len(session.actions) == 1


class TestBackgroundTicks:
    def test_ticks_fold_into_one_interval_before_next_action(self, recorder, rng):
        _start(recorder, rng, orchestrator_state=OrchestratorSnapshot(regulation_score=0.0))
        before = OrchestratorSnapshot(regulation_score=0.1)
        rng.random("panorama_attention")
        recorder.add_background_ticks(2, [AttentionDemand("p4", 1.2)], orchestrator_before=before)
        rng.random("panorama_attention")
        recorder.add_background_ticks(
            3, [], orchestrator_before=OrchestratorSnapshot(regulation_score=0.9)
        )
        assert recorder.pending_ticks == 5

        recorder.record(RecordedAction("job", cloud_id="p1"), None, _snapshot())
        interval, job = recorder.actions

        assert interval.is_interval
        assert interval.count == 5
        assert interval.rng_count == 2
        assert [d.label for d in interval.rng_log] == ["panorama_attention", "panorama_attention"]
        # Only the first batch's pre-tick snapshot is kept
        assert interval.orch_state == before
        assert interval.attention_demands == (AttentionDemand("p4", 1.2),)
        assert interval.model_state is None
        assert job.rng_log == ()
        assert recorder.pending_ticks == 0

    def test_interval_rng_count_is_taken_at_tick_time(self, recorder, rng):
        _start(recorder, rng)
        recorder.add_background_ticks(1)
        # A draw made by the action itself belongs to the action
        rng.random("join_willingness")
        recorder.record(RecordedAction("join_conference", cloud_id="p2"), None, _snapshot())
        interval, join = recorder.actions
        assert interval.rng_count == 0
        assert join.rng_count == 1
        assert [d.label for d in join.rng_log] == ["join_willingness"]

    def test_falls_back_to_last_recorded_orchestrator_state(self, recorder, rng):
        start_orch = OrchestratorSnapshot(regulation_score=0.3)
        _start(recorder, rng, orchestrator_state=start_orch)
        recorder.add_background_ticks(1)
        recorder.flush_intervals()
        assert recorder.actions[0].orch_state == start_orch

    def test_stop_flushes_pending_ticks(self, recorder, rng):
        _start(recorder, rng)
        recorder.add_background_ticks(4)
        session = recorder.stop(_snapshot())
        assert [a.action for a in session.actions] == ["process_intervals"]
        assert session.actions[0].count == 4

    def test_zero_ticks_and_idle_ticks_are_ignored(self, recorder, rng):
        recorder.add_background_ticks(3)
        _start(recorder, rng)
        recorder.add_background_ticks(0)
        assert recorder.flush_intervals() is None
        assert recorder.actions == []

    def test_user_actions_exclude_intervals(self, recorder, rng):
        _start(recorder, rng)
        recorder.add_background_ticks(2)
        recorder.record(RecordedAction("job", cloud_id="p1"), None, _snapshot())
        session = recorder.stop(_snapshot())
        assert len(session.actions) == 2
        assert [a.action for a in session.user_actions] == ["job"]
