"""Replay recorded sessions without a GUI.

``replay_session`` applies a session straight to a fresh ``HeadlessSimulator``
(no input synthesis, no waits) and reports where the run diverged.
``drive_playback`` runs the real playback controller against a
``HeadlessHost`` frame by frame, exercising the full input path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from replay.actions import SPONTANEOUS_BLEND
from replay.coordinator import PlaybackRecordingCoordinator
from replay.exceptions import PlaybackError
from replay.headless.host import HeadlessHost
from replay.headless.simulator import HeadlessSimulator
from replay.session.models import RecordedSession
from replay.session.snapshots import ModelSnapshot
from replay.state_machine import PlaybackState
from replay.util.rng import SeededRNG
from replay.verifier import LiveState, SyncVerifier

logger = logging.getLogger(__name__)

DEFAULT_FRAME_DT = 1 / 60
DEFAULT_MAX_FRAMES = 100_000


@dataclass(frozen=True)
class ActionResult:
    index: int
    action: str
    success: bool
    message: str = ""


@dataclass
class ReplayReport:
    """Outcome of a headless replay.

    Attributes:
        passed: True when every action and the final state matched
        differences: Human-readable mismatch descriptions, in order
        action_results: One entry per action that was replayed
        final_state: Live model snapshot at the end of the replay
    """

    passed: bool
    differences: List[str] = field(default_factory=list)
    action_results: List[ActionResult] = field(default_factory=list)
    final_state: Optional[ModelSnapshot] = None


def replay_session(
    session: RecordedSession, *, verifier: Optional[SyncVerifier] = None
) -> ReplayReport:
    """Replay ``session`` on a fresh simulator rebuilt from its initial model.

    Replay stops at the first action that fails verification; later
    differences would only be consequences of the first.

    Raises:
        PlaybackError: If the session carries no initial model to rebuild from
    """
    if session.initial_model is None:
        raise PlaybackError("Session has no initial model; headless replay needs one")

    rng = SeededRNG(session.seed)
    simulator = HeadlessSimulator.from_model_dict(session.initial_model, rng=rng)
    verifier = verifier or SyncVerifier(name_resolver=simulator.model.part_name)
    report = ReplayReport(passed=True)

    for index, action in enumerate(session.actions):
        if action.is_interval:
            if action.orch_state is not None:
                simulator.restore_orchestrator_snapshot(action.orch_state)
            simulator.advance_intervals(action.count or 0)
            outcome_message = f"{action.count or 0} ticks"
            success = True
        else:
            if action.action == SPONTANEOUS_BLEND:
                outcome = simulator.execute_spontaneous_blend(action.cloud_id)
            else:
                simulator.resolve_pending_blends()
                outcome = simulator.execute_action(
                    action.action,
                    action.cloud_id,
                    action.target_cloud_id,
                    action.field,
                    action.new_mode,
                )
            outcome_message = outcome.message
            success = outcome.success

        live = LiveState(
            model=simulator.get_model_snapshot(),
            orchestrator=simulator.get_orchestrator_snapshot(),
            rng_call_count=rng.get_call_count(),
            rng_call_log=tuple(rng.get_call_log()),
        )
        result = verifier.verify(action, live)
        if result.is_err():
            report.passed = False
            report.differences.append(f"action {index} ({action.action}): {result.error.description}")
            report.action_results.append(
                ActionResult(index, action.action, False, result.error.description)
            )
            break
        report.action_results.append(ActionResult(index, action.action, success, outcome_message))

    report.final_state = simulator.get_model_snapshot()
    if report.passed and session.final_state is not None:
        final_diffs = verifier.compare_final_states(session.final_state, report.final_state)
        if final_diffs:
            report.passed = False
            report.differences.extend(f"final: {diff}" for diff in final_diffs)

    logger.info(
        "Headless replay of %d actions %s",
        len(session.actions),
        "passed" if report.passed else "failed",
    )
    return report


def drive_playback(
    coordinator: PlaybackRecordingCoordinator,
    host: HeadlessHost,
    session: RecordedSession,
    frame_dt: float = DEFAULT_FRAME_DT,
    max_frames: int = DEFAULT_MAX_FRAMES,
) -> PlaybackState:
    """Run the playback controller over ``host`` until the run ends.

    Returns:
        The terminal playback state (COMPLETE or ERROR)

    Raises:
        PlaybackError: If the run has not ended after ``max_frames`` frames
    """
    controller = coordinator.start_playback(session)
    for _ in range(max_frames):
        if not controller.is_active:
            return controller.state
        host.update(frame_dt)
        coordinator.update_playback(frame_dt)
    if controller.is_active:
        raise PlaybackError(f"Playback still {controller.state.name} after {max_frames} frames")
    return controller.state
