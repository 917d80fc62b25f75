"""Action recorder.

Captures an ordered log of actions against a live simulation. Each recorded
action is stamped with the model RNG's call count, the draws made since the
previous entry and value snapshots of the model and background engine, so a
later replay can be checked step by step.

Background time that passes between actions is not recorded as wall-clock
time. The host reports the discrete ticks it applied, and the recorder
folds them into a ``process_intervals`` pseudo-action just before the next
real action (and on stop). Replay then applies exactly that many ticks.

Usage:
    recorder = ActionRecorder()
    recorder.start(host.get_model_snapshot(), "1.4.0", "desktop", rng)
    ...
    recorder.add_background_ticks(3, demands, orchestrator_before=snapshot)
    recorder.record(RecordedAction("select_a_target", cloud_id="p1"), orch, model)
    session = recorder.stop(host.get_model_snapshot())
"""

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from replay.actions import INTERVAL_ACTION
from replay.exceptions import InvalidStateError
from replay.session.models import PLATFORMS, RecordedAction, RecordedSession
from replay.session.snapshots import AttentionDemand, ModelSnapshot, OrchestratorSnapshot
from replay.state_machine import RecorderState, create_recorder_state_machine
from replay.util.rng import SeededRNG, require_seeded_rng

logger = logging.getLogger(__name__)


class ActionRecorder:
    """Records actions and background ticks into a :class:`RecordedSession`."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize an idle recorder.

        Args:
            clock: Monotonic clock used for per-action elapsed time
            wall_clock: Clock used for the session timestamp
        """
        self._clock = clock
        self._wall_clock = wall_clock
        self._machine = create_recorder_state_machine()
        self._reset()

    def _reset(self) -> None:
        self._rng: Optional[SeededRNG] = None
        self._seed = 0
        self._code_version = ""
        self._platform = "desktop"
        self._timestamp = 0.0
        self._initial_state: Optional[ModelSnapshot] = None
        self._initial_model: Optional[Dict[str, Any]] = None
        self._actions: List[RecordedAction] = []
        self._last_rng_count = 0
        self._last_time = 0.0
        self._last_orch_state: Optional[OrchestratorSnapshot] = None
        self._pending_ticks = 0
        self._pending_rng_count = 0
        self._pending_demands: List[AttentionDemand] = []
        self._pending_orch_state: Optional[OrchestratorSnapshot] = None

    @property
    def is_recording(self) -> bool:
        return self._machine.state == RecorderState.RECORDING

    @property
    def actions(self) -> List[RecordedAction]:
        """Copy of the actions recorded so far."""
        return list(self._actions)

    @property
    def pending_ticks(self) -> int:
        return self._pending_ticks

    def start(
        self,
        initial_state: ModelSnapshot,
        code_version: str,
        platform: str,
        rng: Any,
        *,
        orchestrator_state: Optional[OrchestratorSnapshot] = None,
        initial_model: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Begin recording.

        Args:
            initial_state: Model snapshot before any action
            code_version: Build identifier stored in the session
            platform: "desktop" or "mobile"
            rng: The model RNG; must be a SeededRNG
            orchestrator_state: Background engine snapshot at start
            initial_model: Opaque host model for rebuilding a fresh simulation

        Raises:
            InvalidStateError: If already recording
            UnseededRNGError: If ``rng`` is not seeded
            ValueError: If ``platform`` is not recognised
        """
        if self.is_recording:
            raise InvalidStateError("Recorder is already recording")
        seeded = require_seeded_rng(rng, "ActionRecorder.start")
        if platform not in PLATFORMS:
            raise ValueError(f"Unknown platform {platform!r}; expected one of {PLATFORMS}")

        self._reset()
        self._rng = seeded
        self._seed = seeded.initial_seed
        self._code_version = code_version
        self._platform = platform
        self._timestamp = self._wall_clock()
        self._initial_state = initial_state
        self._initial_model = dict(initial_model) if initial_model is not None else None
        self._last_rng_count = seeded.call_count
        self._last_time = self._clock()
        self._last_orch_state = orchestrator_state
        self._machine.transition(RecorderState.RECORDING, reason="start")
        logger.info(
            "Recording started: seed=%d code_version=%s platform=%s",
            self._seed,
            code_version,
            platform,
        )

    def add_background_ticks(
        self,
        count: int,
        demands: Iterable[AttentionDemand] = (),
        orchestrator_before: Optional[OrchestratorSnapshot] = None,
    ) -> None:
        """Note ``count`` background ticks the host has just applied.

        Args:
            count: Number of ticks applied
            demands: Attention demands raised during those ticks
            orchestrator_before: Background engine snapshot before the ticks.
                Only the first batch since the last recorded entry uses it.
        """
        if not self.is_recording or count <= 0:
            return
        if self._pending_ticks == 0:
            self._pending_orch_state = (
                orchestrator_before if orchestrator_before is not None else self._last_orch_state
            )
        self._pending_ticks += count
        self._pending_demands.extend(demands)
        assert self._rng is not None
        self._pending_rng_count = self._rng.call_count

    def flush_intervals(self) -> Optional[RecordedAction]:
        """Fold pending background ticks into a ``process_intervals`` action.

        Returns:
            The emitted action, or None if no ticks were pending
        """
        if not self.is_recording or self._pending_ticks == 0:
            return None
        assert self._rng is not None

        rng_count = self._pending_rng_count
        entry = RecordedAction(
            action=INTERVAL_ACTION,
            count=self._pending_ticks,
            rng_count=rng_count,
            rng_log=tuple(self._rng.get_call_log()[self._last_rng_count : rng_count]),
            orch_state=self._pending_orch_state,
            attention_demands=tuple(self._pending_demands),
        )
        self._actions.append(entry)
        self._last_rng_count = rng_count
        logger.debug(
            "Flushed %d background ticks (rng=%d, demands=%d)",
            entry.count,
            rng_count,
            len(entry.attention_demands),
        )

        self._pending_ticks = 0
        self._pending_demands = []
        self._pending_orch_state = None
        return entry

    def record(
        self,
        action: RecordedAction,
        orch_state: Optional[OrchestratorSnapshot],
        model_state: ModelSnapshot,
    ) -> RecordedAction:
        """Append a completed action.

        Pending background ticks are flushed first so they replay before it.

        Args:
            action: The action as performed (kind and subjects)
            orch_state: Background engine snapshot after the action
            model_state: Model snapshot after the action

        Returns:
            The stored action, stamped with RNG and snapshot data

        Raises:
            InvalidStateError: If not recording
        """
        if not self.is_recording:
            raise InvalidStateError(f"Cannot record '{action.action}': recorder is idle")
        assert self._rng is not None

        self.flush_intervals()

        now = self._clock()
        rng_count = self._rng.call_count
        stamped = action.stamped(
            rng_count=rng_count,
            rng_log=tuple(self._rng.get_call_log()[self._last_rng_count : rng_count]),
            model_state=model_state,
            orch_state=orch_state,
            elapsed_time=now - self._last_time,
        )
        self._actions.append(stamped)
        self._last_rng_count = rng_count
        self._last_time = now
        self._last_orch_state = orch_state
        logger.debug("Recorded %s %s (rng=%d)", action.action, action.cloud_id, rng_count)
        return stamped

    def get_session(self, final_state: Optional[ModelSnapshot] = None) -> RecordedSession:
        """Snapshot of the session so far, without ending the recording.

        Raises:
            InvalidStateError: If not recording
        """
        if not self.is_recording:
            raise InvalidStateError("No recording in progress")
        return self._build_session(final_state)

    def stop(self, final_state: ModelSnapshot) -> RecordedSession:
        """Flush pending ticks, seal the session and return to idle.

        Raises:
            InvalidStateError: If not recording
        """
        if not self.is_recording:
            raise InvalidStateError("No recording in progress")
        self.flush_intervals()
        session = self._build_session(final_state)
        self._machine.transition(RecorderState.IDLE, reason="stop")
        self._reset()
        logger.info("Recording stopped: %d actions", len(session.actions))
        return session

    def _build_session(self, final_state: Optional[ModelSnapshot]) -> RecordedSession:
        assert self._initial_state is not None
        return RecordedSession(
            seed=self._seed,
            code_version=self._code_version,
            platform=self._platform,
            initial_state=self._initial_state,
            final_state=final_state,
            actions=tuple(self._actions),
            initial_model=dict(self._initial_model) if self._initial_model is not None else None,
            timestamp=self._timestamp,
        )
