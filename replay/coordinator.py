"""Glue between a simulation host, the recorder and the playback controller.

The coordinator owns the model RNG and injects it into the host, so the
host never creates randomness of its own. It records what the host reports
while recording, and during playback it bridges the controller to the host:
input and view calls go straight through, while verification runs here
against the live model and the injected RNG.
"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional

from replay.config.playback import PlaybackConfig
from replay.exceptions import InvalidStateError
from replay.playback.controller import PlaybackController, PlaybackFailure
from replay.protocols import SimulationHost
from replay.recorder import ActionRecorder
from replay.result import Err, Ok, Result
from replay.session.models import RecordedAction, RecordedSession
from replay.session.snapshots import AttentionDemand, OrchestratorSnapshot
from replay.util.rng import ModelRNG, SeededRNG, create_model_rng, generate_seed
from replay.verifier import SyncMismatch, SyncVerifier, live_state_from

logger = logging.getLogger(__name__)


class _PlaybackBridge:
    """Presents host + coordinator as the ``PlaybackHost`` the controller drives."""

    def __init__(self, coordinator: "PlaybackRecordingCoordinator", host: SimulationHost) -> None:
        self._coordinator = coordinator
        self._host = host

    def __getattr__(self, name: str) -> Any:
        # View, input and background-time calls go straight to the host
        return getattr(self._host, name)

    def suspend_background_time(self) -> None:
        self._coordinator._background_suspended = True
        self._host.suspend_background_time()

    def resume_background_time(self) -> None:
        self._coordinator._background_suspended = False
        self._host.resume_background_time()

    def on_action_completed(self, action: RecordedAction) -> Result[None, str]:
        result = self._coordinator.verify_playback_sync(action)
        if result.is_err():
            self._coordinator._last_mismatch = result.error
            return Err(result.error.description)
        return Ok(None)

    def on_playback_complete(self) -> None:
        logger.info("Playback finished without desynchronization")

    def on_playback_cancelled(self) -> None:
        logger.info("Playback cancelled")

    def on_playback_error(self, failure: PlaybackFailure) -> None:
        self._coordinator._on_playback_error(failure)


class PlaybackRecordingCoordinator:
    """Single entry point a host uses for recording and playback.

    Attributes:
        on_session_export: Called with the session being replayed when a
            playback run fails, so the host can offer it for download.
    """

    def __init__(
        self,
        host: SimulationHost,
        *,
        verifier: Optional[SyncVerifier] = None,
        config: Optional[PlaybackConfig] = None,
        rng: Optional[ModelRNG] = None,
    ) -> None:
        self._host = host
        self._config = config or PlaybackConfig.from_env()
        self._verifier = verifier or SyncVerifier(name_resolver=host.get_subject_name)
        self._recorder = ActionRecorder()
        self._controller: Optional[PlaybackController] = None
        self._background_suspended = False
        self._last_failure: Optional[PlaybackFailure] = None
        self._last_mismatch: Optional[SyncMismatch] = None
        self.on_session_export: Optional[Callable[[RecordedSession], None]] = None
        self._rng: ModelRNG = rng if rng is not None else create_model_rng()
        host.set_rng(self._rng)

    # ------------------------------------------------------------------
    # RNG
    # ------------------------------------------------------------------

    @property
    def rng(self) -> ModelRNG:
        return self._rng

    def set_rng(self, rng: ModelRNG) -> None:
        """Replace the model RNG and hand it to the host."""
        self._rng = rng
        self._host.set_rng(rng)

    def set_seed(self, seed: int) -> None:
        self.set_rng(SeededRNG(seed))

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    @property
    def is_recording(self) -> bool:
        return self._recorder.is_recording

    @property
    def recorder(self) -> ActionRecorder:
        return self._recorder

    def start_recording(
        self,
        code_version: str,
        platform: str = "desktop",
        initial_model: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Start recording the host's simulation.

        A live RNG is swapped for a freshly seeded one first, and a seeded
        RNG that has already been drawn from is rewound, so that a replay
        seeded with the session seed starts from the same draw.

        Raises:
            InvalidStateError: If already recording or a playback run is active
        """
        if self.is_in_playback_mode:
            raise InvalidStateError("Cannot record while playback is active")
        if self.is_recording:
            raise InvalidStateError("Recorder is already recording")

        rng = self._rng
        if not isinstance(rng, SeededRNG):
            seed = generate_seed()
            logger.info("Upgrading live RNG to seeded RNG (seed=%d) for recording", seed)
            self.set_seed(seed)
        elif rng.call_count:
            self.set_seed(rng.initial_seed)

        self._recorder.start(
            self._host.get_model_snapshot(),
            code_version,
            platform,
            self._rng,
            orchestrator_state=self._host.get_orchestrator_snapshot(),
            initial_model=initial_model,
        )

    def record_action(self, action: RecordedAction) -> Optional[RecordedAction]:
        """Record a completed action; ignored when not recording."""
        if not self._recorder.is_recording:
            return None
        return self._recorder.record(
            action,
            self._host.get_orchestrator_snapshot(),
            self._host.get_model_snapshot(),
        )

    def on_background_ticks(
        self,
        count: int,
        demands: Iterable[AttentionDemand] = (),
        orchestrator_before: Optional[OrchestratorSnapshot] = None,
    ) -> None:
        """Host hook: ``count`` background ticks were just applied."""
        self._recorder.add_background_ticks(count, demands, orchestrator_before)

    def get_recording_session(self) -> Optional[RecordedSession]:
        """Session recorded so far (for auto-save), or None if not recording."""
        if not self._recorder.is_recording:
            return None
        return self._recorder.get_session(self._host.get_model_snapshot())

    def stop_recording(self) -> Optional[RecordedSession]:
        if not self._recorder.is_recording:
            return None
        return self._recorder.stop(self._host.get_model_snapshot())

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    @property
    def playback_controller(self) -> Optional[PlaybackController]:
        return self._controller

    @property
    def is_in_playback_mode(self) -> bool:
        return self._controller is not None and self._controller.is_active

    @property
    def background_time_suspended(self) -> bool:
        """True while playback holds background time still."""
        return self._background_suspended

    @property
    def last_failure(self) -> Optional[PlaybackFailure]:
        return self._last_failure

    @property
    def last_mismatch(self) -> Optional[SyncMismatch]:
        return self._last_mismatch

    def start_playback(self, session: RecordedSession) -> PlaybackController:
        """Reseed the model RNG with the session seed and start replaying.

        The host must already hold the session's initial state.

        Raises:
            InvalidStateError: If recording, or if a playback run is active
        """
        if self.is_recording:
            raise InvalidStateError("Cannot start playback while recording")
        if self.is_in_playback_mode:
            raise InvalidStateError("Playback already active")

        self.set_seed(session.seed)
        self._last_failure = None
        self._last_mismatch = None
        self._controller = PlaybackController(_PlaybackBridge(self, self._host), self._config)
        self._controller.start(session)
        return self._controller

    def update_playback(self, delta_time: float) -> None:
        if self._controller is not None:
            self._controller.update(delta_time)

    def cancel_playback(self) -> None:
        if self._controller is not None:
            self._controller.cancel()

    def notify_user_state_modification(self) -> None:
        """Host hook: the operator changed the simulation directly."""
        if self._controller is not None:
            self._controller.on_user_state_modification()

    def verify_playback_sync(self, action: RecordedAction) -> Result[None, SyncMismatch]:
        """Compare the live host against what ``action`` recorded."""
        return self._verifier.verify(action, live_state_from(self._host, self._rng))

    def _on_playback_error(self, failure: PlaybackFailure) -> None:
        self._last_failure = failure
        logger.error("Playback failed at action %d: %s", failure.action_index, failure.message)
        session = self._controller.session if self._controller is not None else None
        if session is not None and self.on_session_export is not None:
            self.on_session_export(session)
