"""Deterministic action recording, replay and sync verification.

A recorded session captures a seed, an initial model snapshot and an
ordered log of user actions and background ticks, each stamped with the
RNG call count and model state it produced. Playback re-executes the log
against a live host and checks it stays in lockstep.

- util.rng: seeded, labelled RNG (the only source of model randomness)
- session: snapshots, session data model, JSON codec, fingerprints
- recorder: builds sessions from a live simulation
- verifier: multi-field live-vs-recorded comparison
- playback: timed replay state machine and operator panel
- coordinator: wires a host to recorder, controller and verifier
- headless: screenless reference host for tests and offline checks

Use direct imports from subpackages for anything not listed in ``__all__``.
"""

from .coordinator import PlaybackRecordingCoordinator
from .exceptions import (
    InvalidStateError,
    PersistenceError,
    PlaybackError,
    ReplayError,
    SessionFormatError,
    UnseededRNGError,
)
from .playback import PlaybackController, PlaybackFailure
from .recorder import ActionRecorder
from .session import RecordedAction, RecordedSession, load_session, save_session
from .state_machine import PlaybackState
from .util.rng import SeededRNG, create_model_rng
from .verifier import SyncMismatch, SyncVerifier

__all__ = [
    "ActionRecorder",
    "InvalidStateError",
    "PersistenceError",
    "PlaybackController",
    "PlaybackError",
    "PlaybackFailure",
    "PlaybackRecordingCoordinator",
    "PlaybackState",
    "RecordedAction",
    "RecordedSession",
    "ReplayError",
    "SeededRNG",
    "SessionFormatError",
    "SyncMismatch",
    "SyncVerifier",
    "UnseededRNGError",
    "create_model_rng",
    "load_session",
    "save_session",
]
