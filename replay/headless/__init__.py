"""Headless reference host: simulation, screenless host and offline replay.

Used by the test suite and the verification service to record and replay
sessions without a GUI.
"""

from .host import HeadlessHost
from .model import FOREGROUND, PANORAMA, PartState, SimulationModel
from .orchestrator import MessageOrchestrator
from .replay import ActionResult, ReplayReport, drive_playback, replay_session
from .simulator import DEFAULT_SCENARIO, ActionOutcome, HeadlessSimulator
from .time_advancer import TickBatch, TimeAdvancer

__all__ = [
    "ActionOutcome",
    "ActionResult",
    "DEFAULT_SCENARIO",
    "FOREGROUND",
    "HeadlessHost",
    "HeadlessSimulator",
    "MessageOrchestrator",
    "PANORAMA",
    "PartState",
    "ReplayReport",
    "SimulationModel",
    "TickBatch",
    "TimeAdvancer",
    "drive_playback",
    "replay_session",
]
