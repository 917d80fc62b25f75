"""Recorded session data model, snapshots and JSON codec."""

from replay.session.codec import (
    load_session,
    save_session,
    session_from_dict,
    session_from_json,
    session_to_dict,
    session_to_json,
)
from replay.session.fingerprint import (
    SnapshotFingerprinter,
    fingerprint_session,
    fingerprint_snapshot,
)
from replay.session.models import (
    INTERVAL_ACTION,
    SESSION_VERSION,
    RecordedAction,
    RecordedSession,
)
from replay.session.snapshots import (
    AttentionDemand,
    BiographySnapshot,
    CarpetSnapshot,
    ModelSnapshot,
    OrchestratorSnapshot,
    PendingAction,
    RelationSummary,
    ThoughtBubbleSnapshot,
    ViewSnapshot,
)

__all__ = [
    "AttentionDemand",
    "BiographySnapshot",
    "CarpetSnapshot",
    "INTERVAL_ACTION",
    "ModelSnapshot",
    "OrchestratorSnapshot",
    "PendingAction",
    "RecordedAction",
    "RecordedSession",
    "RelationSummary",
    "SESSION_VERSION",
    "SnapshotFingerprinter",
    "ThoughtBubbleSnapshot",
    "ViewSnapshot",
    "fingerprint_session",
    "fingerprint_snapshot",
    "load_session",
    "save_session",
    "session_from_dict",
    "session_from_json",
    "session_to_dict",
    "session_to_json",
]
