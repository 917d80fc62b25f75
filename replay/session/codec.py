"""JSON codec for recorded sessions.

The wire format is camelCase JSON so sessions can be exchanged with hosts
written in other languages:

    {
      "version": 1, "seed": 42, "codeVersion": "...", "platform": "desktop",
      "timestamp": 1700000000.0,
      "initialState": {...}, "finalState": {...} | null, "initialModel": {...} | null,
      "actions": [{"action": "select_a_target", "cloudId": "p1",
                   "rngCounts": {"model": 0}, "rngLog": [], "modelState": {...}}]
    }
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

import orjson

from replay.actions import validate_recorded_action
from replay.exceptions import SessionFormatError
from replay.session.models import SESSION_VERSION, RecordedAction, RecordedSession
from replay.session.snapshots import AttentionDemand, ModelSnapshot, OrchestratorSnapshot
from replay.util.rng import DrawRecord

logger = logging.getLogger(__name__)


def action_to_dict(action: RecordedAction) -> Dict[str, Any]:
    data: Dict[str, Any] = {"action": action.action, "cloudId": action.cloud_id}
    if action.target_cloud_id is not None:
        data["targetCloudId"] = action.target_cloud_id
    if action.field is not None:
        data["field"] = action.field
    if action.new_mode is not None:
        data["newMode"] = action.new_mode
    if action.count is not None:
        data["count"] = action.count
    if action.rng_count is not None:
        data["rngCounts"] = {"model": action.rng_count}
    data["rngLog"] = [{"label": d.label, "value": d.value} for d in action.rng_log]
    if action.model_state is not None:
        data["modelState"] = action.model_state.to_dict()
    if action.orch_state is not None:
        data["orchState"] = action.orch_state.to_dict()
    if action.elapsed_time is not None:
        data["elapsedTime"] = action.elapsed_time
    if action.attention_demands:
        data["attentionDemands"] = [d.to_dict() for d in action.attention_demands]
    return data


def action_from_dict(data: Mapping[str, Any]) -> RecordedAction:
    """Parse one wire action.

    Raises:
        SessionFormatError: If the object is not a well-formed action
    """
    if not isinstance(data, Mapping):
        raise SessionFormatError("Recorded action must be an object")
    kind = data.get("action")
    if not isinstance(kind, str) or not kind:
        raise SessionFormatError("Recorded action missing required key: action")

    try:
        rng_counts = data.get("rngCounts") or {}
        rng_count = rng_counts.get("model")
        rng_count = int(rng_count) if rng_count is not None else None
        raw_log = data.get("rngLog") or []
        # The log is the tail of the full call log ending at rng_count.
        first_index = (rng_count - len(raw_log)) if rng_count is not None else 0
        rng_log = tuple(
            DrawRecord(
                label=str(entry.get("label", "random")),
                value=float(entry["value"]),
                index=max(first_index, 0) + i,
            )
            for i, entry in enumerate(raw_log)
        )
        count = data.get("count")
        elapsed = data.get("elapsedTime")
        model_state = data.get("modelState")
        orch_state = data.get("orchState")
        return RecordedAction(
            action=kind,
            cloud_id=str(data.get("cloudId") or ""),
            target_cloud_id=data.get("targetCloudId"),
            field=data.get("field"),
            new_mode=data.get("newMode"),
            count=int(count) if count is not None else None,
            rng_count=rng_count,
            rng_log=rng_log,
            model_state=ModelSnapshot.from_dict(model_state) if model_state is not None else None,
            orch_state=OrchestratorSnapshot.from_dict(orch_state) if orch_state is not None else None,
            elapsed_time=float(elapsed) if elapsed is not None else None,
            attention_demands=tuple(
                AttentionDemand.from_dict(d) for d in data.get("attentionDemands") or ()
            ),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise SessionFormatError(f"Malformed '{kind}' action: {exc}") from exc


def session_to_dict(session: RecordedSession) -> Dict[str, Any]:
    return {
        "version": session.version,
        "seed": session.seed,
        "codeVersion": session.code_version,
        "platform": session.platform,
        "timestamp": session.timestamp,
        "initialState": session.initial_state.to_dict(),
        "finalState": session.final_state.to_dict() if session.final_state else None,
        "initialModel": session.initial_model,
        "actions": [action_to_dict(a) for a in session.actions],
    }


def session_from_dict(data: Mapping[str, Any], *, strict: bool = False) -> RecordedSession:
    """Build a session from its decoded wire form.

    Args:
        data: Decoded JSON object
        strict: Also check every action against the action catalogue

    Raises:
        SessionFormatError: On an unsupported version or malformed content
    """
    if not isinstance(data, Mapping):
        raise SessionFormatError("Session must be a JSON object")

    version = data.get("version", SESSION_VERSION)
    if version != SESSION_VERSION:
        raise SessionFormatError(
            f"Unsupported session version {version!r} (expected {SESSION_VERSION})"
        )

    seed = data.get("seed", data.get("modelSeed"))
    if isinstance(seed, bool) or not isinstance(seed, int):
        raise SessionFormatError("Session missing required integer key: seed")

    raw_actions = data.get("actions")
    if not isinstance(raw_actions, list):
        raise SessionFormatError("Session 'actions' must be an array")

    actions: List[RecordedAction] = []
    for index, raw in enumerate(raw_actions):
        try:
            action = action_from_dict(raw)
            if strict:
                validate_recorded_action(action)
        except SessionFormatError as exc:
            raise SessionFormatError(f"Action {index}: {exc}") from exc
        actions.append(action)

    initial_model = data.get("initialModel")
    if initial_model is not None and not isinstance(initial_model, Mapping):
        raise SessionFormatError("Session 'initialModel' must be an object")

    try:
        initial_state = ModelSnapshot.from_dict(data.get("initialState") or {})
        final_raw = data.get("finalState")
        final_state = ModelSnapshot.from_dict(final_raw) if final_raw is not None else None
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise SessionFormatError(f"Malformed session snapshot: {exc}") from exc

    return RecordedSession(
        seed=seed,
        code_version=str(data.get("codeVersion", "unknown")),
        platform=str(data.get("platform", "desktop")),
        initial_state=initial_state,
        final_state=final_state,
        actions=tuple(actions),
        initial_model=dict(initial_model) if initial_model is not None else None,
        timestamp=float(data.get("timestamp") or 0.0),
        version=SESSION_VERSION,
    )


def session_to_json(session: RecordedSession, *, indent: bool = False) -> bytes:
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(session_to_dict(session), option=option)


def session_from_json(payload: Union[bytes, str], *, strict: bool = False) -> RecordedSession:
    """Decode a session from JSON text.

    Raises:
        SessionFormatError: If the payload is not valid JSON or not a session
    """
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError as exc:
        raise SessionFormatError(f"Invalid session JSON: {exc}") from exc
    return session_from_dict(data, strict=strict)


def save_session(session: RecordedSession, path: Union[str, Path]) -> Path:
    """Write ``session`` to ``path`` as indented JSON, creating parent dirs."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(session_to_json(session, indent=True))
    logger.info("Saved session with %d actions to %s", len(session.actions), target)
    return target


def load_session(path: Union[str, Path], *, strict: bool = False) -> RecordedSession:
    """Read a session written by :func:`save_session` (or any compatible host)."""
    source = Path(path)
    session = session_from_json(source.read_bytes(), strict=strict)
    logger.debug("Loaded session seed=%d actions=%d from %s", session.seed, len(session.actions), source)
    return session
