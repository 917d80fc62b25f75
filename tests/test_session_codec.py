"""Tests for the recorded session JSON format."""

from pathlib import Path

import orjson
import pytest

from replay.exceptions import SessionFormatError
from replay.session import (
    AttentionDemand,
    ModelSnapshot,
    OrchestratorSnapshot,
    PendingAction,
    RecordedAction,
    RecordedSession,
    fingerprint_session,
    load_session,
    save_session,
    session_from_dict,
    session_from_json,
    session_to_dict,
    session_to_json,
)
from replay.util.rng import DrawRecord

FIXTURES = Path(__file__).parent / "fixtures" / "sessions"


def _session(**overrides) -> RecordedSession:
    initial = ModelSnapshot.from_dict({"trust": {"p1": 0.4}, "needAttention": {"p1": 0.2}})
    after = ModelSnapshot.from_dict(
        {
            "targets": ["p1"],
            "trust": {"p1": 0.4},
            "pendingAction": {"actionId": "notice_part", "sourceCloudId": "p1"},
        }
    )
    fields = dict(
        seed=42,
        code_version="1.0.0",
        platform="desktop",
        initial_state=initial,
        final_state=after,
        actions=(
            RecordedAction(
                action="process_intervals",
                count=4,
                rng_count=2,
                rng_log=(DrawRecord("panorama_attention", 0.25, 0), DrawRecord("grievance_target", 0.5, 1)),
                orch_state=OrchestratorSnapshot(blend_timers={"p4": 1.5}, regulation_score=0.2),
                attention_demands=(AttentionDemand("p4", 1.6, urgent=False),),
            ),
            RecordedAction(
                action="select_a_target",
                cloud_id="p1",
                rng_count=2,
                model_state=after,
                orch_state=OrchestratorSnapshot(),
                elapsed_time=1.5,
            ),
        ),
        initial_model={"parts": [{"id": "p1", "name": "Critic"}]},
        timestamp=1700000000.0,
    )
    fields.update(overrides)
    return RecordedSession(**fields)


class TestRoundTrip:
    def test_json_round_trip_preserves_session(self):
        session = _session()
        restored = session_from_json(session_to_json(session))
        assert restored == session
        assert restored.initial_model == session.initial_model
        assert restored.timestamp == session.timestamp

    def test_wire_form_is_camel_case(self):
        data = session_to_dict(_session())
        assert set(data) == {
            "version",
            "seed",
            "codeVersion",
            "platform",
            "timestamp",
            "initialState",
            "finalState",
            "initialModel",
            "actions",
        }
        interval, select = data["actions"]
        assert interval["count"] == 4
        assert interval["rngCounts"] == {"model": 2}
        assert interval["attentionDemands"][0]["cloudId"] == "p4"
        assert select["cloudId"] == "p1"
        assert select["modelState"]["pendingAction"] == {
            "actionId": "notice_part",
            "sourceCloudId": "p1",
        }
        assert "targetCloudId" not in select

    def test_rng_log_indices_end_at_rng_count(self):
        data = session_to_dict(_session())
        data["actions"][0]["rngCounts"] = {"model": 7}
        session = session_from_dict(data)
        assert [d.index for d in session.actions[0].rng_log] == [5, 6]

    def test_unsealed_session(self):
        session = _session(final_state=None)
        restored = session_from_json(session_to_json(session))
        assert restored.final_state is None
        assert not restored.is_sealed

    def test_indented_output_is_valid_json(self):
        payload = session_to_json(_session(), indent=True)
        assert b"\n  " in payload
        assert orjson.loads(payload)["seed"] == 42

    def test_save_and_load(self, tmp_path):
        path = save_session(_session(), tmp_path / "nested" / "session.json")
        assert path.exists()
        assert load_session(path) == _session()


class TestParsing:
    def test_fixture_loads(self):
        session = load_session(FIXTURES / "seed42_select_target.json", strict=True)
        assert session.seed == 42
        assert session.code_version == "1.0.0"
        assert len(session.actions) == 1
        action = session.actions[0]
        assert action.action == "select_a_target"
        assert action.rng_count == 0
        assert action.model_state.targets == ("p1",)
        assert action.elapsed_time == 1.25

    def test_missing_snapshot_fields_read_as_empty(self):
        session = session_from_dict({"seed": 1, "actions": []})
        assert session.initial_state == ModelSnapshot.empty()
        assert session.initial_state.self_ray is None
        assert session.code_version == "unknown"
        assert session.platform == "desktop"

    def test_absent_pending_keys_stay_absent(self):
        snapshot = ModelSnapshot.from_dict({"targets": ["p1"], "pendingBlends": []})
        assert snapshot.unrecorded == {"pending_action"}
        data = snapshot.to_dict()
        assert data["pendingBlends"] == []
        assert "pendingAction" not in data
        assert ModelSnapshot.from_dict(data) == snapshot

    def test_model_seed_alias(self):
        session = session_from_dict({"modelSeed": 9, "actions": []})
        assert session.seed == 9

    def test_self_ray_wire_form(self):
        snapshot = ModelSnapshot.from_dict({"selfRay": {"targetCloudId": "p2"}})
        assert snapshot.self_ray == "p2"
        assert snapshot.to_dict()["selfRay"] == {"targetCloudId": "p2"}

    def test_pending_action_str(self):
        assert str(PendingAction("feel_toward", "")) == "feel_toward:"

    def test_unknown_orchestrator_keys_survive(self):
        snapshot = OrchestratorSnapshot.from_dict({"futureTimer": 3, "blendTimers": {"p1": 1}})
        assert snapshot.extra == {"futureTimer": 3}
        assert snapshot.to_dict()["futureTimer"] == 3


class TestMalformedSessions:
    @pytest.mark.parametrize(
        "payload",
        [
            b"not json",
            b"[]",
            b'{"actions": []}',
            b'{"seed": "42", "actions": []}',
            b'{"seed": true, "actions": []}',
            b'{"seed": 1}',
            b'{"seed": 1, "actions": [{"cloudId": "p1"}]}',
            b'{"seed": 1, "actions": [42]}',
            b'{"seed": 1, "actions": [], "initialModel": [1]}',
            b'{"seed": 1, "version": 2, "actions": []}',
        ],
    )
    def test_rejected(self, payload):
        with pytest.raises(SessionFormatError):
            session_from_json(payload)

    def test_error_names_the_action_index(self):
        data = {"seed": 1, "actions": [{"action": "job", "cloudId": "p1"}, {"action": ""}]}
        with pytest.raises(SessionFormatError, match="Action 1"):
            session_from_dict(data)

    def test_session_format_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            session_from_json(b"{")


class TestStrictMode:
    def test_unknown_action_only_rejected_when_strict(self):
        data = {"seed": 1, "actions": [{"action": "teleport", "cloudId": "p1"}]}
        assert session_from_dict(data).actions[0].action == "teleport"
        with pytest.raises(SessionFormatError, match="Unknown action: teleport"):
            session_from_dict(data, strict=True)

    @pytest.mark.parametrize(
        "action",
        [
            {"action": "process_intervals"},
            {"action": "process_intervals", "count": -1},
            {"action": "mode_change", "newMode": "sideways"},
            {"action": "ray_field_select", "cloudId": "p1", "field": "weather"},
            {"action": "job"},
        ],
    )
    def test_invalid_actions(self, action):
        with pytest.raises(SessionFormatError):
            session_from_dict({"seed": 1, "actions": [action]}, strict=True)

    def test_star_menu_actions_need_no_subject(self):
        data = {"seed": 1, "actions": [{"action": "expand_deepen", "cloudId": ""}]}
        assert session_from_dict(data, strict=True).actions[0].cloud_id == ""


class TestFingerprint:
    def test_ignores_timing(self):
        session = _session()
        retimed = _session(timestamp=1.0)
        assert fingerprint_session(session) == fingerprint_session(retimed)

    def test_changes_with_content(self):
        assert fingerprint_session(_session()) != fingerprint_session(_session(seed=43))

    def test_is_32_hex_chars(self):
        digest = fingerprint_session(_session())
        assert len(digest) == 32
        int(digest, 16)
