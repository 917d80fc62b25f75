"""Value-only snapshots of simulation state.

A snapshot is a deep copy of everything the verifier may compare. Hosts
build them through the constructors (every field is required, so a host
cannot silently leave part of its state out), and sessions carry them in
their camelCase wire form.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple


# Model fields that older sessions may lack, by attribute name
OPTIONAL_MODEL_KEYS = {"pending_blends": "pendingBlends", "pending_action": "pendingAction"}


def _float_map(raw: Optional[Mapping[str, Any]]) -> Dict[str, float]:
    return {str(k): float(v) for k, v in (raw or {}).items()}


def _str_map(raw: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    return {str(k): str(v) for k, v in (raw or {}).items()}


def _optional_float(raw: Any) -> Optional[float]:
    return None if raw is None else float(raw)


@dataclass(frozen=True)
class BiographySnapshot:
    """Which biography facts of one subject have been revealed."""

    age_revealed: bool = False
    identity_revealed: bool = False
    job_revealed: bool = False
    job_appraisal_revealed: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "ageRevealed": self.age_revealed,
            "identityRevealed": self.identity_revealed,
            "jobRevealed": self.job_revealed,
            "jobAppraisalRevealed": self.job_appraisal_revealed,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BiographySnapshot:
        return cls(
            age_revealed=bool(data.get("ageRevealed", False)),
            identity_revealed=bool(data.get("identityRevealed", False)),
            job_revealed=bool(data.get("jobRevealed", False)),
            job_appraisal_revealed=bool(data.get("jobAppraisalRevealed", False)),
        )


@dataclass(frozen=True)
class PendingAction:
    """A two-step action waiting for the user to pick its target."""

    action_id: str
    source_cloud_id: str

    def to_dict(self) -> Dict[str, str]:
        return {"actionId": self.action_id, "sourceCloudId": self.source_cloud_id}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PendingAction:
        return cls(action_id=str(data["actionId"]), source_cloud_id=str(data["sourceCloudId"]))

    def __str__(self) -> str:
        return f"{self.action_id}:{self.source_cloud_id}"


@dataclass(frozen=True)
class RelationSummary:
    from_id: str
    to_id: str
    stance: float
    trust: float

    def to_dict(self) -> Dict[str, Any]:
        return {"fromId": self.from_id, "toId": self.to_id, "stance": self.stance, "trust": self.trust}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RelationSummary:
        return cls(
            from_id=str(data["fromId"]),
            to_id=str(data["toId"]),
            stance=float(data.get("stance", 0.0)),
            trust=float(data.get("trust", 0.0)),
        )


@dataclass(frozen=True)
class ThoughtBubbleSnapshot:
    """A transient message shown next to a subject."""

    id: int
    cloud_id: str
    text: str
    validated: bool = False
    part_initiated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "cloudId": self.cloud_id,
            "text": self.text,
            "validated": self.validated,
            "partInitiated": self.part_initiated,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ThoughtBubbleSnapshot:
        return cls(
            id=int(data["id"]),
            cloud_id=str(data["cloudId"]),
            text=str(data.get("text", "")),
            validated=bool(data.get("validated", False)),
            part_initiated=bool(data.get("partInitiated", False)),
        )


@dataclass(frozen=True)
class CarpetSnapshot:
    entering: bool = False
    exiting: bool = False
    landing_progress: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entering": self.entering,
            "exiting": self.exiting,
            "landingProgress": self.landing_progress,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CarpetSnapshot:
        return cls(
            entering=bool(data.get("entering", False)),
            exiting=bool(data.get("exiting", False)),
            landing_progress=float(data.get("landingProgress", 0.0)),
        )


@dataclass(frozen=True)
class ViewSnapshot:
    """Presentation state captured alongside the model.

    Attributes:
        mode: "panorama" or "foreground"
        seats: Subject ids occupying seats, in seat order
        carpets: Per-subject carpet animation state
        conversation_participant_ids: The two subjects in conversation, if any
        transition_direction: "forward", "reverse" or "none"
        transition_progress: 0.0 to 1.0
    """

    mode: str = "panorama"
    seats: Tuple[str, ...] = ()
    carpets: Dict[str, CarpetSnapshot] = field(default_factory=dict)
    conversation_participant_ids: Optional[Tuple[str, str]] = None
    transition_direction: str = "none"
    transition_progress: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        participants = self.conversation_participant_ids
        return {
            "mode": self.mode,
            "seats": list(self.seats),
            "carpets": {k: v.to_dict() for k, v in self.carpets.items()},
            "conversationParticipantIds": list(participants) if participants else None,
            "transitionDirection": self.transition_direction,
            "transitionProgress": self.transition_progress,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ViewSnapshot:
        participants = data.get("conversationParticipantIds")
        return cls(
            mode=str(data.get("mode", "panorama")),
            seats=tuple(data.get("seats") or ()),
            carpets={
                str(k): CarpetSnapshot.from_dict(v) for k, v in (data.get("carpets") or {}).items()
            },
            conversation_participant_ids=(
                (str(participants[0]), str(participants[1])) if participants else None
            ),
            transition_direction=str(data.get("transitionDirection", "none")),
            transition_progress=float(data.get("transitionProgress", 0.0)),
        )


@dataclass(frozen=True)
class ModelSnapshot:
    """Complete, value-only copy of the simulation model.

    Set-valued fields keep the host's order for readability but are
    compared as sets. Every field must be supplied by the constructor.

    ``unrecorded`` names the optional fields whose wire keys were absent
    (sessions from builds that did not capture them). The verifier skips
    those fields and ``to_dict`` leaves their keys out again.
    """

    targets: Tuple[str, ...]
    blended: Tuple[str, ...]
    pending_blends: Tuple[str, ...]
    self_ray: Optional[str]
    pending_action: Optional[PendingAction]
    biography: Dict[str, BiographySnapshot]
    need_attention: Dict[str, float]
    trust: Dict[str, float]
    conversation_effective_stances: Dict[str, float]
    conversation_therapist_delta: Dict[str, float]
    conversation_phases: Dict[str, str]
    conversation_speaker_id: Optional[str]
    inter_part_relations: Tuple[RelationSummary, ...]
    thought_bubbles: Tuple[ThoughtBubbleSnapshot, ...]
    view_state: ViewSnapshot
    unrecorded: FrozenSet[str] = frozenset()

    @classmethod
    def empty(cls) -> ModelSnapshot:
        """A snapshot of a simulation with nothing in it."""
        return cls.from_dict({})

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "targets": list(self.targets),
            "blended": list(self.blended),
            "pendingBlends": list(self.pending_blends),
            "selfRay": {"targetCloudId": self.self_ray} if self.self_ray is not None else None,
            "pendingAction": self.pending_action.to_dict() if self.pending_action else None,
            "biography": {k: v.to_dict() for k, v in self.biography.items()},
            "needAttention": dict(self.need_attention),
            "trust": dict(self.trust),
            "conversationEffectiveStances": dict(self.conversation_effective_stances),
            "conversationTherapistDelta": dict(self.conversation_therapist_delta),
            "conversationPhases": dict(self.conversation_phases),
            "conversationSpeakerId": self.conversation_speaker_id,
            "interPartRelations": [r.to_dict() for r in self.inter_part_relations],
            "thoughtBubbles": [b.to_dict() for b in self.thought_bubbles],
            "viewState": self.view_state.to_dict(),
        }
        for attr in self.unrecorded:
            data.pop(OPTIONAL_MODEL_KEYS[attr], None)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ModelSnapshot:
        """Build a snapshot from its wire form.

        Fields missing from ``data`` read as empty, so sessions written by
        older builds (and hand-written fixtures) stay loadable.
        Absent optional keys are also listed in ``unrecorded``.
        """
        self_ray = data.get("selfRay")
        pending_action = data.get("pendingAction")
        speaker = data.get("conversationSpeakerId")
        return cls(
            targets=tuple(str(t) for t in data.get("targets") or ()),
            blended=tuple(str(b) for b in data.get("blended") or ()),
            pending_blends=tuple(str(p) for p in data.get("pendingBlends") or ()),
            self_ray=str(self_ray["targetCloudId"]) if self_ray else None,
            pending_action=PendingAction.from_dict(pending_action) if pending_action else None,
            biography={
                str(k): BiographySnapshot.from_dict(v)
                for k, v in (data.get("biography") or {}).items()
            },
            need_attention=_float_map(data.get("needAttention")),
            trust=_float_map(data.get("trust")),
            conversation_effective_stances=_float_map(data.get("conversationEffectiveStances")),
            conversation_therapist_delta=_float_map(data.get("conversationTherapistDelta")),
            conversation_phases=_str_map(data.get("conversationPhases")),
            conversation_speaker_id=str(speaker) if speaker is not None else None,
            inter_part_relations=tuple(
                RelationSummary.from_dict(r) for r in data.get("interPartRelations") or ()
            ),
            thought_bubbles=tuple(
                ThoughtBubbleSnapshot.from_dict(b) for b in data.get("thoughtBubbles") or ()
            ),
            view_state=ViewSnapshot.from_dict(data.get("viewState") or {}),
            unrecorded=frozenset(
                attr for attr, key in OPTIONAL_MODEL_KEYS.items() if key not in data
            ),
        )


_ORCHESTRATOR_KEYS = frozenset(
    {
        "blendTimers",
        "cooldowns",
        "pending",
        "respondTimer",
        "regulationScore",
        "sustainedRegulationTimer",
        "newCycleTimer",
        "listenerViolationTimer",
        "selfLoathingCooldowns",
        "genericDialogueCooldowns",
    }
)


@dataclass(frozen=True)
class OrchestratorSnapshot:
    """Timer and cooldown state of the background behaviour engine.

    Playback treats it as an opaque restore point: keys this build does not
    know about are kept in ``extra`` and written back unchanged.
    """

    blend_timers: Dict[str, float] = field(default_factory=dict)
    cooldowns: Dict[str, float] = field(default_factory=dict)
    pending: Dict[str, str] = field(default_factory=dict)
    respond_timer: Optional[float] = None
    regulation_score: Optional[float] = None
    sustained_regulation_timer: Optional[float] = None
    new_cycle_timer: Optional[float] = None
    listener_violation_timer: Optional[float] = None
    self_loathing_cooldowns: Dict[str, float] = field(default_factory=dict)
    generic_dialogue_cooldowns: Dict[str, float] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    def timer_maps(self) -> Dict[str, Dict[str, float]]:
        """Per-subject timer maps keyed by their wire name."""
        return {
            "blendTimers": self.blend_timers,
            "cooldowns": self.cooldowns,
            "selfLoathingCooldowns": self.self_loathing_cooldowns,
            "genericDialogueCooldowns": self.generic_dialogue_cooldowns,
        }

    def scalar_timers(self) -> Dict[str, Optional[float]]:
        return {
            "respondTimer": self.respond_timer,
            "regulationScore": self.regulation_score,
            "sustainedRegulationTimer": self.sustained_regulation_timer,
            "newCycleTimer": self.new_cycle_timer,
            "listenerViolationTimer": self.listener_violation_timer,
        }

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        data.update(
            {
                "blendTimers": dict(self.blend_timers),
                "cooldowns": dict(self.cooldowns),
                "pending": dict(self.pending),
                "selfLoathingCooldowns": dict(self.self_loathing_cooldowns),
                "genericDialogueCooldowns": dict(self.generic_dialogue_cooldowns),
            }
        )
        for key, value in self.scalar_timers().items():
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OrchestratorSnapshot:
        return cls(
            blend_timers=_float_map(data.get("blendTimers")),
            cooldowns=_float_map(data.get("cooldowns")),
            pending=_str_map(data.get("pending")),
            respond_timer=_optional_float(data.get("respondTimer")),
            regulation_score=_optional_float(data.get("regulationScore")),
            sustained_regulation_timer=_optional_float(data.get("sustainedRegulationTimer")),
            new_cycle_timer=_optional_float(data.get("newCycleTimer")),
            listener_violation_timer=_optional_float(data.get("listenerViolationTimer")),
            self_loathing_cooldowns=_float_map(data.get("selfLoathingCooldowns")),
            generic_dialogue_cooldowns=_float_map(data.get("genericDialogueCooldowns")),
            extra={k: v for k, v in data.items() if k not in _ORCHESTRATOR_KEYS},
        )


@dataclass(frozen=True)
class AttentionDemand:
    """A subject that demanded attention during a background interval."""

    cloud_id: str
    need_attention: float
    urgent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"cloudId": self.cloud_id, "needAttention": self.need_attention, "urgent": self.urgent}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AttentionDemand:
        return cls(
            cloud_id=str(data["cloudId"]),
            need_attention=float(data.get("needAttention", 0.0)),
            urgent=bool(data.get("urgent", False)),
        )
