"""In-memory simulation model for the headless reference host.

Plain mutable state plus small mutation helpers. Nothing in this module
draws random numbers: every randomized decision is made by the simulator,
the orchestrator or the time advancer through the injected RNG.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from replay.session.snapshots import (
    BiographySnapshot,
    ModelSnapshot,
    PendingAction,
    RelationSummary,
    ThoughtBubbleSnapshot,
    ViewSnapshot,
)

PANORAMA = "panorama"
FOREGROUND = "foreground"

# Need-attention growth per second for parts outside the conference
NEED_ATTENTION_RATE = 0.1
NEED_ATTENTION_RATE_IN_CONFERENCE = 0.05
BUBBLE_LIFETIME_TICKS = 6


@dataclass
class PartState:
    id: str
    name: str
    trust: float = 0.5
    need_attention: float = 0.0
    age_revealed: bool = False
    identity_revealed: bool = False
    job_revealed: bool = False
    job_appraisal_revealed: bool = False
    dialogues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "trust": self.trust,
            "needAttention": self.need_attention,
            "ageRevealed": self.age_revealed,
            "identityRevealed": self.identity_revealed,
            "jobRevealed": self.job_revealed,
            "jobAppraisalRevealed": self.job_appraisal_revealed,
            "dialogues": list(self.dialogues),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PartState:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            trust=float(data.get("trust", 0.5)),
            need_attention=float(data.get("needAttention", 0.0)),
            age_revealed=bool(data.get("ageRevealed", False)),
            identity_revealed=bool(data.get("identityRevealed", False)),
            job_revealed=bool(data.get("jobRevealed", False)),
            job_appraisal_revealed=bool(data.get("jobAppraisalRevealed", False)),
            dialogues=[str(d) for d in data.get("dialogues") or ()],
        )


@dataclass
class Relation:
    from_id: str
    to_id: str
    trust: float = 0.5
    stance: float = 0.0

    @property
    def hostile(self) -> bool:
        return self.stance < 0


@dataclass
class PendingBlend:
    cloud_id: str
    reason: str
    timer: float


@dataclass
class ThoughtBubble:
    id: int
    cloud_id: str
    text: str
    ticks_left: int = BUBBLE_LIFETIME_TICKS
    validated: bool = False
    part_initiated: bool = True


class SimulationModel:
    """Parts, their relations, and who is in the conference."""

    def __init__(self) -> None:
        self.parts: Dict[str, PartState] = {}
        self.relations: Dict[Tuple[str, str], Relation] = {}
        self.protections: Dict[str, List[str]] = {}
        self.targets: List[str] = []
        self.blended: Dict[str, str] = {}  # cloud id -> blend reason
        self.pending_blends: List[PendingBlend] = []
        self.self_ray: Optional[str] = None
        self.pending_action: Optional[PendingAction] = None
        self.mode = PANORAMA
        self.thought_bubbles: List[ThoughtBubble] = []
        self.next_bubble_id = 1

    # Setup

    def register_part(self, part: PartState) -> None:
        self.parts[part.id] = part

    def set_relation(self, from_id: str, to_id: str, trust: float, stance: float) -> None:
        self.relations[(from_id, to_id)] = Relation(from_id, to_id, trust=trust, stance=stance)

    def add_protection(self, protector_id: str, protected_id: str) -> None:
        protected = self.protections.setdefault(protector_id, [])
        if protected_id not in protected:
            protected.append(protected_id)

    # Queries

    def has_part(self, cloud_id: str) -> bool:
        return cloud_id in self.parts

    def part_name(self, cloud_id: str) -> str:
        part = self.parts.get(cloud_id)
        return part.name if part else cloud_id

    def is_target(self, cloud_id: str) -> bool:
        return cloud_id in self.targets

    def is_blended(self, cloud_id: str) -> bool:
        return cloud_id in self.blended

    def is_pending_blend(self, cloud_id: str) -> bool:
        return any(p.cloud_id == cloud_id for p in self.pending_blends)

    def hostile_targets(self, cloud_id: str) -> List[str]:
        return [
            r.to_id
            for r in self.relations.values()
            if r.from_id == cloud_id and r.hostile and r.to_id in self.parts
        ]

    # Conference membership

    def add_target(self, cloud_id: str) -> bool:
        if cloud_id in self.targets or cloud_id in self.blended:
            return False
        self.targets.append(cloud_id)
        return True

    def remove_target(self, cloud_id: str) -> None:
        if cloud_id in self.targets:
            self.targets.remove(cloud_id)

    def add_blended(self, cloud_id: str, reason: str) -> None:
        self.remove_target(cloud_id)
        self.blended[cloud_id] = reason

    def unblend_to_target(self, cloud_id: str) -> None:
        self.blended.pop(cloud_id, None)
        self.add_target(cloud_id)

    def queue_blend(self, cloud_id: str, reason: str, delay: float) -> None:
        self.pending_blends.append(PendingBlend(cloud_id, reason, delay))

    def resolve_pending_blends(self, elapsed: Optional[float] = None) -> List[str]:
        """Apply queued blends whose timer ran out; all of them if ``elapsed`` is None."""
        resolved = []
        remaining = []
        for pending in self.pending_blends:
            if elapsed is not None:
                pending.timer -= elapsed
            if elapsed is None or pending.timer <= 0:
                self.add_blended(pending.cloud_id, pending.reason)
                resolved.append(pending.cloud_id)
            else:
                remaining.append(pending)
        self.pending_blends = remaining
        return resolved

    def remove_from_conference(self, cloud_id: str) -> None:
        self.remove_target(cloud_id)
        self.blended.pop(cloud_id, None)
        self.pending_blends = [p for p in self.pending_blends if p.cloud_id != cloud_id]
        if self.self_ray == cloud_id:
            self.self_ray = None

    # Per-part numbers

    def adjust_trust(self, cloud_id: str, delta: float) -> None:
        part = self.parts[cloud_id]
        part.trust = min(1.0, max(0.0, part.trust + delta))

    def scale_trust(self, cloud_id: str, factor: float) -> None:
        part = self.parts[cloud_id]
        part.trust = min(1.0, max(0.0, part.trust * factor))

    def change_need_attention(self, cloud_id: str, delta: float) -> None:
        part = self.parts[cloud_id]
        part.need_attention = max(0.0, part.need_attention + delta)

    def increase_need_attention(self, dt: float, in_conference: bool) -> None:
        rate = NEED_ATTENTION_RATE_IN_CONFERENCE if in_conference else NEED_ATTENTION_RATE
        for part in self.parts.values():
            if part.id in self.targets or part.id in self.blended:
                continue
            part.need_attention += rate * dt

    # Thought bubbles

    def add_bubble(self, cloud_id: str, text: str, part_initiated: bool = True) -> ThoughtBubble:
        bubble = ThoughtBubble(
            id=self.next_bubble_id, cloud_id=cloud_id, text=text, part_initiated=part_initiated
        )
        self.next_bubble_id += 1
        self.thought_bubbles.append(bubble)
        return bubble

    def bubble_for(self, cloud_id: str) -> Optional[ThoughtBubble]:
        for bubble in reversed(self.thought_bubbles):
            if bubble.cloud_id == cloud_id:
                return bubble
        return None

    def dismiss_bubble(self, bubble_id: int) -> None:
        self.thought_bubbles = [b for b in self.thought_bubbles if b.id != bubble_id]

    def age_bubbles(self) -> None:
        for bubble in self.thought_bubbles:
            bubble.ticks_left -= 1
        self.thought_bubbles = [b for b in self.thought_bubbles if b.ticks_left > 0]

    # Snapshots and serialization

    def snapshot(self, view_state: Optional[ViewSnapshot] = None) -> ModelSnapshot:
        parts = self.parts.values()
        return ModelSnapshot(
            targets=tuple(self.targets),
            blended=tuple(self.blended),
            pending_blends=tuple(p.cloud_id for p in self.pending_blends),
            self_ray=self.self_ray,
            pending_action=self.pending_action,
            biography={
                p.id: BiographySnapshot(
                    age_revealed=p.age_revealed,
                    identity_revealed=p.identity_revealed,
                    job_revealed=p.job_revealed,
                    job_appraisal_revealed=p.job_appraisal_revealed,
                )
                for p in parts
            },
            need_attention={p.id: p.need_attention for p in parts},
            trust={p.id: p.trust for p in parts},
            conversation_effective_stances={},
            conversation_therapist_delta={},
            conversation_phases={},
            conversation_speaker_id=None,
            inter_part_relations=tuple(
                RelationSummary(r.from_id, r.to_id, stance=r.stance, trust=r.trust)
                for r in self.relations.values()
            ),
            thought_bubbles=tuple(
                ThoughtBubbleSnapshot(
                    id=b.id,
                    cloud_id=b.cloud_id,
                    text=b.text,
                    validated=b.validated,
                    part_initiated=b.part_initiated,
                )
                for b in self.thought_bubbles
            ),
            view_state=view_state or ViewSnapshot(mode=self.mode, seats=tuple(self.targets)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parts": [p.to_dict() for p in self.parts.values()],
            "relations": [
                {"fromId": r.from_id, "toId": r.to_id, "trust": r.trust, "stance": r.stance}
                for r in self.relations.values()
            ],
            "protections": {k: list(v) for k, v in self.protections.items()},
            "targets": list(self.targets),
            "blended": dict(self.blended),
            "pendingBlends": [
                {"cloudId": p.cloud_id, "reason": p.reason, "timer": p.timer}
                for p in self.pending_blends
            ],
            "selfRay": self.self_ray,
            "pendingAction": self.pending_action.to_dict() if self.pending_action else None,
            "mode": self.mode,
            "thoughtBubbles": [
                {
                    "id": b.id,
                    "cloudId": b.cloud_id,
                    "text": b.text,
                    "ticksLeft": b.ticks_left,
                    "validated": b.validated,
                    "partInitiated": b.part_initiated,
                }
                for b in self.thought_bubbles
            ],
            "nextBubbleId": self.next_bubble_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SimulationModel:
        model = cls()
        for raw in data.get("parts") or ():
            model.register_part(PartState.from_dict(raw))
        for raw in data.get("relations") or ():
            model.set_relation(
                str(raw["fromId"]),
                str(raw["toId"]),
                trust=float(raw.get("trust", 0.5)),
                stance=float(raw.get("stance", 0.0)),
            )
        for protector, protected in (data.get("protections") or {}).items():
            for protected_id in protected:
                model.add_protection(str(protector), str(protected_id))
        model.targets = [str(t) for t in data.get("targets") or ()]
        model.blended = {str(k): str(v) for k, v in (data.get("blended") or {}).items()}
        model.pending_blends = [
            PendingBlend(str(p["cloudId"]), str(p.get("reason", "therapist")), float(p.get("timer", 0.0)))
            for p in data.get("pendingBlends") or ()
        ]
        self_ray = data.get("selfRay")
        model.self_ray = str(self_ray) if self_ray is not None else None
        pending_action = data.get("pendingAction")
        model.pending_action = PendingAction.from_dict(pending_action) if pending_action else None
        model.mode = str(data.get("mode", PANORAMA))
        model.thought_bubbles = [
            ThoughtBubble(
                id=int(b["id"]),
                cloud_id=str(b["cloudId"]),
                text=str(b.get("text", "")),
                ticks_left=int(b.get("ticksLeft", BUBBLE_LIFETIME_TICKS)),
                validated=bool(b.get("validated", False)),
                part_initiated=bool(b.get("partInitiated", True)),
            )
            for b in data.get("thoughtBubbles") or ()
        ]
        model.next_bubble_id = int(data.get("nextBubbleId", len(model.thought_bubbles) + 1))
        return model
