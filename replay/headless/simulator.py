"""Headless simulation: model, message orchestrator and background time.

Executes actions directly against the model, with no view or input layer.
Tests and the verification service use it to replay sessions without a
GUI; ``HeadlessHost`` wraps it when the full input path is needed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from replay.actions import (
    MODE_CHANGE,
    MODES,
    RAY_FIELD_SELECT,
    SELECT_TARGET,
    SPONTANEOUS_BLEND,
)
from replay.headless.model import FOREGROUND, PartState, SimulationModel
from replay.headless.orchestrator import MessageOrchestrator
from replay.headless.time_advancer import SPONTANEOUS_REASON, TickBatch, TimeAdvancer
from replay.session.snapshots import (
    AttentionDemand,
    ModelSnapshot,
    OrchestratorSnapshot,
    PendingAction,
    ViewSnapshot,
)
from replay.util.rng import ModelRNG, create_model_rng

logger = logging.getLogger(__name__)

PENDING_BLEND_DELAY = 0.6

DEFAULT_SCENARIO: Dict[str, Any] = {
    "parts": [
        {
            "id": "p1",
            "name": "Critic",
            "trust": 0.4,
            "needAttention": 0.2,
            "dialogues": ["You could have done better.", "Nobody listens to me."],
        },
        {
            "id": "p2",
            "name": "Exile",
            "trust": 0.3,
            "needAttention": 0.6,
            "dialogues": ["I feel so alone.", "Please don't leave."],
        },
        {"id": "p3", "name": "Planner", "trust": 0.7, "needAttention": 0.1},
        {
            "id": "p4",
            "name": "Rebel",
            "trust": 0.5,
            "needAttention": 0.8,
            "dialogues": ["I don't have to do anything."],
        },
    ],
    "relationships": {
        "protections": [{"protectorId": "p1", "protectedId": "p2"}],
        "interPartRelations": [
            {"fromId": "p1", "toId": "p4", "trust": 0.2, "stance": -0.6},
            {"fromId": "p4", "toId": "p1", "trust": 0.3, "stance": -0.4},
            {"fromId": "p3", "toId": "p2", "trust": 0.6, "stance": 0.3},
        ],
    },
}


@dataclass(frozen=True)
class ActionOutcome:
    """What happened when an action ran against the model.

    Attributes:
        success: False when the action was not applicable
        message: Detail for the operator (refusals, errors)
    """

    success: bool
    message: str = ""


class HeadlessSimulator:
    """Deterministic simulation driven entirely by the injected RNG."""

    def __init__(self, seed: Optional[int] = None, rng: Optional[ModelRNG] = None) -> None:
        self._rng: ModelRNG = rng if rng is not None else create_model_rng(seed)
        self.model = SimulationModel()
        self.orchestrator = MessageOrchestrator(self.model)
        self.time = TimeAdvancer(self.model, self.orchestrator, self._rng)
        self._handlers: Dict[str, Callable[[str, Optional[str]], ActionOutcome]] = {
            "notice_part": self._notice_part,
            "who_do_you_see": self._who_do_you_see,
            "job": self._job,
            "join_conference": self._join_conference,
            "separate": self._separate,
            "be_with": self._be_with,
            "step_back": self._step_back,
            "blend": self._blend,
            "help_protected": self._help_protected,
            "validate": self._validate,
            "feel_toward": self._feel_toward,
            "expand_deepen": self._expand_deepen,
        }

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_model_dict(
        cls,
        data: Mapping[str, Any],
        seed: Optional[int] = None,
        rng: Optional[ModelRNG] = None,
    ) -> HeadlessSimulator:
        """Rebuild a simulator from ``to_model_dict`` output."""
        simulator = cls(seed=seed, rng=rng)
        simulator.model = SimulationModel.from_dict(data)
        simulator.orchestrator = MessageOrchestrator(simulator.model)
        orchestrator = data.get("orchestrator")
        if orchestrator:
            simulator.orchestrator.restore(OrchestratorSnapshot.from_dict(orchestrator))
        simulator.time = TimeAdvancer(simulator.model, simulator.orchestrator, simulator._rng)
        simulator.time.accumulated_time = float(data.get("accumulatedTime", 0.0))
        return simulator

    def to_model_dict(self) -> Dict[str, Any]:
        data = self.model.to_dict()
        data["orchestrator"] = self.orchestrator.snapshot().to_dict()
        data["accumulatedTime"] = self.time.accumulated_time
        return data

    def setup_from_scenario(self, scenario: Mapping[str, Any]) -> None:
        """Populate parts, relationships, targets and blends from a scenario dict."""
        model = self.model
        for raw in scenario.get("parts") or ():
            model.register_part(PartState.from_dict(raw))

        relationships = scenario.get("relationships") or {}
        for protection in relationships.get("protections") or ():
            model.add_protection(str(protection["protectorId"]), str(protection["protectedId"]))
        for relation in relationships.get("interPartRelations") or ():
            model.set_relation(
                str(relation["fromId"]),
                str(relation["toId"]),
                trust=float(relation.get("trust", 0.5)),
                stance=float(relation.get("stance", 0.0)),
            )

        for target_id in scenario.get("initialTargets") or ():
            model.add_target(str(target_id))
        for blend in scenario.get("initialBlended") or ():
            model.add_blended(str(blend["cloudId"]), str(blend.get("reason", SPONTANEOUS_REASON)))
        logger.debug("Scenario loaded with %d parts", len(model.parts))

    # ------------------------------------------------------------------
    # RNG
    # ------------------------------------------------------------------

    @property
    def rng(self) -> ModelRNG:
        return self._rng

    def set_rng(self, rng: ModelRNG) -> None:
        self._rng = rng
        self.time.rng = rng

    @property
    def rng_count(self) -> int:
        return self._rng.call_count

    # ------------------------------------------------------------------
    # Time
    # ------------------------------------------------------------------

    def advance_time(self, dt: float) -> TickBatch:
        return self.time.advance(dt)

    def advance_intervals(self, count: int) -> List[AttentionDemand]:
        """Apply ``count`` background ticks on a settled model.

        Queued blends are applied first; ticks never run while blends are
        still queued, in real time or in replay.
        """
        self.model.resolve_pending_blends()
        return self.time.advance_intervals(count)

    def resolve_pending_blends(self, elapsed: Optional[float] = None) -> List[str]:
        return self.model.resolve_pending_blends(elapsed)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def get_model_snapshot(self, view_state: Optional[ViewSnapshot] = None) -> ModelSnapshot:
        return self.model.snapshot(view_state)

    def get_orchestrator_snapshot(self) -> OrchestratorSnapshot:
        return self.orchestrator.snapshot()

    def restore_orchestrator_snapshot(self, snapshot: OrchestratorSnapshot) -> None:
        self.orchestrator.restore(snapshot)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def execute_action(
        self,
        action: str,
        cloud_id: str = "",
        target_cloud_id: Optional[str] = None,
        field: Optional[str] = None,
        new_mode: Optional[str] = None,
    ) -> ActionOutcome:
        """Run one action against the model.

        Two-step actions (``notice_part``, ``feel_toward``) leave a pending
        action when ``target_cloud_id`` is None and complete it otherwise.
        """
        if action == MODE_CHANGE:
            if new_mode not in MODES:
                return ActionOutcome(False, f"Unknown mode: {new_mode}")
            self.model.mode = new_mode
            return ActionOutcome(True)
        if action == SPONTANEOUS_BLEND:
            return self.execute_spontaneous_blend(cloud_id)
        if action == SELECT_TARGET:
            return self._select_target(cloud_id)
        if action == RAY_FIELD_SELECT:
            return self._ray_field_select(cloud_id, field)

        handler = self._handlers.get(action)
        if handler is None:
            return ActionOutcome(False, f"Unknown action: {action}")
        if cloud_id and not self.model.has_part(cloud_id):
            return ActionOutcome(False, f"Unknown part: {cloud_id}")
        if target_cloud_id and not self.model.has_part(target_cloud_id):
            return ActionOutcome(False, f"Unknown part: {target_cloud_id}")
        return handler(cloud_id, target_cloud_id)

    def execute_spontaneous_blend(self, cloud_id: str) -> ActionOutcome:
        model = self.model
        if not model.has_part(cloud_id):
            return ActionOutcome(False, f"Unknown part: {cloud_id}")
        if model.is_blended(cloud_id):
            return ActionOutcome(True, "already blended")
        model.add_blended(cloud_id, SPONTANEOUS_REASON)
        return ActionOutcome(True)

    def _select_target(self, cloud_id: str) -> ActionOutcome:
        model = self.model
        if not model.has_part(cloud_id):
            return ActionOutcome(False, f"Unknown part: {cloud_id}")
        if model.is_blended(cloud_id):
            return ActionOutcome(False, f"{model.part_name(cloud_id)} is blended")
        model.add_target(cloud_id)
        model.mode = FOREGROUND
        return ActionOutcome(True)

    def _ray_field_select(self, cloud_id: str, field: Optional[str]) -> ActionOutcome:
        model = self.model
        if model.self_ray is None or model.self_ray != cloud_id:
            return ActionOutcome(False, "No self ray toward this part")
        part = model.parts[cloud_id]
        if field == "age":
            part.age_revealed = True
        elif field == "identity":
            part.identity_revealed = True
        elif field == "jobAppraisal":
            part.job_appraisal_revealed = True
        elif field == "jobImpact":
            model.adjust_trust(cloud_id, 0.02)
        elif field == "whatNeedToKnow":
            model.change_need_attention(cloud_id, -0.1)
        elif field in ("gratitude", "compassion"):
            model.adjust_trust(cloud_id, 0.05 * self._rng.random("ray_warmth"))
        elif field == "apologize":
            model.adjust_trust(cloud_id, 0.04)
        else:
            return ActionOutcome(False, f"Unknown field: {field}")
        return ActionOutcome(True)

    def _notice_part(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        model = self.model
        if target_id is None:
            model.pending_action = PendingAction("notice_part", cloud_id)
            return ActionOutcome(True, "Choose the part to notice")
        if target_id == cloud_id:
            return ActionOutcome(False, "A part cannot notice itself")
        model.pending_action = None
        relation = model.relations.get((cloud_id, target_id))
        if relation is None:
            model.set_relation(cloud_id, target_id, trust=0.6, stance=0.0)
        else:
            relation.trust = min(1.0, relation.trust + 0.1)
        model.adjust_trust(cloud_id, 0.02)
        return ActionOutcome(True)

    def _who_do_you_see(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        part = self.model.parts[cloud_id]
        if self._rng.random("who_do_you_see") < part.trust:
            part.identity_revealed = True
            self.model.adjust_trust(cloud_id, 0.05)
            return ActionOutcome(True)
        return ActionOutcome(True, f"{part.name} hesitates")

    def _job(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        self.model.parts[cloud_id].job_revealed = True
        self.model.adjust_trust(cloud_id, 0.02)
        return ActionOutcome(True)

    def _join_conference(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        model = self.model
        if model.is_target(cloud_id):
            return ActionOutcome(False, f"{model.part_name(cloud_id)} is already in the conference")
        if self._rng.random("join_willingness") < model.parts[cloud_id].trust:
            model.add_target(cloud_id)
            return ActionOutcome(True)
        return ActionOutcome(True, f"{model.part_name(cloud_id)} refuses to join")

    def _separate(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        model = self.model
        if not model.is_blended(cloud_id):
            return ActionOutcome(False, f"{model.part_name(cloud_id)} is not blended")
        if self._rng.random("separate_willingness") < model.parts[cloud_id].trust:
            model.unblend_to_target(cloud_id)
            return ActionOutcome(True)
        return ActionOutcome(True, f"{model.part_name(cloud_id)} won't separate")

    def _be_with(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        part = self.model.parts[cloud_id]
        self.model.adjust_trust(cloud_id, 0.1 * (1.0 - part.trust))
        self.model.change_need_attention(cloud_id, -0.2)
        return ActionOutcome(True)

    def _step_back(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        self.model.remove_from_conference(cloud_id)
        return ActionOutcome(True)

    def _blend(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        model = self.model
        if model.is_blended(cloud_id) or model.is_pending_blend(cloud_id):
            return ActionOutcome(False, f"{model.part_name(cloud_id)} is already blending")
        model.queue_blend(cloud_id, "therapist", PENDING_BLEND_DELAY)
        return ActionOutcome(True)

    def _help_protected(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        protected = self.model.protections.get(cloud_id)
        if not protected:
            return ActionOutcome(False, f"{self.model.part_name(cloud_id)} protects no one")
        self.model.adjust_trust(cloud_id, 0.05)
        return ActionOutcome(True)

    def _validate(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        self.model.adjust_trust(cloud_id, 0.03)
        self.model.change_need_attention(cloud_id, -0.1)
        bubble = self.model.bubble_for(cloud_id)
        if bubble is not None:
            bubble.validated = True
        return ActionOutcome(True)

    def _feel_toward(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        model = self.model
        if target_id is None:
            model.pending_action = PendingAction("feel_toward", cloud_id)
            return ActionOutcome(True, "Choose the part to feel toward")
        model.pending_action = None
        if self._rng.random("feel_toward") < model.parts[target_id].trust:
            model.self_ray = target_id
            model.adjust_trust(target_id, 0.05)
            return ActionOutcome(True)
        return ActionOutcome(True, f"{model.part_name(target_id)} is not ready")

    def _expand_deepen(self, cloud_id: str, target_id: Optional[str]) -> ActionOutcome:
        for target in self.model.targets:
            self.model.adjust_trust(target, 0.02)
        return ActionOutcome(True)
