"""Timers that decide when blended parts speak up.

Runs once per background tick. A blended part that has been blended long
enough either airs a grievance against a hostile part (summoning it into the
conference first if needed) or, with nobody to complain about, says one of
its generic lines every few seconds.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from replay.headless.model import SimulationModel
from replay.session.snapshots import OrchestratorSnapshot
from replay.util.rng import ModelRNG

logger = logging.getLogger(__name__)

BLEND_MESSAGE_DELAY = 2.0
GENERIC_DIALOGUE_INTERVAL = 8.0
GRIEVANCE_COOLDOWN = 10.0
SUMMON_RETRY_DELAY = 3.0
GRIEVANCE_TRUST_FACTOR = 0.99
SPEAKING_RELIEF = 0.25


class MessageOrchestrator:
    def __init__(self, model: SimulationModel) -> None:
        self.model = model
        self.blend_timers: Dict[str, float] = {}
        self.cooldowns: Dict[str, float] = {}
        self.pending: Dict[str, str] = {}  # speaker -> summoned target
        self.generic_dialogue_cooldowns: Dict[str, float] = {}
        self.regulation_score = 0.0

    def update_timers(self, dt: float) -> None:
        for cloud_id in list(self.cooldowns):
            self.cooldowns[cloud_id] += dt

        for cloud_id in self.model.blended:
            self.blend_timers[cloud_id] = self.blend_timers.get(cloud_id, 0.0) + dt
        for cloud_id in list(self.blend_timers):
            if cloud_id not in self.model.blended:
                del self.blend_timers[cloud_id]
                self.pending.pop(cloud_id, None)

        if self.model.blended:
            self.regulation_score = max(0.0, self.regulation_score - 0.1)
        else:
            self.regulation_score = min(1.0, self.regulation_score + 0.05)

    def check_grievances(self, rng: ModelRNG) -> None:
        """Let blended parts with a hostile relation complain."""
        model = self.model
        for cloud_id in list(model.blended):
            if self.blend_timers.get(cloud_id, 0.0) < BLEND_MESSAGE_DELAY:
                continue
            hostile = model.hostile_targets(cloud_id)
            if not hostile:
                continue

            since_last = self.cooldowns.get(cloud_id, GRIEVANCE_COOLDOWN)
            target_id: Optional[str] = self.pending.get(cloud_id)
            if target_id is None:
                if since_last < GRIEVANCE_COOLDOWN:
                    continue
                target_id = rng.pick_random(hostile, "grievance_target")
            elif since_last < SUMMON_RETRY_DELAY:
                continue

            if not model.is_target(target_id):
                # Summon the target first; the grievance follows on a later tick
                model.add_target(target_id)
                self.pending[cloud_id] = target_id
                self.cooldowns[cloud_id] = 0.0
                logger.debug("%s summons %s", cloud_id, target_id)
                continue

            dialogues = model.parts[cloud_id].dialogues
            if dialogues:
                text = rng.pick_random(dialogues, "grievance_text")
            else:
                text = f"I can't stand {model.part_name(target_id)}"
            model.scale_trust(target_id, GRIEVANCE_TRUST_FACTOR)
            model.change_need_attention(cloud_id, -SPEAKING_RELIEF)
            model.add_bubble(cloud_id, text)
            self.cooldowns[cloud_id] = 0.0
            self.pending.pop(cloud_id, None)

    def check_generic_dialogues(self, dt: float, rng: ModelRNG) -> None:
        model = self.model
        for cloud_id in list(self.generic_dialogue_cooldowns):
            if cloud_id not in model.blended:
                del self.generic_dialogue_cooldowns[cloud_id]

        for cloud_id in list(model.blended):
            if self.blend_timers.get(cloud_id, 0.0) < BLEND_MESSAGE_DELAY:
                continue
            if model.hostile_targets(cloud_id):
                continue
            dialogues = model.parts[cloud_id].dialogues
            if not dialogues:
                continue

            elapsed = self.generic_dialogue_cooldowns.get(cloud_id, GENERIC_DIALOGUE_INTERVAL) + dt
            if elapsed >= GENERIC_DIALOGUE_INTERVAL:
                model.add_bubble(cloud_id, rng.pick_random(dialogues, "generic_dialogue"))
                model.change_need_attention(cloud_id, -SPEAKING_RELIEF)
                elapsed = 0.0
            self.generic_dialogue_cooldowns[cloud_id] = elapsed

    def snapshot(self) -> OrchestratorSnapshot:
        return OrchestratorSnapshot(
            blend_timers=dict(self.blend_timers),
            cooldowns=dict(self.cooldowns),
            pending=dict(self.pending),
            regulation_score=self.regulation_score,
            generic_dialogue_cooldowns=dict(self.generic_dialogue_cooldowns),
        )

    def restore(self, snapshot: OrchestratorSnapshot) -> None:
        self.blend_timers = dict(snapshot.blend_timers)
        self.cooldowns = dict(snapshot.cooldowns)
        self.pending = {str(k): str(v) for k, v in snapshot.pending.items()}
        self.generic_dialogue_cooldowns = dict(snapshot.generic_dialogue_cooldowns)
        if snapshot.regulation_score is not None:
            self.regulation_score = snapshot.regulation_score
