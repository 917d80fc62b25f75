"""Fixed-step background time for the headless simulation.

Real elapsed time is accumulated and consumed in 0.5 s ticks. Replay skips
the clock and applies a recorded number of ticks directly; both paths run
the same per-tick step, so they draw from the RNG identically.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Tuple

from replay.config import BACKGROUND_TICK_SECONDS
from replay.headless.model import FOREGROUND, PANORAMA, SimulationModel
from replay.headless.orchestrator import MessageOrchestrator
from replay.session.snapshots import AttentionDemand
from replay.util.rng import ModelRNG

logger = logging.getLogger(__name__)

ATTENTION_DEMAND_THRESHOLD = 1.0
URGENT_NEED_ATTENTION = 2.0
# Spontaneously blended parts this calm step back into the conference
SETTLED_NEED_ATTENTION = 0.25
SPONTANEOUS_REASON = "spontaneous"
# Most recent attention demands kept for diagnostics
DEMAND_LOG_MAXLEN = 256


@dataclass(frozen=True)
class TickBatch:
    """Ticks applied by one ``advance`` call and the demands they raised."""

    count: int
    demands: Tuple[AttentionDemand, ...] = ()


@dataclass
class TimeAdvancer:
    model: SimulationModel
    orchestrator: MessageOrchestrator
    rng: ModelRNG
    accumulated_time: float = 0.0
    interval_count: int = 0
    demand_log: Deque[AttentionDemand] = field(
        default_factory=lambda: deque(maxlen=DEMAND_LOG_MAXLEN)
    )

    def advance(self, dt: float) -> TickBatch:
        """Advance by ``dt`` seconds of real time."""
        self.accumulated_time += dt
        count = 0
        demands: List[AttentionDemand] = []
        while self.accumulated_time >= BACKGROUND_TICK_SECONDS:
            self.accumulated_time -= BACKGROUND_TICK_SECONDS
            demand = self._process_one_interval()
            if demand is not None:
                demands.append(demand)
            count += 1
        return TickBatch(count, tuple(demands))

    def advance_intervals(self, count: int) -> List[AttentionDemand]:
        """Apply ``count`` ticks immediately, ignoring the clock."""
        demands = []
        for _ in range(count):
            demand = self._process_one_interval()
            if demand is not None:
                demands.append(demand)
        return demands

    def get_and_reset_interval_count(self) -> int:
        count = self.interval_count
        self.interval_count = 0
        return count

    def drain_demand_log(self) -> List[AttentionDemand]:
        demands = list(self.demand_log)
        self.demand_log.clear()
        return demands

    def _process_one_interval(self) -> Optional[AttentionDemand]:
        model = self.model
        model.increase_need_attention(BACKGROUND_TICK_SECONDS, model.mode == FOREGROUND)
        self.orchestrator.update_timers(BACKGROUND_TICK_SECONDS)
        self.orchestrator.check_grievances(self.rng)
        self.orchestrator.check_generic_dialogues(BACKGROUND_TICK_SECONDS, self.rng)
        model.age_bubbles()
        demand = self._check_attention_demands()
        self._check_blended_parts_attention()
        self.interval_count += 1
        return demand

    def _check_attention_demands(self) -> Optional[AttentionDemand]:
        model = self.model
        candidates = [
            part
            for part in model.parts.values()
            if part.id not in model.blended
            and not model.is_pending_blend(part.id)
            and part.need_attention >= ATTENTION_DEMAND_THRESHOLD
        ]
        if not candidates:
            return None

        part = max(candidates, key=lambda p: p.need_attention)
        urgent = part.need_attention >= URGENT_NEED_ATTENTION
        roll = self.rng.random("panorama_attention")
        in_panorama = model.mode == PANORAMA
        if not (urgent or (in_panorama and part.need_attention - 1 > roll)):
            return None

        demand = AttentionDemand(part.id, part.need_attention, urgent)
        self.demand_log.append(demand)
        logger.debug("Attention demand from %s (%.2f)", part.id, part.need_attention)
        return demand

    def _check_blended_parts_attention(self) -> None:
        model = self.model
        for cloud_id, reason in list(model.blended.items()):
            if reason != SPONTANEOUS_REASON:
                continue
            if model.parts[cloud_id].need_attention < SETTLED_NEED_ATTENTION:
                model.unblend_to_target(cloud_id)
