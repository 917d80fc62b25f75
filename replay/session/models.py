"""Recorded actions and sessions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from replay.actions import INTERVAL_ACTION
from replay.session.snapshots import AttentionDemand, ModelSnapshot, OrchestratorSnapshot
from replay.util.rng import DrawRecord

SESSION_VERSION = 1
PLATFORMS = ("desktop", "mobile")


@dataclass(frozen=True)
class RecordedAction:
    """One user or system action plus what is needed to replay and verify it.

    Attributes:
        action: Action kind, e.g. "select_a_target" or "process_intervals"
        cloud_id: Primary subject ("" when the action has none)
        target_cloud_id: Second subject for actions that complete a pending action
        field: Ray-field name for "ray_field_select"
        new_mode: View mode switched to by "mode_change"
        count: Number of background ticks ("process_intervals" only)
        rng_count: Model RNG call count once the action completed
        rng_log: Draws made since the previous recorded action
        model_state: Model snapshot after the action
        orch_state: Orchestrator snapshot after the action; for
            "process_intervals" the snapshot before the ticks were applied
        elapsed_time: Wall-clock seconds since the previous recorded action
        attention_demands: Demands raised during the ticks ("process_intervals" only)
    """

    action: str
    cloud_id: str = ""
    target_cloud_id: Optional[str] = None
    field: Optional[str] = None
    new_mode: Optional[str] = None
    count: Optional[int] = None
    rng_count: Optional[int] = None
    rng_log: Tuple[DrawRecord, ...] = ()
    model_state: Optional[ModelSnapshot] = None
    orch_state: Optional[OrchestratorSnapshot] = None
    elapsed_time: Optional[float] = None
    attention_demands: Tuple[AttentionDemand, ...] = ()

    @property
    def is_interval(self) -> bool:
        return self.action == INTERVAL_ACTION

    def stamped(
        self,
        rng_count: int,
        rng_log: Tuple[DrawRecord, ...],
        model_state: Optional[ModelSnapshot],
        orch_state: Optional[OrchestratorSnapshot],
        elapsed_time: Optional[float] = None,
    ) -> RecordedAction:
        """Return a copy carrying the verification data captured at completion."""
        return replace(
            self,
            rng_count=rng_count,
            rng_log=tuple(rng_log),
            model_state=model_state,
            orch_state=orch_state,
            elapsed_time=elapsed_time,
        )


@dataclass(frozen=True)
class RecordedSession:
    """The persisted script of one interaction run.

    Attributes:
        seed: Seed of the model RNG when recording started
        code_version: Build that produced the session
        platform: "desktop" or "mobile"
        initial_state: Model snapshot before the first action
        final_state: Model snapshot when recording stopped (None while recording)
        actions: Recorded actions in order
        initial_model: Opaque host model used to rebuild a fresh simulation
        timestamp: Unix time (seconds) recording started
        version: Session format version
    """

    seed: int
    code_version: str
    platform: str
    initial_state: ModelSnapshot
    final_state: Optional[ModelSnapshot] = None
    actions: Tuple[RecordedAction, ...] = ()
    initial_model: Optional[Dict[str, Any]] = field(default=None, compare=False)
    timestamp: float = field(default=0.0, compare=False)
    version: int = SESSION_VERSION

    @property
    def is_sealed(self) -> bool:
        return self.final_state is not None

    @property
    def user_actions(self) -> Tuple[RecordedAction, ...]:
        """Actions excluding background-tick pseudo-actions."""
        return tuple(a for a in self.actions if not a.is_interval)
