"""Synchronization verifier.

Compares what a recorded action says the simulation looked like against
the live simulation during replay. Every check runs; a failure reports all
mismatches at once rather than the first one found.

Checks, in order:
1. Model RNG call count (with the labels drawn since the previous action)
2. Subject-set fields: targets, blended, pending blends
3. Per-subject fields: biography flags, trust, attention, conversation
4. Singletons: self ray, pending action, conversation speaker
5. Background engine timers (skipped for background-tick pseudo-actions,
   whose recorded orchestrator state is a pre-tick restore point)

Each model field has a declared comparison rule in ``FIELD_RULES``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from replay.config.playback import (
    ATTENTION_TOLERANCE,
    TIMER_TOLERANCE,
    TRUST_TOLERANCE,
    VerifierConfig,
)
from replay.result import Err, Ok, Result
from replay.session.models import RecordedAction
from replay.session.snapshots import ModelSnapshot, OrchestratorSnapshot, ThoughtBubbleSnapshot
from replay.util.rng import DrawRecord

logger = logging.getLogger(__name__)

NameResolver = Callable[[str], str]

_BUBBLE_PREVIEW_CHARS = 30


@dataclass(frozen=True)
class LiveState:
    """What the verifier reads from the live simulation."""

    model: ModelSnapshot
    orchestrator: Optional[OrchestratorSnapshot]
    rng_call_count: int
    rng_call_log: Tuple[DrawRecord, ...] = ()


@dataclass(frozen=True)
class RngDelta:
    """Draw labels since the previous action, expected vs. actual.

    Attributes:
        expected_labels: Labels recorded with the action
        actual_labels: Labels the live RNG logged over the same span
        from_count: Call count at the previous action
    """

    expected_labels: Tuple[str, ...]
    actual_labels: Tuple[str, ...]
    from_count: int

    def describe(self) -> str:
        return (
            f"draws since #{self.from_count}: expected [{', '.join(self.expected_labels)}], "
            f"got [{', '.join(self.actual_labels)}]"
        )


@dataclass(frozen=True)
class SyncMismatch:
    """Every difference found for one action."""

    diffs: Tuple[str, ...]
    rng_delta: Optional[RngDelta] = None
    artifacts: Tuple[str, ...] = ()

    @property
    def description(self) -> str:
        parts = list(self.diffs)
        if self.artifacts:
            parts.append("bubbles: " + ", ".join(self.artifacts))
        return "Sync mismatch: " + "; ".join(parts)

    def __str__(self) -> str:
        return self.description


@dataclass(frozen=True)
class _Context:
    name_of: NameResolver
    tolerances: Mapping[str, float]


def _names(ids: Sequence[str], name_of: NameResolver) -> str:
    return ", ".join(name_of(i) for i in sorted(ids))


class FieldRule:
    """Comparison rule for one model snapshot field."""

    def __init__(self, attr: str, label: str) -> None:
        self.attr = attr
        self.label = label

    def compare(self, expected: ModelSnapshot, actual: ModelSnapshot, ctx: _Context) -> List[str]:
        if self.attr in expected.unrecorded:
            return []
        return self.compare_values(getattr(expected, self.attr), getattr(actual, self.attr), ctx)

    def compare_values(self, expected: Any, actual: Any, ctx: _Context) -> List[str]:
        raise NotImplementedError


class SetRule(FieldRule):
    """Unordered membership; missing and extra members reported separately."""

    def compare_values(self, expected: Any, actual: Any, ctx: _Context) -> List[str]:
        diffs = []
        missing = set(expected) - set(actual)
        extra = set(actual) - set(expected)
        if missing:
            diffs.append(f"missing {self.label}: {_names(list(missing), ctx.name_of)}")
        if extra:
            diffs.append(f"extra {self.label}: {_names(list(extra), ctx.name_of)}")
        return diffs


class ExactMapRule(FieldRule):
    def compare_values(self, expected: Any, actual: Any, ctx: _Context) -> List[str]:
        diffs = []
        for key in sorted(expected):
            name = ctx.name_of(key)
            if key not in actual:
                diffs.append(f"{name} {self.label}: expected {expected[key]}, got none")
            elif actual[key] != expected[key]:
                diffs.append(f"{name} {self.label}: expected {expected[key]}, got {actual[key]}")
        return diffs


class ToleranceMapRule(FieldRule):
    """Per-subject floats, equal within a named tolerance."""

    def __init__(self, attr: str, label: str, tolerance: str) -> None:
        super().__init__(attr, label)
        self.tolerance = tolerance

    def compare_values(self, expected: Any, actual: Any, ctx: _Context) -> List[str]:
        diffs = []
        tolerance = ctx.tolerances[self.tolerance]
        for key in sorted(expected):
            name = ctx.name_of(key)
            if key not in actual:
                diffs.append(f"{name} {self.label}: expected {expected[key]:.3f}, got none")
            elif abs(actual[key] - expected[key]) > tolerance:
                diffs.append(
                    f"{name} {self.label}: expected {expected[key]:.3f}, got {actual[key]:.3f}"
                )
        return diffs


class BooleanRecordMapRule(FieldRule):
    """Per-subject records of boolean flags, compared flag by flag."""

    def compare_values(self, expected: Any, actual: Any, ctx: _Context) -> List[str]:
        diffs = []
        for key in sorted(expected):
            name = ctx.name_of(key)
            if key not in actual:
                diffs.append(f"{name} {self.label}: missing")
                continue
            expected_flags = expected[key].to_dict()
            actual_flags = actual[key].to_dict()
            for flag, value in expected_flags.items():
                if actual_flags.get(flag) != value:
                    diffs.append(f"{name} {flag}: expected {value}, got {actual_flags.get(flag)}")
        return diffs


class RelationRule(FieldRule):
    """Directed relations keyed by (from, to); trust and stance within tolerance."""

    def compare_values(self, expected: Any, actual: Any, ctx: _Context) -> List[str]:
        diffs = []
        tolerance = ctx.tolerances["trust"]
        live = {(r.from_id, r.to_id): r for r in actual}
        for relation in expected:
            label = f"{ctx.name_of(relation.from_id)}->{ctx.name_of(relation.to_id)}"
            other = live.get((relation.from_id, relation.to_id))
            if other is None:
                diffs.append(f"missing relation {label}")
                continue
            for attr in ("trust", "stance"):
                e, a = getattr(relation, attr), getattr(other, attr)
                if abs(a - e) > tolerance:
                    diffs.append(f"relation {label} {attr}: expected {e:.3f}, got {a:.3f}")
        return diffs


class SingletonRule(FieldRule):
    """A single optional value compared by equality, shown by name."""

    def __init__(self, attr: str, label: str, resolve_names: bool = True) -> None:
        super().__init__(attr, label)
        self.resolve_names = resolve_names

    def _show(self, value: Any, ctx: _Context) -> str:
        if value is None:
            return "none"
        if self.resolve_names:
            return ctx.name_of(value)
        return str(value)

    def compare_values(self, expected: Any, actual: Any, ctx: _Context) -> List[str]:
        if expected == actual:
            return []
        return [f"{self.label}: expected {self._show(expected, ctx)}, got {self._show(actual, ctx)}"]


FIELD_RULES: Tuple[FieldRule, ...] = (
    SetRule("targets", "targets"),
    SetRule("blended", "blended"),
    SetRule("pending_blends", "pending"),
    BooleanRecordMapRule("biography", "biography"),
    ToleranceMapRule("trust", "trust", tolerance="trust"),
    ToleranceMapRule("need_attention", "needAttention", tolerance="attention"),
    ToleranceMapRule("conversation_effective_stances", "stance", tolerance="trust"),
    ToleranceMapRule("conversation_therapist_delta", "therapistDelta", tolerance="trust"),
    ExactMapRule("conversation_phases", "phase"),
    RelationRule("inter_part_relations", "relations"),
    SingletonRule("self_ray", "selfRay"),
    SingletonRule("pending_action", "pendingAction", resolve_names=False),
    SingletonRule("conversation_speaker_id", "speaker"),
)

_TIMER_LABELS = {
    "blendTimers": "blendTimer",
    "cooldowns": "cooldown",
    "selfLoathingCooldowns": "selfLoathingCooldown",
    "genericDialogueCooldowns": "genericDialogueCooldown",
}


def describe_bubbles(
    bubbles: Sequence[ThoughtBubbleSnapshot], name_of: NameResolver
) -> Tuple[str, ...]:
    """Compact text for outstanding thought bubbles, used in failure reports."""
    described = []
    for bubble in bubbles:
        text = bubble.text[:_BUBBLE_PREVIEW_CHARS]
        flags = ("[V]" if bubble.validated else "") + ("[P]" if bubble.part_initiated else "")
        described.append(f'#{bubble.id} {name_of(bubble.cloud_id)}:"{text}"{flags}')
    return tuple(described)


class SyncVerifier:
    """Checks live state against a recorded action."""

    def __init__(
        self,
        name_resolver: Optional[NameResolver] = None,
        trust_tolerance: float = TRUST_TOLERANCE,
        timer_tolerance: float = TIMER_TOLERANCE,
        attention_tolerance: float = ATTENTION_TOLERANCE,
    ) -> None:
        self._name_of: NameResolver = name_resolver or (lambda subject_id: subject_id)
        self._timer_tolerance = timer_tolerance
        self._context = _Context(
            name_of=self._name_of,
            tolerances={"trust": trust_tolerance, "attention": attention_tolerance},
        )

    @classmethod
    def from_config(
        cls, config: VerifierConfig, name_resolver: Optional[NameResolver] = None
    ) -> SyncVerifier:
        return cls(
            name_resolver=name_resolver,
            trust_tolerance=config.trust_tolerance,
            timer_tolerance=config.timer_tolerance,
            attention_tolerance=config.attention_tolerance,
        )

    def set_name_resolver(self, name_resolver: NameResolver) -> None:
        self._name_of = name_resolver
        self._context = _Context(name_of=name_resolver, tolerances=self._context.tolerances)

    def verify(self, action: RecordedAction, live: LiveState) -> Result[None, SyncMismatch]:
        """Compare ``live`` against the expectations recorded with ``action``.

        Returns:
            Ok(None) when everything matches, otherwise Err(SyncMismatch)
        """
        diffs: List[str] = []
        rng_delta = None

        if action.rng_count is not None and action.rng_count != live.rng_call_count:
            diffs.append(
                f"model RNG count: expected {action.rng_count}, got {live.rng_call_count}"
            )
            rng_delta = self._rng_delta(action, live)
            diffs.append(rng_delta.describe())

        if action.model_state is not None:
            diffs.extend(self.compare_models(action.model_state, live.model))

        if (
            not action.is_interval
            and action.orch_state is not None
            and live.orchestrator is not None
        ):
            diffs.extend(self.compare_orchestrators(action.orch_state, live.orchestrator))

        if not diffs:
            return Ok(None)

        mismatch = SyncMismatch(
            diffs=tuple(diffs),
            rng_delta=rng_delta,
            artifacts=describe_bubbles(live.model.thought_bubbles, self._name_of),
        )
        logger.warning("%s after '%s'", mismatch.description, action.action)
        return Err(mismatch)

    def compare_models(self, expected: ModelSnapshot, actual: ModelSnapshot) -> List[str]:
        diffs: List[str] = []
        for rule in FIELD_RULES:
            diffs.extend(rule.compare(expected, actual, self._context))
        return diffs

    def compare_orchestrators(
        self, expected: OrchestratorSnapshot, actual: OrchestratorSnapshot
    ) -> List[str]:
        diffs: List[str] = []
        actual_maps = actual.timer_maps()
        for key, expected_map in expected.timer_maps().items():
            label = _TIMER_LABELS[key]
            actual_map = actual_maps[key]
            for subject_id in sorted(expected_map):
                e = expected_map[subject_id]
                a = actual_map.get(subject_id, 0.0)
                if abs(a - e) > self._timer_tolerance:
                    diffs.append(
                        f"{label} {self._name_of(subject_id)}: expected {e:.2f}, got {a:.2f}"
                    )

        actual_scalars = actual.scalar_timers()
        for key, e in expected.scalar_timers().items():
            a = actual_scalars[key]
            if e is not None and a is not None and abs(a - e) > self._timer_tolerance:
                diffs.append(f"{key}: expected {e:.2f}, got {a:.2f}")
        return diffs

    def compare_final_states(self, expected: ModelSnapshot, actual: ModelSnapshot) -> List[str]:
        """Diffs between a session's final snapshot and the live one at the end of a run."""
        return self.compare_models(expected, actual)

    def _rng_delta(self, action: RecordedAction, live: LiveState) -> RngDelta:
        assert action.rng_count is not None
        from_count = max(action.rng_count - len(action.rng_log), 0)
        return RngDelta(
            expected_labels=tuple(d.label for d in action.rng_log),
            actual_labels=tuple(d.label for d in live.rng_call_log[from_count:]),
            from_count=from_count,
        )


def live_state_from(host: Any, rng: Any) -> LiveState:
    """Read a :class:`LiveState` from a host implementing ``ModelAccess``."""
    return LiveState(
        model=host.get_model_snapshot(),
        orchestrator=host.get_orchestrator_snapshot(),
        rng_call_count=rng.get_call_count(),
        rng_call_log=tuple(rng.get_call_log()),
    )

