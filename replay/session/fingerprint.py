from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import orjson

from replay.session.models import RecordedSession
from replay.session.snapshots import ModelSnapshot


@dataclass(frozen=True)
class SnapshotFingerprinter:
    """Compute stable fingerprints for JSON-compatible snapshots."""

    digest_size: int = 16
    algorithm: str = "blake2b"
    float_precision: int | None = 6
    non_deterministic_keys: frozenset[str] = frozenset(
        {
            # Wall-clock measurements differ between otherwise identical runs
            "timestamp",
            "elapsedTime",
        }
    )

    def fingerprint(self, snapshot: Mapping[str, Any]) -> str:
        if self.algorithm != "blake2b":
            raise ValueError(f"Unsupported fingerprint algorithm: {self.algorithm}")
        canonical = canonicalize_for_fingerprint(
            snapshot,
            non_deterministic_keys=self.non_deterministic_keys,
            float_precision=self.float_precision,
        )
        payload = orjson.dumps(canonical, option=orjson.OPT_SORT_KEYS)
        return hashlib.blake2b(payload, digest_size=self.digest_size).hexdigest()


def fingerprint_snapshot(snapshot: ModelSnapshot) -> str:
    """Fingerprint a model snapshot with the default fingerprinter."""

    return SnapshotFingerprinter().fingerprint(snapshot.to_dict())


def fingerprint_session(session: RecordedSession) -> str:
    """Content id of a session; ignores when it was recorded and how long steps took."""
    from replay.session.codec import session_to_dict

    return SnapshotFingerprinter().fingerprint(session_to_dict(session))


def canonicalize_for_fingerprint(
    value: Any,
    non_deterministic_keys: Iterable[str] | None = None,
    float_precision: int | None = 6,
) -> Any:
    """Return a canonical, JSON-compatible structure for stable hashing.

    - Drops known non-deterministic keys anywhere in the structure.
    - Sorts dict keys.
    - Rounds floats so accumulated error below the precision does not matter.

    List order is preserved: action order is part of a session's identity.
    """

    drop_keys = set(non_deterministic_keys or [])

    def _canon(v: Any) -> Any:
        if isinstance(v, float):
            if float_precision is None:
                return v
            return round(v, int(float_precision))

        if isinstance(v, Mapping):
            items: dict[str, Any] = {}
            for k, vv in v.items():
                if k in drop_keys:
                    continue
                items[str(k)] = _canon(vv)
            return {k: items[k] for k in sorted(items.keys())}

        if isinstance(v, (list, tuple)):
            return [_canon(x) for x in v]

        return v

    return _canon(value)
