# rollout_engine/core/checkpoint.py
"""Checkpoint and recovery-state models."""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from rollout_engine.core.errors import CheckpointError
from rollout_engine.core.models import PHASE_SEQUENCE, Phase, utcnow


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def normalize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Copy a payload through JSON.

    Raises CheckpointError when the copy would differ from the original
    (tuples, non-string keys, objects JSON cannot encode), so a loaded
    checkpoint always equals what was saved.
    """
    try:
        normalized = json.loads(canonical_json(payload))
    except (TypeError, ValueError) as e:
        raise CheckpointError(f"Checkpoint payload is not JSON-serializable: {e}") from e

    if normalized != payload:
        raise CheckpointError(
            "Checkpoint payload would change when stored "
            "(use lists instead of tuples and string keys only)"
        )
    return normalized


def compute_checksum(execution_id: str, phase: Phase, version: int, payload: Dict[str, Any]) -> str:
    body = canonical_json({
        "execution_id": execution_id,
        "phase": phase.value,
        "version": version,
        "payload": payload,
    })
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@dataclass
class Checkpoint:
    """Durable snapshot of one phase's result."""

    execution_id: str
    phase: Phase
    payload: Dict[str, Any]
    version: int
    checksum: str
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def build(
        cls,
        *,
        execution_id: str,
        phase: Phase,
        payload: Dict[str, Any],
        version: int,
    ) -> "Checkpoint":
        normalized = normalize_payload(payload)
        return cls(
            execution_id=execution_id,
            phase=phase,
            payload=normalized,
            version=version,
            checksum=compute_checksum(execution_id, phase, version, normalized),
        )

    def is_valid(self) -> bool:
        expected = compute_checksum(self.execution_id, self.phase, self.version, self.payload)
        return expected == self.checksum

    @property
    def phase_status(self) -> Optional[str]:
        return self.payload.get("status")


@dataclass
class RecoveryState:
    """Derived view of how far an execution got before it stopped."""

    execution_id: str
    completed_phases: List[Phase] = field(default_factory=list)
    remaining_phases: List[Phase] = field(default_factory=lambda: list(PHASE_SEQUENCE))
    corrupt_phases: List[Phase] = field(default_factory=list)
    checkpoints: Dict[Phase, Checkpoint] = field(default_factory=dict)

    @property
    def last_completed_phase(self) -> Optional[Phase]:
        return self.completed_phases[-1] if self.completed_phases else None

    @property
    def is_fresh_start(self) -> bool:
        return not self.completed_phases

    @property
    def is_complete(self) -> bool:
        return not self.remaining_phases

    def is_completed(self, phase: Phase) -> bool:
        return phase in self.completed_phases

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "last_completed_phase": (
                self.last_completed_phase.value if self.last_completed_phase else None
            ),
            "completed_phases": [p.value for p in self.completed_phases],
            "remaining_phases": [p.value for p in self.remaining_phases],
            "corrupt_phases": [p.value for p in self.corrupt_phases],
        }
