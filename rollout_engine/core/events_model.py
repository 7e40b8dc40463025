# rollout_engine/core/events_model.py
"""Audit event model."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class AuditEvent:
    """One phase transition or capability invocation."""

    execution_id: str
    phase: Optional[str]
    capability: Optional[str]
    status: str
    timestamp_ms: int = field(default_factory=now_ms)
    duration_ms: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def phase_event(execution_id: str, phase, status: str, duration_ms: int = 0, **metadata):
        """Phase transition event (running / succeeded / failed / skipped)."""
        return AuditEvent(
            execution_id=execution_id,
            phase=phase.value,
            capability=None,
            status=status,
            duration_ms=duration_ms,
            metadata=metadata,
        )

    @staticmethod
    def capability_event(
        execution_id: str,
        phase,
        capability,
        status: str,
        duration_ms: int = 0,
        **metadata,
    ):
        """Capability invocation inside a phase hook."""
        return AuditEvent(
            execution_id=execution_id,
            phase=phase.value if phase else None,
            capability=capability.value,
            status=status,
            duration_ms=duration_ms,
            metadata=metadata,
        )

    @staticmethod
    def execution_event(execution_id: str, status: str, **metadata):
        """Execution-level lifecycle event (started, terminal status, rollback)."""
        return AuditEvent(
            execution_id=execution_id,
            phase=None,
            capability=None,
            status=status,
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "phase": self.phase,
            "capability": self.capability,
            "status": self.status,
            "timestamp_ms": self.timestamp_ms,
            "duration_ms": self.duration_ms,
            "metadata": self.metadata,
        }
