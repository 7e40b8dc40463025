# rollout_engine/core/models.py
"""Core domain models (executions, phases, targets)."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4


class Phase(Enum):
    """The six fixed pipeline phases."""

    INITIALIZE = "initialize"
    VALIDATE = "validate"
    PREPARE = "prepare"
    DEPLOY = "deploy"
    VERIFY = "verify"
    MONITOR = "monitor"


PHASE_SEQUENCE = (
    Phase.INITIALIZE,
    Phase.VALIDATE,
    Phase.PREPARE,
    Phase.DEPLOY,
    Phase.VERIFY,
    Phase.MONITOR,
)


class ExecutionStatus(Enum):
    """Execution state machine."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    ExecutionStatus.SUCCEEDED,
    ExecutionStatus.FAILED,
    ExecutionStatus.ROLLED_BACK,
    ExecutionStatus.CANCELLED,
})


class PhaseStatus(Enum):
    """Phase result status."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TargetIdentity:
    """What is being deployed and where."""

    service_name: str
    environment: str
    address: str = ""
    is_remote: bool = True

    @property
    def label(self) -> str:
        return f"{self.service_name}/{self.environment}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_name": self.service_name,
            "environment": self.environment,
            "address": self.address,
            "is_remote": self.is_remote,
        }


@dataclass
class PhaseOutcome:
    """What a phase hook hands back to the pipeline."""

    success: bool
    output: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    retries: int = 0

    @classmethod
    def ok(cls, output: Optional[Dict[str, Any]] = None, *, retries: int = 0) -> "PhaseOutcome":
        return cls(success=True, output=output or {}, retries=retries)

    @classmethod
    def failed(
        cls,
        error: str,
        output: Optional[Dict[str, Any]] = None,
        *,
        retries: int = 0,
    ) -> "PhaseOutcome":
        return cls(success=False, output=output or {}, error=error, retries=retries)


@dataclass
class PhaseResult:
    """Outcome of one phase for one execution."""

    phase: Phase
    status: PhaseStatus = PhaseStatus.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    output: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    retries: int = 0
    restored_from_checkpoint: bool = False

    # Rollback records (action_type, description, plan) registered by this phase
    compensations: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def duration_ms(self) -> int:
        if not self.started_at or not self.finished_at:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "output": self.output,
            "error": self.error,
            "retries": self.retries,
            "restored_from_checkpoint": self.restored_from_checkpoint,
            "compensations": [dict(c) for c in self.compensations],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PhaseResult":
        started_at = data.get("started_at")
        finished_at = data.get("finished_at")
        return cls(
            phase=Phase(data["phase"]),
            status=PhaseStatus(data["status"]),
            started_at=datetime.fromisoformat(started_at) if started_at else None,
            finished_at=datetime.fromisoformat(finished_at) if finished_at else None,
            output=dict(data.get("output") or {}),
            error=data.get("error"),
            retries=data.get("retries", 0),
            restored_from_checkpoint=data.get("restored_from_checkpoint", False),
            compensations=[dict(c) for c in data.get("compensations") or []],
        )


@dataclass
class DeploymentExecution:
    """One run of the phase pipeline for one target."""

    target: TargetIdentity
    execution_id: str = field(default_factory=lambda: str(uuid4()))
    profile: str = "custom"

    # State
    status: ExecutionStatus = ExecutionStatus.PENDING
    current_phase_index: int = 0
    phase_results: List[PhaseResult] = field(default_factory=list)
    continue_on_error: bool = False

    # Lifecycle timestamps
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    # Results
    error_message: Optional[str] = None
    rollback_summary: Optional[Dict[str, Any]] = None

    # -------------------------
    # QUERIES
    # -------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def result_for(self, phase: Phase) -> Optional[PhaseResult]:
        for result in self.phase_results:
            if result.phase == phase:
                return result
        return None

    def failed_phases(self) -> List[Phase]:
        return [r.phase for r in self.phase_results if r.status == PhaseStatus.FAILED]

    def has_failures(self) -> bool:
        return bool(self.failed_phases())

    def record(self, result: PhaseResult) -> None:
        """Append a phase result, keeping pipeline order."""
        if self.result_for(result.phase) is not None:
            raise ValueError(f"Phase {result.phase.value} already recorded")

        expected = PHASE_SEQUENCE[len(self.phase_results)]
        if result.phase != expected:
            raise ValueError(
                f"Phase {result.phase.value} recorded out of order (expected {expected.value})"
            )

        self.phase_results.append(result)
        self.current_phase_index = len(self.phase_results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "profile": self.profile,
            "target": self.target.to_dict(),
            "status": self.status.value,
            "current_phase_index": self.current_phase_index,
            "continue_on_error": self.continue_on_error,
            "phase_results": [r.to_dict() for r in self.phase_results],
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error_message": self.error_message,
            "rollback_summary": self.rollback_summary,
        }
