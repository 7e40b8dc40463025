# rollout_engine/core/state_machine.py

from datetime import datetime

from rollout_engine.core.errors import InvalidStateTransition
from rollout_engine.core.models import (
    DeploymentExecution,
    ExecutionStatus,
    TERMINAL_STATUSES,
    utcnow,
)


ALLOWED_TRANSITIONS = {
    ExecutionStatus.PENDING: {
        ExecutionStatus.RUNNING,
        ExecutionStatus.CANCELLED,
    },
    ExecutionStatus.RUNNING: {
        ExecutionStatus.SUCCEEDED,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
    },
    ExecutionStatus.FAILED: {
        ExecutionStatus.ROLLED_BACK,
    },
}


class ExecutionStateMachine:
    @staticmethod
    def can_transition(current: ExecutionStatus, new_status: ExecutionStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS.get(current, set())

    @staticmethod
    def transition(
        execution: DeploymentExecution,
        new_status: ExecutionStatus,
        *,
        now: datetime | None = None,
    ) -> DeploymentExecution:
        now = now or utcnow()

        current = execution.status

        if current == new_status:
            return execution

        if not ExecutionStateMachine.can_transition(current, new_status):
            raise InvalidStateTransition(
                f"Cannot transition from {current.value} to {new_status.value}"
            )

        # Timestamp semantics
        if new_status == ExecutionStatus.RUNNING:
            execution.started_at = now

        elif new_status in TERMINAL_STATUSES and execution.finished_at is None:
            execution.finished_at = now

        execution.status = new_status
        return execution
