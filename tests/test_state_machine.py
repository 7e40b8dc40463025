"""Test execution state machine and execution model."""

import pytest

from rollout_engine.core.errors import InvalidStateTransition
from rollout_engine.core.models import (
    DeploymentExecution,
    ExecutionStatus,
    Phase,
    PhaseResult,
    PhaseStatus,
    TargetIdentity,
)
from rollout_engine.core.state_machine import ExecutionStateMachine


@pytest.fixture
def execution():
    return DeploymentExecution(target=TargetIdentity(service_name="svc", environment="staging"))


class TestExecutionStateMachine:
    """Test status transitions."""

    def test_happy_path(self, execution):
        ExecutionStateMachine.transition(execution, ExecutionStatus.RUNNING)
        assert execution.started_at is not None

        ExecutionStateMachine.transition(execution, ExecutionStatus.SUCCEEDED)
        assert execution.finished_at is not None
        assert execution.is_terminal

    def test_failed_to_rolled_back(self, execution):
        ExecutionStateMachine.transition(execution, ExecutionStatus.RUNNING)
        ExecutionStateMachine.transition(execution, ExecutionStatus.FAILED)
        finished_at = execution.finished_at

        ExecutionStateMachine.transition(execution, ExecutionStatus.ROLLED_BACK)

        assert execution.status == ExecutionStatus.ROLLED_BACK
        assert execution.finished_at == finished_at

    @pytest.mark.parametrize("current,new_status", [
        (ExecutionStatus.PENDING, ExecutionStatus.SUCCEEDED),
        (ExecutionStatus.PENDING, ExecutionStatus.FAILED),
        (ExecutionStatus.SUCCEEDED, ExecutionStatus.RUNNING),
        (ExecutionStatus.ROLLED_BACK, ExecutionStatus.FAILED),
        (ExecutionStatus.CANCELLED, ExecutionStatus.RUNNING),
        (ExecutionStatus.RUNNING, ExecutionStatus.ROLLED_BACK),
    ])
    def test_illegal_transitions(self, execution, current, new_status):
        execution.status = current

        with pytest.raises(InvalidStateTransition):
            ExecutionStateMachine.transition(execution, new_status)

    def test_same_status_is_noop(self, execution):
        ExecutionStateMachine.transition(execution, ExecutionStatus.PENDING)
        assert execution.status == ExecutionStatus.PENDING


class TestDeploymentExecution:
    """Test phase result bookkeeping."""

    def test_ids_are_unique(self):
        target = TargetIdentity(service_name="svc", environment="staging")
        assert DeploymentExecution(target=target).execution_id != DeploymentExecution(target=target).execution_id

    def test_record_in_order(self, execution):
        execution.record(PhaseResult(phase=Phase.INITIALIZE, status=PhaseStatus.SUCCEEDED))
        execution.record(PhaseResult(phase=Phase.VALIDATE, status=PhaseStatus.FAILED))

        assert execution.current_phase_index == 2
        assert execution.failed_phases() == [Phase.VALIDATE]

    def test_record_out_of_order_rejected(self, execution):
        with pytest.raises(ValueError):
            execution.record(PhaseResult(phase=Phase.DEPLOY))

    def test_record_duplicate_rejected(self, execution):
        execution.record(PhaseResult(phase=Phase.INITIALIZE))

        with pytest.raises(ValueError):
            execution.record(PhaseResult(phase=Phase.INITIALIZE))

    def test_phase_result_round_trip(self):
        result = PhaseResult(phase=Phase.DEPLOY, status=PhaseStatus.SUCCEEDED, output={"url": "x"}, retries=1)

        restored = PhaseResult.from_dict(result.to_dict())

        assert restored.phase == Phase.DEPLOY
        assert restored.output == {"url": "x"}
        assert restored.retries == 1
