# rollout_engine/api/routes/deployments.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from rollout_engine.api.schemas.deployment import (
    CheckpointResponse,
    DeploymentCreateRequest,
    DeploymentResponse,
    RecoveryResponse,
)
from rollout_engine.container import Container, get_container
from rollout_engine.core.errors import CapabilityError, InvalidStateTransition
from rollout_engine.core.models import TargetIdentity

router = APIRouter(prefix="/deployments", tags=["deployments"])


@router.post("", response_model=DeploymentResponse)
def create_deployment(
    request: DeploymentCreateRequest,
    container: Container = Depends(get_container),
):
    target = TargetIdentity(
        service_name=request.target.service_name,
        environment=request.target.environment,
        address=request.target.address,
        is_remote=request.target.is_remote,
    )

    try:
        orchestrator = container.orchestrator_for(
            request.profile, target, execution_id=request.execution_id
        )
        execution = orchestrator.execute(continue_on_error=request.continue_on_error)
    except CapabilityError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e))

    return DeploymentResponse(
        execution_id=execution.execution_id,
        status=execution.status.value,
        profile=execution.profile,
        error_message=execution.error_message,
        summary=orchestrator.generate_execution_summary(),
    )


@router.get("/{execution_id}/recovery", response_model=RecoveryResponse)
def get_recovery_state(
    execution_id: str,
    container: Container = Depends(get_container),
):
    state = container.checkpoint_store.compute_recovery_state(execution_id)
    return RecoveryResponse(**state.to_dict())


@router.get("/{execution_id}/checkpoints", response_model=List[CheckpointResponse])
def list_checkpoints(
    execution_id: str,
    container: Container = Depends(get_container),
):
    checkpoints = container.checkpoint_store.list_checkpoints(execution_id)
    if not checkpoints:
        raise HTTPException(status_code=404, detail="No checkpoints for execution")

    return [
        CheckpointResponse(
            execution_id=c.execution_id,
            phase=c.phase.value,
            version=c.version,
            checksum=c.checksum,
            created_at=c.created_at.isoformat(),
            payload=c.payload,
        )
        for c in checkpoints
    ]
