# rollout_engine/api/schemas/deployment.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from rollout_engine.capabilities.definitions import Profile


class TargetSchema(BaseModel):
    service_name: str = Field(min_length=1)
    environment: str = Field(min_length=1)
    address: str = ""
    is_remote: bool = True


class DeploymentCreateRequest(BaseModel):
    profile: Profile = Profile.SINGLE
    target: TargetSchema
    continue_on_error: bool = False
    execution_id: Optional[str] = None


class DeploymentResponse(BaseModel):
    execution_id: str
    status: str
    profile: str
    error_message: Optional[str] = None
    summary: Dict[str, Any]


class RecoveryResponse(BaseModel):
    execution_id: str
    last_completed_phase: Optional[str] = None
    completed_phases: List[str]
    remaining_phases: List[str]
    corrupt_phases: List[str]


class CheckpointResponse(BaseModel):
    execution_id: str
    phase: str
    version: int
    checksum: str
    created_at: str
    payload: Dict[str, Any]
