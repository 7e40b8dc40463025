# rollout_engine/api/routes/capabilities.py
from fastapi import APIRouter, HTTPException

from rollout_engine.capabilities.registry import registry_for_profile
from rollout_engine.core.errors import UnknownProfileError

router = APIRouter(prefix="/capabilities", tags=["capabilities"])


@router.get("/report")
def capability_report(profile: str = "single"):
    try:
        registry = registry_for_profile(profile)
    except UnknownProfileError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return registry.get_capability_report()
