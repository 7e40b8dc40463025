# rollout_engine/orchestrator/profiles.py
"""Profile -> orchestrator dispatch."""

from typing import Dict, Optional, Type

from rollout_engine.capabilities.definitions import Profile
from rollout_engine.capabilities.registry import (
    CapabilityRegistry,
    ProfileRef,
    registry_for_profile,
    resolve_profile,
)
from rollout_engine.core.models import TargetIdentity
from rollout_engine.orchestrator.service import (
    EnterpriseOrchestrator,
    PortfolioOrchestrator,
    ServiceOrchestrator,
    SingleServiceOrchestrator,
)

ORCHESTRATORS: Dict[Profile, Type[ServiceOrchestrator]] = {
    Profile.SINGLE: SingleServiceOrchestrator,
    Profile.PORTFOLIO: PortfolioOrchestrator,
    Profile.ENTERPRISE: EnterpriseOrchestrator,
}


def create_orchestrator(
    profile: ProfileRef,
    target: TargetIdentity,
    *,
    registry: Optional[CapabilityRegistry] = None,
    **kwargs,
) -> ServiceOrchestrator:
    """
    Build the orchestrator for a profile.

    Without an explicit registry a fresh one is configured with the
    profile's recommended capabilities.
    """
    resolved = resolve_profile(profile)
    orchestrator_class = ORCHESTRATORS[resolved]
    return orchestrator_class(
        target,
        registry=registry or registry_for_profile(resolved),
        **kwargs,
    )
