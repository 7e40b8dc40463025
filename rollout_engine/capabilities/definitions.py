# rollout_engine/capabilities/definitions.py
"""Capability catalog: names, categories, prerequisites, profile presets."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple


class CapabilityCategory(Enum):
    DEPLOYMENT_MODE = "deployment-mode"
    VALIDATION = "validation"
    TESTING = "testing"
    DATABASE = "database"
    SECRETS = "secrets"
    ENTERPRISE = "enterprise"
    RECOVERY = "recovery"


class CapabilityName(Enum):
    # Deployment mode
    SINGLE_DEPLOY = "single_deploy"
    MULTI_DEPLOY = "multi_deploy"
    PORTFOLIO_DEPLOY = "portfolio_deploy"

    # Validation
    BASIC_VALIDATION = "basic_validation"
    STANDARD_VALIDATION = "standard_validation"
    COMPREHENSIVE_VALIDATION = "comprehensive_validation"

    # Testing
    HEALTH_CHECK = "health_check"
    ENDPOINT_TESTING = "endpoint_testing"
    INTEGRATION_TESTING = "integration_testing"
    PRODUCTION_TESTING = "production_testing"

    # Database
    DB_MIGRATION = "db_migration"
    DATABASE_MANAGEMENT = "database_management"
    MULTI_REGION_DB = "multi_region_db"

    # Secrets
    SECRET_GENERATION = "secret_generation"
    SECRET_COORDINATION = "secret_coordination"
    SECRET_DISTRIBUTION = "secret_distribution"

    # Enterprise
    HIGH_AVAILABILITY = "high_availability"
    COMPLIANCE_CHECK = "compliance_check"
    AUDIT_LOGGING = "audit_logging"

    # Recovery
    DISASTER_RECOVERY = "disaster_recovery"
    DEPLOYMENT_CLEANUP = "deployment_cleanup"
    ROLLBACK_SNAPSHOT = "rollback_snapshot"


class Profile(Enum):
    SINGLE = "single"
    PORTFOLIO = "portfolio"
    ENTERPRISE = "enterprise"


@dataclass(frozen=True)
class CapabilityDefinition:
    name: CapabilityName
    category: CapabilityCategory
    description: str
    prerequisites: Tuple[CapabilityName, ...] = ()


C = CapabilityName
Cat = CapabilityCategory

CAPABILITY_DEFINITIONS: Tuple[CapabilityDefinition, ...] = (
    CapabilityDefinition(C.SINGLE_DEPLOY, Cat.DEPLOYMENT_MODE, "Single target deployment"),
    CapabilityDefinition(
        C.MULTI_DEPLOY, Cat.DEPLOYMENT_MODE,
        "Multi-target deployment with coordination",
        (C.SINGLE_DEPLOY,),
    ),
    CapabilityDefinition(
        C.PORTFOLIO_DEPLOY, Cat.DEPLOYMENT_MODE,
        "Full portfolio deployment management",
        (C.MULTI_DEPLOY,),
    ),

    CapabilityDefinition(C.BASIC_VALIDATION, Cat.VALIDATION, "Basic deployment validation"),
    CapabilityDefinition(
        C.STANDARD_VALIDATION, Cat.VALIDATION,
        "Standard deployment validation",
        (C.BASIC_VALIDATION,),
    ),
    CapabilityDefinition(
        C.COMPREHENSIVE_VALIDATION, Cat.VALIDATION,
        "Comprehensive deployment validation",
        (C.BASIC_VALIDATION,),
    ),

    CapabilityDefinition(C.HEALTH_CHECK, Cat.TESTING, "Health check testing"),
    CapabilityDefinition(C.ENDPOINT_TESTING, Cat.TESTING, "Endpoint testing", (C.HEALTH_CHECK,)),
    CapabilityDefinition(
        C.INTEGRATION_TESTING, Cat.TESTING,
        "Cross-target integration testing",
        (C.HEALTH_CHECK,),
    ),
    CapabilityDefinition(
        C.PRODUCTION_TESTING, Cat.TESTING,
        "Full production testing suite",
        (C.INTEGRATION_TESTING,),
    ),

    CapabilityDefinition(C.DB_MIGRATION, Cat.DATABASE, "Database migration management"),
    CapabilityDefinition(C.DATABASE_MANAGEMENT, Cat.DATABASE, "Platform database provisioning"),
    CapabilityDefinition(
        C.MULTI_REGION_DB, Cat.DATABASE,
        "Multi-region database configuration",
        (C.DB_MIGRATION,),
    ),

    CapabilityDefinition(C.SECRET_GENERATION, Cat.SECRETS, "Secret generation"),
    CapabilityDefinition(
        C.SECRET_COORDINATION, Cat.SECRETS,
        "Cross-target secret coordination",
        (C.SECRET_GENERATION,),
    ),
    CapabilityDefinition(
        C.SECRET_DISTRIBUTION, Cat.SECRETS,
        "Secret distribution to the platform",
        (C.SECRET_GENERATION,),
    ),

    CapabilityDefinition(
        C.HIGH_AVAILABILITY, Cat.ENTERPRISE,
        "High availability configuration",
        (C.MULTI_DEPLOY,),
    ),
    CapabilityDefinition(
        C.COMPLIANCE_CHECK, Cat.ENTERPRISE,
        "Compliance verification (SOX, HIPAA, PCI)",
        (C.COMPREHENSIVE_VALIDATION, C.AUDIT_LOGGING),
    ),
    CapabilityDefinition(C.AUDIT_LOGGING, Cat.ENTERPRISE, "Comprehensive audit logging"),

    CapabilityDefinition(
        C.DISASTER_RECOVERY, Cat.RECOVERY,
        "Disaster recovery setup",
        (C.HIGH_AVAILABILITY, C.MULTI_REGION_DB),
    ),
    CapabilityDefinition(C.DEPLOYMENT_CLEANUP, Cat.RECOVERY, "Cleanup after deployment"),
    CapabilityDefinition(C.ROLLBACK_SNAPSHOT, Cat.RECOVERY, "Snapshot previous version for rollback"),
)

DEFINITIONS_BY_NAME: Dict[CapabilityName, CapabilityDefinition] = {
    d.name: d for d in CAPABILITY_DEFINITIONS
}


_SINGLE = [
    C.BASIC_VALIDATION,
    C.HEALTH_CHECK,
    C.SINGLE_DEPLOY,
    C.DB_MIGRATION,
    C.SECRET_GENERATION,
    C.AUDIT_LOGGING,
]

_PORTFOLIO = _SINGLE + [
    C.COMPREHENSIVE_VALIDATION,
    C.MULTI_DEPLOY,
    C.SECRET_COORDINATION,
    C.INTEGRATION_TESTING,
]

_ENTERPRISE = _PORTFOLIO + [
    C.COMPLIANCE_CHECK,
    C.HIGH_AVAILABILITY,
    C.DISASTER_RECOVERY,
    C.MULTI_REGION_DB,
    C.PRODUCTION_TESTING,
]

RECOMMENDED_CAPABILITIES: Dict[Profile, Tuple[CapabilityName, ...]] = {
    Profile.SINGLE: tuple(_SINGLE),
    Profile.PORTFOLIO: tuple(_PORTFOLIO),
    Profile.ENTERPRISE: tuple(_ENTERPRISE),
}


def missing_prerequisites(names) -> List[Tuple[CapabilityName, CapabilityName]]:
    """Pairs (capability, prerequisite) where the prerequisite is not in ``names``."""
    selected = set(names)
    missing = []
    for name in names:
        for prereq in DEFINITIONS_BY_NAME[name].prerequisites:
            if prereq not in selected:
                missing.append((name, prereq))
    return missing
