# rollout_engine/orchestrator/service.py
"""
Capability-driven phase hooks.

ServiceOrchestrator implements every hook as a series of capability checks;
the profile subclasses only differ in their defaults and in a few extra
steps.
"""

import logging
import os
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from rollout_engine.backend.classification import classify_backend_failure
from rollout_engine.backend.commands import (
    Command,
    Environment,
    build_backup_command,
    build_database_create_command,
    build_database_info_command,
    build_deploy_command,
    build_migration_command,
    build_restore_command,
    build_rollback_command,
    build_secret_put_command,
    extract_deployment_url,
    locality_for,
    resolve_environment,
)
from rollout_engine.backend.health import HttpHealthChecker
from rollout_engine.backend.runner import CommandResult, ExecutionBackend, SubprocessBackend
from rollout_engine.capabilities.definitions import CapabilityName as C, Profile
from rollout_engine.core.context import ExecutionContext, thaw
from rollout_engine.core.errors import CheckpointError, DeploymentValidationError, FatalBackendError
from rollout_engine.core.models import Phase, PhaseOutcome
from rollout_engine.orchestrator.base import BaseOrchestrator

logger = logging.getLogger(__name__)

# Most specific first; on_deploy invokes the first one enabled
DEPLOYMENT_MODES = (C.PORTFOLIO_DEPLOY, C.MULTI_DEPLOY, C.SINGLE_DEPLOY)


class ServiceOrchestrator(BaseOrchestrator):
    """Hooks that consult the enabled capabilities and drive the backend."""

    def __init__(
        self,
        target,
        *,
        backend: Optional[ExecutionBackend] = None,
        health_checker: Optional[HttpHealthChecker] = None,
        **kwargs,
    ):
        super().__init__(target, **kwargs)
        self.backend = backend or SubprocessBackend(
            default_timeout_seconds=self.config.backend_timeout_seconds,
        )
        self.health_checker = health_checker or HttpHealthChecker(
            default_timeout_ms=self.config.health_check_timeout_ms,
        )

    # -------------------------
    # BACKEND HELPERS
    # -------------------------

    def run_backend(self, command: Command, action: str, input_text: Optional[str] = None) -> CommandResult:
        """Run a command; transient failures are retried, fatal ones raised."""

        def attempt() -> CommandResult:
            result = self.backend.run_command(
                command.as_list(),
                is_remote=command.is_remote,
                timeout_seconds=self.config.backend_timeout_seconds,
                input_text=input_text,
            )
            if not result.ok:
                raise classify_backend_failure(result, action)
            return result

        return self.retry(attempt, action)

    def register_command_compensation(
        self,
        action_type: str,
        description: str,
        command: Command,
        action: str,
    ) -> None:
        """Register a backend command as a compensation that survives a restart."""
        plan = {"command": command.to_dict(), "action": action}
        self.rollback_manager.register(
            action_type,
            description,
            self.rebuild_compensation(action_type, plan),
            plan=plan,
        )

    def rebuild_compensation(self, action_type: str, plan: Dict[str, Any]):
        if "command" not in plan:
            return super().rebuild_compensation(action_type, plan)

        try:
            command = Command.from_dict(plan["command"])
        except (KeyError, TypeError, ValueError) as e:
            raise CheckpointError(f"Malformed '{action_type}' rollback plan: {e}") from e
        action = plan.get("action") or action_type
        return lambda: self.run_backend(command, action)

    def _environment(self, context: ExecutionContext) -> Environment:
        try:
            return resolve_environment(context.target.environment)
        except ValueError as e:
            raise DeploymentValidationError(str(e)) from e

    # -------------------------
    # INITIALIZE
    # -------------------------

    def on_initialize(self, context: ExecutionContext) -> PhaseOutcome:
        target = context.target
        if not target.service_name:
            raise DeploymentValidationError("Target has no service name")
        if not target.environment:
            raise DeploymentValidationError("Target has no environment")

        enabled = sorted(c.value for c in context.enabled_capabilities)
        logger.info(f"[{target.label}] initializing with {len(enabled)} capabilities")

        return PhaseOutcome.ok({
            "status": "initialized",
            "orchestrator": type(self).__name__,
            "profile": self.profile_name,
            "service": target.service_name,
            "environment": target.environment,
            "locality": locality_for(target.is_remote).value,
            "capabilities": enabled,
        })

    # -------------------------
    # VALIDATE
    # -------------------------

    def on_validation(self, context: ExecutionContext) -> PhaseOutcome:
        checks: Dict[str, Any] = {}
        warnings: List[str] = []

        basic = self.invoke_capability(context, C.BASIC_VALIDATION, lambda: self.validate_basic(context))
        if basic is not None:
            checks["basic"] = basic

        standard = self.invoke_capability(
            context, C.STANDARD_VALIDATION, lambda: self.validate_standard(context, warnings)
        )
        if standard is not None:
            checks["standard"] = standard

        comprehensive = self.invoke_capability(
            context, C.COMPREHENSIVE_VALIDATION, lambda: self.validate_comprehensive(context, warnings)
        )
        if comprehensive is not None:
            checks["comprehensive"] = comprehensive

        compliance = self.invoke_capability(context, C.COMPLIANCE_CHECK, lambda: self.validate_compliance(context))
        if compliance is not None:
            checks["compliance"] = compliance

        return PhaseOutcome.ok({"status": "validated", "checks": checks, "warnings": warnings})

    def validate_basic(self, context: ExecutionContext) -> Dict[str, Any]:
        environment = self._environment(context)
        return {"status": "passed", "environment": environment.value}

    def validate_standard(self, context: ExecutionContext, warnings: List[str]) -> Dict[str, Any]:
        address = context.target.address
        if address and not address.startswith(("http://", "https://")):
            raise DeploymentValidationError(f"Address must be an http(s) URL: {address}")
        if address.startswith("http://") and self._environment(context) is Environment.PRODUCTION:
            warnings.append("Production address is not served over https")
        return {"status": "passed"}

    def validate_comprehensive(self, context: ExecutionContext, warnings: List[str]) -> Dict[str, Any]:
        if self.config.config_path and not os.path.exists(self.config.config_path):
            raise DeploymentValidationError(f"Platform config not found: {self.config.config_path}")
        if not context.secrets:
            warnings.append("No secrets configured for target")
        return {"status": "passed", "secret_count": len(context.secrets)}

    def validate_compliance(self, context: ExecutionContext) -> Dict[str, Any]:
        frameworks = list(context.config_for(C.COMPLIANCE_CHECK).get("frameworks", ("sox", "hipaa", "pci")))
        return {"status": "passed", "frameworks": frameworks}

    # -------------------------
    # PREPARE
    # -------------------------

    def on_prepare(self, context: ExecutionContext) -> PhaseOutcome:
        resources: Dict[str, Any] = {}

        secrets = self.invoke_capability(context, C.SECRET_GENERATION, lambda: self.prepare_secrets(context))
        if secrets is not None:
            resources["secrets"] = secrets

        coordination = self.invoke_capability(
            context, C.SECRET_COORDINATION, lambda: self.coordinate_secrets(context)
        )
        if coordination is not None:
            resources["secret_coordination"] = coordination

        distribution = self.invoke_capability(
            context, C.SECRET_DISTRIBUTION, lambda: self.distribute_secrets(context)
        )
        if distribution is not None:
            resources["secret_distribution"] = distribution

        provisioning = self.invoke_capability(
            context, C.DATABASE_MANAGEMENT, lambda: self.manage_database(context)
        )
        if provisioning is not None:
            resources["database_management"] = provisioning

        database = self.invoke_capability(context, C.DB_MIGRATION, lambda: self.prepare_database(context))
        if database is not None:
            resources["database"] = database

        regions = self.invoke_capability(context, C.MULTI_REGION_DB, lambda: self.prepare_regions(context))
        if regions is not None:
            resources["regions"] = regions

        return PhaseOutcome.ok({"status": "prepared", "resources": resources})

    def prepare_secrets(self, context: ExecutionContext) -> Dict[str, Any]:
        # Key names only; values stay in the context
        return {"status": "prepared", "count": len(context.secrets), "keys": sorted(context.secrets)}

    def coordinate_secrets(self, context: ExecutionContext) -> Dict[str, Any]:
        shared = list(context.config_for(C.SECRET_COORDINATION).get("shared_keys", ()))
        missing = [k for k in shared if k not in context.secrets]
        if missing:
            raise DeploymentValidationError(f"Shared secrets missing: {', '.join(missing)}")
        return {"status": "coordinated", "shared_keys": shared}

    def distribute_secrets(self, context: ExecutionContext) -> Dict[str, Any]:
        keys = sorted(context.secrets)
        if not context.target.is_remote:
            return {"status": "skipped", "reason": "local target", "keys": keys}

        environment = self._environment(context)
        for key in keys:
            command = build_secret_put_command(key, environment, cli=self.config.platform_cli)
            self.run_backend(command, f"secret put {key}", input_text=context.secrets[key])

        return {"status": "distributed", "keys": keys}

    def manage_database(self, context: ExecutionContext) -> Dict[str, Any]:
        """Create the configured database on the platform if it does not exist yet."""
        database = self.config.database_name
        if not database:
            return {"status": "skipped", "reason": "no database configured"}
        if not context.target.is_remote:
            return {"status": "skipped", "reason": "local target"}

        environment = self._environment(context)
        info = build_database_info_command(database, environment, cli=self.config.platform_cli)
        found = self.backend.run_command(
            info.as_list(),
            is_remote=True,
            timeout_seconds=self.config.backend_timeout_seconds,
        )
        if found.ok:
            return {"status": "exists", "database": database}

        logger.info(f"[{context.target.label}] database {database} not found, creating it")
        self.run_backend(
            build_database_create_command(database, environment, cli=self.config.platform_cli),
            f"create {database}",
        )
        return {"status": "created", "database": database}

    def prepare_database(self, context: ExecutionContext) -> Dict[str, Any]:
        database = self.config.database_name
        if not database:
            return {"status": "skipped", "reason": "no database configured"}

        environment = self._environment(context)
        locality = locality_for(context.target.is_remote)
        backup_path = None

        if context.target.is_remote and (
            environment is Environment.PRODUCTION or context.has_capability(C.ROLLBACK_SNAPSHOT)
        ):
            backup_path = os.path.join(
                self.config.backup_dir, f"{database}-{context.execution_id}.sql"
            )
            self.run_backend(
                build_backup_command(database, environment, backup_path, cli=self.config.platform_cli),
                f"backup {database}",
            )

        command = build_migration_command(database, environment, locality, cli=self.config.platform_cli)
        self.run_backend(command, f"migrate {database}")

        if backup_path:
            self.register_command_compensation(
                "database",
                f"Restore {database} from {backup_path}",
                build_restore_command(database, environment, backup_path, cli=self.config.platform_cli),
                f"restore {database}",
            )

        return {
            "status": "migrated",
            "database": database,
            "locality": locality.value,
            "backup": backup_path,
        }

    def prepare_regions(self, context: ExecutionContext) -> Dict[str, Any]:
        regions = list(context.config_for(C.MULTI_REGION_DB).get("regions", ("primary",)))
        return {"status": "ready", "regions": regions}

    # -------------------------
    # DEPLOY
    # -------------------------

    def on_deploy(self, context: ExecutionContext) -> PhaseOutcome:
        mode = next((c for c in DEPLOYMENT_MODES if context.has_capability(c)), None)
        if mode is None:
            return PhaseOutcome.ok({"status": "skipped", "reason": "no deployment capability enabled"})

        if mode is C.PORTFOLIO_DEPLOY:
            operation = self.deploy_portfolio_member
        else:
            operation = self.deploy_service

        deployment = self.invoke_capability(context, mode, lambda: operation(context))
        deployment["mode"] = mode.value

        if context.has_capability(C.HIGH_AVAILABILITY):
            deployment["high_availability"] = thaw(context.config_for(C.HIGH_AVAILABILITY)) or {"replicas": 2}

        return PhaseOutcome.ok(deployment)

    def deploy_service(self, context: ExecutionContext) -> Dict[str, Any]:
        environment = self._environment(context)
        locality = locality_for(context.target.is_remote)
        command = build_deploy_command(
            environment,
            locality,
            cli=self.config.platform_cli,
            config_path=self.config.config_path,
        )

        result = self.run_backend(command, f"deploy {context.target.service_name}")
        url = extract_deployment_url(result.stdout) or context.target.address or None

        if command.is_remote:
            self.register_command_compensation(
                "deployment",
                f"Roll back {context.target.label} to previous version",
                build_rollback_command(environment, cli=self.config.platform_cli),
                f"rollback {context.target.service_name}",
            )

        return {
            "status": "deployed",
            "service": context.target.service_name,
            "url": url,
            "dry_run": not command.is_remote,
            "command": str(command),
            "duration_ms": result.duration_ms,
        }

    def deploy_portfolio_member(self, context: ExecutionContext) -> Dict[str, Any]:
        """Deploy, then gate on health right away so one bad member is undone inside deploy."""
        deployment = self.deploy_service(context)

        gate = self.check_service_health(context, base_url=deployment.get("url"))
        deployment["health_gate"] = gate
        if gate.get("ok") is False:
            raise FatalBackendError(f"Portfolio health gate failed at {gate['url']}: {gate.get('error')}")
        return deployment

    # -------------------------
    # VERIFY
    # -------------------------

    def on_verify(self, context: ExecutionContext) -> PhaseOutcome:
        verification: Dict[str, Any] = {}
        failures: List[str] = []

        health = self.invoke_capability(context, C.HEALTH_CHECK, lambda: self.check_service_health(context))
        if health is not None:
            verification["health"] = health
            if health.get("ok") is False:
                failures.append(f"health check failed: {health.get('error')}")

        for capability, key in (
            (C.ENDPOINT_TESTING, "endpoints"),
            (C.INTEGRATION_TESTING, "integration"),
            (C.PRODUCTION_TESTING, "production"),
        ):
            tests = self.invoke_capability(
                context, capability, lambda c=capability: self.run_endpoint_tests(context, c)
            )
            if tests is None:
                continue
            verification[key] = tests
            failures.extend(f"{key}: {path}" for path, ok in tests["results"].items() if not ok)

        if failures:
            return PhaseOutcome.failed("; ".join(failures), verification)
        return PhaseOutcome.ok({"status": "verified", **verification})

    def _base_url(self, context: ExecutionContext) -> Optional[str]:
        deployed = context.output_of(Phase.DEPLOY)
        return deployed.get("url") or context.target.address or None

    def check_service_health(self, context: ExecutionContext, base_url: Optional[str] = None) -> Dict[str, Any]:
        base_url = base_url or self._base_url(context)
        if not context.target.is_remote or not base_url:
            return {"status": "skipped", "reason": "no reachable deployment"}

        url = urljoin(base_url.rstrip("/") + "/", self.config.health_check_path.lstrip("/"))
        result = self.health_checker.check_health(url, self.config.health_check_timeout_ms)
        return {"url": url, **result.to_dict()}

    def run_endpoint_tests(self, context: ExecutionContext, capability) -> Dict[str, Any]:
        base_url = self._base_url(context)
        paths = list(context.config_for(capability).get("paths", ()))
        results: Dict[str, bool] = {}

        if context.target.is_remote and base_url:
            for path in paths:
                url = urljoin(base_url.rstrip("/") + "/", path.lstrip("/"))
                results[path] = self.health_checker.check_health(
                    url, self.config.health_check_timeout_ms
                ).ok

        return {"status": "passed" if all(results.values()) else "failed", "results": results}

    # -------------------------
    # MONITOR
    # -------------------------

    def on_monitor(self, context: ExecutionContext) -> PhaseOutcome:
        monitoring: Dict[str, Any] = {}

        audit = self.invoke_capability(context, C.AUDIT_LOGGING, lambda: {
            "status": "enabled",
            "level": context.config_for(C.AUDIT_LOGGING).get("level", "standard"),
        })
        if audit is not None:
            monitoring["audit"] = audit

        if context.has_capability(C.HIGH_AVAILABILITY) or context.has_capability(C.DISASTER_RECOVERY):
            features = [
                name for name, capability in (
                    ("ha", C.HIGH_AVAILABILITY),
                    ("dr", C.DISASTER_RECOVERY),
                    ("compliance", C.COMPLIANCE_CHECK),
                )
                if context.has_capability(capability)
            ]
            monitoring["enterprise"] = {"status": "enabled", "features": features}

        cleanup = self.invoke_capability(context, C.DEPLOYMENT_CLEANUP, lambda: {"status": "scheduled"})
        if cleanup is not None:
            monitoring["cleanup"] = cleanup

        return PhaseOutcome.ok({"status": "monitoring", **monitoring})


# ============================================
# Profiles
# ============================================

class SingleServiceOrchestrator(ServiceOrchestrator):
    """One service, lightweight checks."""

    profile_name = Profile.SINGLE.value

    def on_monitor(self, context: ExecutionContext) -> PhaseOutcome:
        outcome = super().on_monitor(context)
        outcome.output["alerts"] = ["error-rate", "latency"]
        return outcome


class PortfolioOrchestrator(ServiceOrchestrator):
    """A service that is one member of a coordinated portfolio."""

    profile_name = Profile.PORTFOLIO.value

    def on_initialize(self, context: ExecutionContext) -> PhaseOutcome:
        outcome = super().on_initialize(context)
        outcome.output["coordinated"] = context.has_capability(C.MULTI_DEPLOY)
        return outcome

    def on_monitor(self, context: ExecutionContext) -> PhaseOutcome:
        outcome = super().on_monitor(context)
        outcome.output["dashboards"] = ["portfolio-overview", context.target.service_name]
        return outcome


class EnterpriseOrchestrator(ServiceOrchestrator):
    """Portfolio behavior plus compliance gating for production."""

    profile_name = Profile.ENTERPRISE.value

    def on_validation(self, context: ExecutionContext) -> PhaseOutcome:
        environment = self._environment(context)
        if environment is Environment.PRODUCTION and not context.has_capability(C.COMPLIANCE_CHECK):
            raise DeploymentValidationError("Enterprise production deployments require compliance_check")
        return super().on_validation(context)

    def on_monitor(self, context: ExecutionContext) -> PhaseOutcome:
        outcome = super().on_monitor(context)
        outcome.output["dashboards"] = ["portfolio-overview", "compliance", context.target.service_name]
        outcome.output["alerts"] = ["error-rate", "latency", "availability"]
        return outcome
