# rollout_engine/orchestrator/base.py
"""
Phase pipeline.

Drives one execution through initialize -> validate -> prepare -> deploy ->
verify -> monitor, checkpointing every phase and running compensations when
a phase fails fatally.

Subclasses supply the six hooks. Each hook receives an ExecutionContext and
returns a PhaseOutcome (a plain dict or None counts as success). A hook that
raises is recorded exactly like one that returned a failure.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar

from rollout_engine.backend.classification import categorize_error, get_recovery_suggestions
from rollout_engine.backend.retry import run_with_retry
from rollout_engine.backend.secrets import SecretProvider
from rollout_engine.capabilities.definitions import CapabilityName
from rollout_engine.capabilities.registry import CapabilityRegistry
from rollout_engine.core.checkpoint_store import CheckpointStore
from rollout_engine.core.context import ExecutionContext
from rollout_engine.core.errors import CheckpointError, ExecutionCancelled
from rollout_engine.core.events import EventEmitter, NullEventEmitter
from rollout_engine.core.events_model import AuditEvent
from rollout_engine.core.models import (
    PHASE_SEQUENCE,
    DeploymentExecution,
    ExecutionStatus,
    Phase,
    PhaseOutcome,
    PhaseResult,
    PhaseStatus,
    TargetIdentity,
    utcnow,
)
from rollout_engine.core.state_machine import ExecutionStateMachine
from rollout_engine.infrastructure.memory.checkpoint_repository import InMemoryCheckpointRepository
from rollout_engine.orchestrator.config import OrchestratorConfig
from rollout_engine.rollback.manager import RollbackManager, RollbackSummary

logger = logging.getLogger(__name__)

T = TypeVar("T")

PHASE_HOOKS = {
    Phase.INITIALIZE: "on_initialize",
    Phase.VALIDATE: "on_validation",
    Phase.PREPARE: "on_prepare",
    Phase.DEPLOY: "on_deploy",
    Phase.VERIFY: "on_verify",
    Phase.MONITOR: "on_monitor",
}

CRITICAL_PHASES = frozenset({Phase.INITIALIZE, Phase.DEPLOY})

REDACTED = "***"


def redact(value: Any, secret_values: frozenset) -> Any:
    """Replace any secret value appearing in a phase output."""
    if not secret_values:
        return value
    if isinstance(value, dict):
        return {k: redact(v, secret_values) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(v, secret_values) for v in value]
    if isinstance(value, str) and value in secret_values:
        return REDACTED
    return value


class BaseOrchestrator:
    """Template for a six-phase deployment execution."""

    profile_name = "custom"

    def __init__(
        self,
        target: TargetIdentity,
        *,
        registry: Optional[CapabilityRegistry] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
        rollback_manager: Optional[RollbackManager] = None,
        event_emitter: Optional[EventEmitter] = None,
        secret_provider: Optional[SecretProvider] = None,
        config: Optional[OrchestratorConfig] = None,
        execution_id: Optional[str] = None,
    ):
        self.registry = registry or CapabilityRegistry()
        self.checkpoint_store = checkpoint_store or CheckpointStore(InMemoryCheckpointRepository())
        self.rollback_manager = rollback_manager or RollbackManager()
        self.event_emitter = event_emitter or NullEventEmitter()
        self.secret_provider = secret_provider
        self.config = config or OrchestratorConfig()

        execution = DeploymentExecution(target=target, profile=self.profile_name)
        if execution_id:
            execution.execution_id = execution_id
        self._execution = execution

        self._context: Optional[ExecutionContext] = None
        self._cancel_event = threading.Event()
        self._cancel_reason: Optional[str] = None
        self._phase_retries = 0

    # -------------------------
    # ACCESSORS
    # -------------------------

    @property
    def execution_id(self) -> str:
        return self._execution.execution_id

    @property
    def target(self) -> TargetIdentity:
        return self._execution.target

    def get_execution(self) -> DeploymentExecution:
        return self._execution

    def get_execution_context(self) -> Optional[ExecutionContext]:
        return self._context

    def get_phase_result(self, phase: Phase) -> Optional[PhaseResult]:
        return self._execution.result_for(phase)

    # -------------------------
    # HOOKS
    # -------------------------

    def on_initialize(self, context: ExecutionContext) -> PhaseOutcome:
        raise NotImplementedError(f"{type(self).__name__} must implement on_initialize")

    def on_validation(self, context: ExecutionContext) -> PhaseOutcome:
        raise NotImplementedError(f"{type(self).__name__} must implement on_validation")

    def on_prepare(self, context: ExecutionContext) -> PhaseOutcome:
        raise NotImplementedError(f"{type(self).__name__} must implement on_prepare")

    def on_deploy(self, context: ExecutionContext) -> PhaseOutcome:
        raise NotImplementedError(f"{type(self).__name__} must implement on_deploy")

    def on_verify(self, context: ExecutionContext) -> PhaseOutcome:
        raise NotImplementedError(f"{type(self).__name__} must implement on_verify")

    def on_monitor(self, context: ExecutionContext) -> PhaseOutcome:
        raise NotImplementedError(f"{type(self).__name__} must implement on_monitor")

    # -------------------------
    # HOOK HELPERS
    # -------------------------

    def retry(self, operation: Callable[[], T], description: str) -> T:
        """Run a backend operation with transient retries; retries count toward the phase."""
        attempts = 0

        def counted() -> T:
            nonlocal attempts
            attempts += 1
            return operation()

        try:
            result = run_with_retry(
                counted,
                max_retries=self.config.transient_retry_limit,
                backoff_seconds=self.config.retry_backoff_seconds,
                description=description,
                sleep=self._sleep,
            )
        finally:
            self._phase_retries += max(attempts - 1, 0)
        return result.value

    def _sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def rebuild_compensation(self, action_type: str, plan: Dict[str, Any]) -> Callable[[], Any]:
        """
        Turn a checkpointed rollback plan back into a callable.

        Called when a resumed execution restores a phase that had registered
        compensations. Orchestrators that register actions with a ``plan``
        must override this.
        """
        raise CheckpointError(
            f"{type(self).__name__} cannot rebuild '{action_type}' compensations"
        )

    def invoke_capability(
        self,
        context: ExecutionContext,
        capability: CapabilityName,
        operation: Callable[[], T],
    ) -> Optional[T]:
        """
        Run ``operation`` if ``capability`` is enabled, emitting an audit event.

        Returns None without calling ``operation`` when the capability is off.
        """
        if not context.has_capability(capability):
            return None

        started = time.monotonic()
        try:
            value = operation()
        except Exception as e:
            self._emit(AuditEvent.capability_event(
                self.execution_id, context.current_phase, capability, "failed",
                duration_ms=int((time.monotonic() - started) * 1000),
                error=str(e),
            ))
            raise

        self._emit(AuditEvent.capability_event(
            self.execution_id, context.current_phase, capability, "succeeded",
            duration_ms=int((time.monotonic() - started) * 1000),
        ))
        return value

    # -------------------------
    # CANCEL
    # -------------------------

    def cancel(self, reason: str = "cancelled by request") -> None:
        """Request cancellation; honored before the next phase starts."""
        self._cancel_reason = reason
        self._cancel_event.set()
        logger.info(f"[pipeline] {self.execution_id} cancellation requested: {reason}")

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def raise_if_cancelled(self) -> None:
        """For long-running hooks: abandon the current phase once cancellation is requested."""
        if self.cancel_requested:
            raise ExecutionCancelled(self._cancel_reason or "cancelled")

    # -------------------------
    # EXECUTE
    # -------------------------

    def execute(self, continue_on_error: bool = False) -> DeploymentExecution:
        execution = self._execution
        execution.continue_on_error = continue_on_error

        with self.registry.locked():
            ExecutionStateMachine.transition(execution, ExecutionStatus.RUNNING)
            self._emit(AuditEvent.execution_event(
                self.execution_id, ExecutionStatus.RUNNING.value,
                target=execution.target.label,
                profile=execution.profile,
            ))
            logger.info(
                f"[pipeline] {self.execution_id} started for {execution.target.label} "
                f"({execution.profile})"
            )

            self._context = self._build_context()
            recovery = self.checkpoint_store.compute_recovery_state(self.execution_id)

            fatal_error: Optional[str] = None
            cancelled = False

            for phase in PHASE_SEQUENCE:
                if self.cancel_requested:
                    cancelled = True
                    break

                if recovery.is_completed(phase):
                    try:
                        self._restore_phase(phase, recovery.checkpoints[phase].payload)
                    except CheckpointError as e:
                        fatal_error = f"Restore of {phase.value} failed: {e}"
                        logger.error(f"[pipeline] ❌ {fatal_error}")
                        break
                    continue

                result = self._run_phase(phase)
                execution.record(result)

                try:
                    self.checkpoint_store.save_checkpoint(self.execution_id, phase, result.to_dict())
                except CheckpointError as e:
                    fatal_error = f"Checkpoint write failed after {phase.value}: {e}"
                    logger.error(f"[pipeline] ❌ {fatal_error}")
                    break

                if result.status == PhaseStatus.SUCCEEDED:
                    self._context = self._context.with_phase_output(phase, result.output)
                    continue

                if self.cancel_requested:
                    cancelled = True
                    break

                if not continue_on_error:
                    fatal_error = f"Phase {phase.value} failed: {result.error}"
                    break

                logger.warning(
                    f"[pipeline] continuing after {phase.value} failure: {result.error}"
                )

            self._finalize(fatal_error=fatal_error, cancelled=cancelled)

        return execution

    def _build_context(self) -> ExecutionContext:
        secrets = {}
        if self.secret_provider is not None:
            secrets = dict(self.secret_provider.get_secrets(self.target))
            logger.info(f"[pipeline] loaded {len(secrets)} secret(s) for {self.target.label}")

        return ExecutionContext.create(
            execution_id=self.execution_id,
            target=self.target,
            enabled_capabilities=self.registry.get_enabled_capabilities(),
            capability_config=self.registry.get_capability_configs(),
            settings=self.config.as_settings(),
            secrets=secrets,
        )

    def _restore_phase(self, phase: Phase, payload: Dict[str, Any]) -> None:
        stored = PhaseResult.from_dict(payload)

        # Re-arm the compensations the phase registered on its original run
        for record in stored.compensations:
            action_type = record["action_type"]
            plan = record["plan"]
            self.rollback_manager.register(
                action_type,
                record["description"],
                self.rebuild_compensation(action_type, plan),
                plan=plan,
            )

        result = PhaseResult(
            phase=phase,
            status=PhaseStatus.SKIPPED,
            started_at=stored.started_at,
            finished_at=stored.finished_at,
            output=stored.output,
            retries=stored.retries,
            restored_from_checkpoint=True,
            compensations=stored.compensations,
        )
        self._execution.record(result)
        self._context = self._context.with_phase_output(phase, result.output)

        self._emit(AuditEvent.phase_event(
            self.execution_id, phase, PhaseStatus.SKIPPED.value, restored_from_checkpoint=True,
        ))
        logger.info(
            f"[pipeline] ↩ {phase.value} restored from checkpoint "
            f"({len(stored.compensations)} compensation(s) re-armed)"
        )

    def _run_phase(self, phase: Phase) -> PhaseResult:
        hook = getattr(self, PHASE_HOOKS[phase])
        context = self._context.entering(phase)
        self._phase_retries = 0
        registered_before = len(self.rollback_manager.pending_actions())

        result = PhaseResult(phase=phase, status=PhaseStatus.RUNNING, started_at=utcnow())
        self._emit(AuditEvent.phase_event(self.execution_id, phase, PhaseStatus.RUNNING.value))
        logger.info(f"[pipeline] ▶ {phase.value}")

        try:
            outcome = self._coerce_outcome(hook(context))
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"[pipeline] ❌ {phase.value} raised {type(e).__name__}: {message}")
            outcome = PhaseOutcome.failed(message)

        secret_values = frozenset(v for v in context.secrets.values() if v)
        result.output = redact(dict(outcome.output), secret_values)
        result.error = outcome.error
        result.retries = outcome.retries + self._phase_retries
        result.finished_at = utcnow()
        result.status = PhaseStatus.SUCCEEDED if outcome.success else PhaseStatus.FAILED
        result.compensations = self._replayable_compensations(phase, registered_before)

        self._emit(AuditEvent.phase_event(
            self.execution_id, phase, result.status.value,
            duration_ms=result.duration_ms,
            retries=result.retries,
            error=result.error,
        ))

        if result.status == PhaseStatus.SUCCEEDED:
            logger.info(f"[pipeline] ✅ {phase.value} ({result.duration_ms}ms, {result.retries} retries)")
        else:
            logger.warning(f"[pipeline] ❌ {phase.value} failed: {result.error}")
        return result

    def _replayable_compensations(self, phase: Phase, registered_before: int) -> List[Dict[str, Any]]:
        records = []
        for action in self.rollback_manager.pending_actions()[registered_before:]:
            if action.is_replayable:
                records.append(action.to_record())
            else:
                logger.warning(
                    f"[pipeline] {phase.value} compensation '{action.description}' has no plan; "
                    f"it will not survive a restart"
                )
        return records

    @staticmethod
    def _coerce_outcome(value: Any) -> PhaseOutcome:
        if isinstance(value, PhaseOutcome):
            return value
        if value is None:
            return PhaseOutcome.ok()
        if isinstance(value, dict):
            return PhaseOutcome.ok(value)
        raise TypeError(f"Phase hook returned unsupported type {type(value).__name__}")

    # -------------------------
    # FINALIZE / ROLLBACK
    # -------------------------

    def _finalize(self, *, fatal_error: Optional[str], cancelled: bool) -> None:
        """
        Settle the terminal status.

        A fatal failure first becomes failed; when every compensation then
        succeeds it moves on to rolled_back (failed -> rolled_back is the only
        edge out of failed), so a fully undone run never reports plain failed.
        """
        execution = self._execution

        if cancelled:
            execution.error_message = self._cancel_reason or "cancelled"
            ExecutionStateMachine.transition(execution, ExecutionStatus.CANCELLED)
            summary = self._run_rollback()
            logger.info(f"[pipeline] {self.execution_id} cancelled: {execution.error_message}")

        elif fatal_error:
            execution.error_message = fatal_error
            ExecutionStateMachine.transition(execution, ExecutionStatus.FAILED)
            summary = self._run_rollback()
            if summary.fully_compensated:
                ExecutionStateMachine.transition(execution, ExecutionStatus.ROLLED_BACK)

        elif execution.has_failures():
            failed = ", ".join(p.value for p in execution.failed_phases())
            execution.error_message = f"Phases failed: {failed}"
            ExecutionStateMachine.transition(execution, ExecutionStatus.FAILED)

        else:
            ExecutionStateMachine.transition(execution, ExecutionStatus.SUCCEEDED)

        self._emit(AuditEvent.execution_event(
            self.execution_id, execution.status.value, error=execution.error_message,
        ))
        logger.info(f"[pipeline] {self.execution_id} finished: {execution.status.value}")

    def _run_rollback(self) -> RollbackSummary:
        summary = self.rollback_manager.execute_rollback()
        if summary.attempted:
            self._execution.rollback_summary = summary.to_dict()
            self._emit(AuditEvent.execution_event(
                self.execution_id, "rollback",
                attempted=len(summary.attempted),
                failed=len(summary.failed),
            ))
        return summary

    def rollback(self) -> RollbackSummary:
        """
        Run registered compensations on demand (after a continue-on-error run).

        A failed execution whose compensations all succeed becomes rolled_back.
        """
        summary = self._run_rollback()
        if self._execution.status == ExecutionStatus.FAILED and summary.fully_compensated:
            ExecutionStateMachine.transition(self._execution, ExecutionStatus.ROLLED_BACK)
        return summary

    def _emit(self, event: AuditEvent) -> None:
        self.event_emitter.emit([event])

    # -------------------------
    # SUMMARY
    # -------------------------

    def generate_execution_summary(self) -> Dict[str, Any]:
        execution = self._execution
        phases: Dict[str, Any] = {}
        errors: List[Dict[str, Any]] = []
        stats = {"total": len(PHASE_SEQUENCE), "completed": 0, "failed": 0, "skipped": 0, "restored": 0}

        for phase in PHASE_SEQUENCE:
            result = execution.result_for(phase)
            if result is None:
                phases[phase.value] = {"status": PhaseStatus.PENDING.value}
                stats["skipped"] += 1
                continue

            phases[phase.value] = {
                "status": result.status.value,
                "duration_ms": result.duration_ms,
                "retries": result.retries,
                "restored_from_checkpoint": result.restored_from_checkpoint,
                "output": result.output,
                "error": result.error,
            }

            if result.status == PhaseStatus.SUCCEEDED or result.restored_from_checkpoint:
                stats["completed"] += 1
            if result.restored_from_checkpoint:
                stats["restored"] += 1
            if result.status == PhaseStatus.FAILED:
                stats["failed"] += 1
                category = categorize_error(result.error or "")
                errors.append({
                    "phase": phase.value,
                    "message": result.error,
                    "severity": "critical" if phase in CRITICAL_PHASES else "warning",
                    "category": category.value,
                    "suggestions": get_recovery_suggestions(category),
                })

        stats["success_rate"] = round(stats["completed"] / stats["total"] * 100)

        duration_ms = 0
        if execution.started_at:
            end = execution.finished_at or utcnow()
            duration_ms = int((end - execution.started_at).total_seconds() * 1000)

        return {
            "execution_id": execution.execution_id,
            "orchestrator": type(self).__name__,
            "profile": execution.profile,
            "target": execution.target.to_dict(),
            "status": execution.status.value,
            "error_message": execution.error_message,
            "total_duration_ms": duration_ms,
            "capabilities": [c.value for c in self.registry.get_enabled_capabilities()],
            "phases": phases,
            "stats": stats,
            "errors": errors,
            "rollback": execution.rollback_summary,
        }
