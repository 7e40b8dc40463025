# rollout_engine/coordinator/coordinator.py
"""Portfolio coordinator - one pipeline per target, bounded concurrency."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional

from rollout_engine.coordinator.slots import SlotManager
from rollout_engine.core.models import DeploymentExecution, ExecutionStatus, TargetIdentity
from rollout_engine.orchestrator.base import BaseOrchestrator

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[TargetIdentity], BaseOrchestrator]


@dataclass
class TargetOutcome:
    target: TargetIdentity
    execution: DeploymentExecution
    summary: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def status(self) -> ExecutionStatus:
        return self.execution.status


@dataclass
class PortfolioResult:
    outcomes: List[TargetOutcome] = field(default_factory=list)
    max_concurrency: int = 0
    peak_concurrency: int = 0

    def _count(self, status: ExecutionStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def succeeded(self) -> int:
        return self._count(ExecutionStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(ExecutionStatus.FAILED)

    @property
    def rolled_back(self) -> int:
        return self._count(ExecutionStatus.ROLLED_BACK)

    @property
    def cancelled(self) -> int:
        return self._count(ExecutionStatus.CANCELLED)

    @property
    def all_succeeded(self) -> bool:
        return bool(self.outcomes) and self.succeeded == len(self.outcomes)

    def outcome_for(self, service_name: str) -> Optional[TargetOutcome]:
        for outcome in self.outcomes:
            if outcome.target.service_name == service_name:
                return outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        total = len(self.outcomes)
        return {
            "total": total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "rolled_back": self.rolled_back,
            "cancelled": self.cancelled,
            "success_rate": round(self.succeeded / total * 100) if total else 0,
            "max_concurrency": self.max_concurrency,
            "peak_concurrency": self.peak_concurrency,
            "targets": [
                {
                    "target": o.target.label,
                    "execution_id": o.execution.execution_id,
                    "status": o.status.value,
                    "error": o.error or o.execution.error_message,
                }
                for o in self.outcomes
            ],
        }


class PortfolioCoordinator:
    """
    Runs one pipeline per target in parallel.

    At most ``max_concurrency`` pipelines are running at any moment. A
    failing target never stops its siblings.
    """

    def __init__(self, orchestrator_factory: OrchestratorFactory, max_concurrency: int = 3):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self._factory = orchestrator_factory
        self.max_concurrency = max_concurrency
        self._orchestrators: List[BaseOrchestrator] = []
        self._lock = Lock()

    def run(self, targets: Iterable[TargetIdentity], continue_on_error: bool = False) -> PortfolioResult:
        targets = list(targets)
        slots = SlotManager(self.max_concurrency)

        orchestrators = [self._factory(target) for target in targets]
        with self._lock:
            self._orchestrators = list(orchestrators)

        logger.info(
            f"[coordinator] deploying {len(targets)} target(s), "
            f"max {self.max_concurrency} concurrent"
        )

        with ThreadPoolExecutor(max_workers=self.max_concurrency) as pool:
            futures = [
                pool.submit(self._run_one, orchestrator, slots, continue_on_error)
                for orchestrator in orchestrators
            ]
            outcomes = [f.result() for f in futures]

        result = PortfolioResult(
            outcomes=outcomes,
            max_concurrency=self.max_concurrency,
            peak_concurrency=slots.peak,
        )
        logger.info(
            f"[coordinator] done: {result.succeeded} succeeded, {result.failed} failed, "
            f"{result.rolled_back} rolled back, {result.cancelled} cancelled "
            f"(peak {result.peak_concurrency})"
        )
        return result

    def _run_one(
        self,
        orchestrator: BaseOrchestrator,
        slots: SlotManager,
        continue_on_error: bool,
    ) -> TargetOutcome:
        slot = slots.acquire(orchestrator.execution_id)
        error = None
        try:
            orchestrator.execute(continue_on_error=continue_on_error)
        except Exception as e:
            # Infrastructure errors outside the phase hooks
            error = f"{type(e).__name__}: {e}"
            logger.exception(f"[coordinator] {orchestrator.target.label} aborted")
        finally:
            slots.release(slot)

        return TargetOutcome(
            target=orchestrator.target,
            execution=orchestrator.get_execution(),
            summary=orchestrator.generate_execution_summary(),
            error=error,
        )

    def cancel_all(self, reason: str = "portfolio cancelled") -> int:
        """Cancel every pipeline that has not finished. Returns how many were signalled."""
        with self._lock:
            pending = [o for o in self._orchestrators if not o.get_execution().is_terminal]

        for orchestrator in pending:
            orchestrator.cancel(reason)
        return len(pending)
