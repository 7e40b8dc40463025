# rollout_engine/rollback/manager.py
"""Rollback manager - compensating actions executed in reverse order."""

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple

from rollout_engine.core.models import utcnow

logger = logging.getLogger(__name__)


@dataclass
class RollbackAction:
    """One compensating operation, registered by a phase that changed something."""

    action_type: str
    description: str
    operation: Callable[[], Any]
    index: int = -1
    metadata: Dict[str, Any] = field(default_factory=dict)

    # JSON description the operation can be rebuilt from after a restart
    plan: Optional[Dict[str, Any]] = None

    @property
    def is_replayable(self) -> bool:
        return self.plan is not None

    def to_record(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type,
            "description": self.description,
            "plan": self.plan,
        }


@dataclass
class RollbackOutcome:
    action_type: str
    description: str
    index: int
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type,
            "description": self.description,
            "index": self.index,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class RollbackSummary:
    attempted: List[RollbackOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[RollbackOutcome]:
        return [o for o in self.attempted if o.success]

    @property
    def failed(self) -> List[RollbackOutcome]:
        return [o for o in self.attempted if not o.success]

    @property
    def fully_compensated(self) -> bool:
        """At least one action ran and none failed."""
        return bool(self.attempted) and not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": len(self.attempted),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "actions": [o.to_dict() for o in self.attempted],
            "completed_at": utcnow().isoformat(),
        }


class RollbackManager:
    """
    Ordered stack of compensating actions.

    ``execute_rollback`` runs them newest first, collects per-action failures
    instead of raising, and drains the stack so a second call does nothing.
    """

    def __init__(self):
        self._actions: List[RollbackAction] = []
        self._next_index = 0
        self._lock = Lock()

    def register_action(self, action: RollbackAction) -> RollbackAction:
        with self._lock:
            action.index = self._next_index
            self._next_index += 1
            self._actions.append(action)

        logger.debug(f"[rollback] registered #{action.index} {action.action_type}: {action.description}")
        return action

    def register(
        self,
        action_type: str,
        description: str,
        operation: Callable[[], Any],
        plan: Optional[Dict[str, Any]] = None,
        **metadata,
    ) -> RollbackAction:
        return self.register_action(RollbackAction(
            action_type=action_type,
            description=description,
            operation=operation,
            metadata=metadata,
            plan=plan,
        ))

    def pending_actions(self) -> Tuple[RollbackAction, ...]:
        with self._lock:
            return tuple(self._actions)

    def execute_rollback(self) -> RollbackSummary:
        with self._lock:
            actions = list(reversed(self._actions))
            self._actions.clear()

        summary = RollbackSummary()
        if not actions:
            return summary

        logger.info(f"[rollback] executing {len(actions)} action(s)")

        for action in actions:
            try:
                action.operation()
            except Exception as e:
                logger.error(f"[rollback] ❌ #{action.index} {action.description}: {e}")
                summary.attempted.append(RollbackOutcome(
                    action_type=action.action_type,
                    description=action.description,
                    index=action.index,
                    success=False,
                    error=str(e),
                ))
                continue

            logger.info(f"[rollback] ✅ #{action.index} {action.description}")
            summary.attempted.append(RollbackOutcome(
                action_type=action.action_type,
                description=action.description,
                index=action.index,
                success=True,
            ))

        return summary
