# rollout_engine/capabilities/registry.py
"""Capability registry - selects which optional behaviors run inside each phase."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from rollout_engine.capabilities.definitions import (
    CAPABILITY_DEFINITIONS,
    RECOMMENDED_CAPABILITIES,
    CapabilityCategory,
    CapabilityName,
    Profile,
)
from rollout_engine.core.errors import (
    CapabilityLockedError,
    UnknownCapabilityError,
    UnknownProfileError,
)

logger = logging.getLogger(__name__)

CapabilityRef = Union[CapabilityName, str]
ProfileRef = Union[Profile, str]


@dataclass
class Capability:
    """A named optional behavior and its current selection state."""

    name: CapabilityName
    category: CapabilityCategory
    description: str
    prerequisites: Tuple[CapabilityName, ...] = ()
    enabled: bool = False
    config: Dict[str, Any] = field(default_factory=dict)


def resolve_capability(ref: CapabilityRef) -> CapabilityName:
    if isinstance(ref, CapabilityName):
        return ref
    try:
        return CapabilityName(ref)
    except ValueError:
        raise UnknownCapabilityError(f"Unknown capability: {ref}") from None


def resolve_profile(ref: ProfileRef) -> Profile:
    if isinstance(ref, Profile):
        return ref
    try:
        return Profile(str(ref).lower())
    except ValueError:
        raise UnknownProfileError(f"Unknown deployment profile: {ref}") from None


class CapabilityRegistry:
    """
    Catalog of capabilities with enable/disable semantics.

    Prerequisite policy: enabling a capability auto-enables its missing
    prerequisites first (depth-first, declared order). Disabling a capability
    also disables every enabled capability that depends on it, directly or
    transitively.

    The registry is read-only while any execution holds the execution lock.
    """

    def __init__(self):
        self._capabilities: Dict[CapabilityName, Capability] = {
            d.name: Capability(
                name=d.name,
                category=d.category,
                description=d.description,
                prerequisites=d.prerequisites,
            )
            for d in CAPABILITY_DEFINITIONS
        }
        self._mode: Optional[Profile] = None
        self._lock = RLock()
        self._active_executions = 0

    # -------------------------
    # EXECUTION LOCK
    # -------------------------

    def acquire_execution_lock(self) -> None:
        with self._lock:
            self._active_executions += 1

    def release_execution_lock(self) -> None:
        with self._lock:
            if self._active_executions > 0:
                self._active_executions -= 1

    @contextmanager
    def locked(self) -> Iterator["CapabilityRegistry"]:
        self.acquire_execution_lock()
        try:
            yield self
        finally:
            self.release_execution_lock()

    @property
    def is_locked(self) -> bool:
        return self._active_executions > 0

    def _assert_mutable(self, operation: str) -> None:
        if self._active_executions > 0:
            raise CapabilityLockedError(
                f"Cannot {operation} while {self._active_executions} execution(s) are running"
            )

    # -------------------------
    # ENABLE / DISABLE
    # -------------------------

    def enable_capability(
        self,
        name: CapabilityRef,
        config: Optional[Dict[str, Any]] = None,
    ) -> List[CapabilityName]:
        """
        Enable a capability and any missing prerequisites.

        Returns the capabilities this call switched on, in the order they
        were enabled (prerequisites first).
        """
        capability_name = resolve_capability(name)

        with self._lock:
            self._assert_mutable(f"enable {capability_name.value}")

            newly_enabled: List[CapabilityName] = []
            self._enable_with_prerequisites(capability_name, newly_enabled, set())

            if config:
                self._capabilities[capability_name].config = dict(config)

        if len(newly_enabled) > 1:
            logger.info(
                f"[capabilities] enabled {capability_name.value} with prerequisites: "
                f"{', '.join(n.value for n in newly_enabled[:-1])}"
            )
        return newly_enabled

    def _enable_with_prerequisites(
        self,
        name: CapabilityName,
        newly_enabled: List[CapabilityName],
        visiting: set,
    ) -> None:
        capability = self._capabilities[name]
        if capability.enabled or name in visiting:
            return

        visiting.add(name)
        for prereq in capability.prerequisites:
            self._enable_with_prerequisites(prereq, newly_enabled, visiting)

        capability.enabled = True
        newly_enabled.append(name)

    def disable_capability(self, name: CapabilityRef) -> List[CapabilityName]:
        """
        Disable a capability and every enabled capability depending on it.

        Returns the capabilities switched off, dependents first.
        """
        capability_name = resolve_capability(name)

        with self._lock:
            self._assert_mutable(f"disable {capability_name.value}")

            disabled: List[CapabilityName] = []
            self._disable_with_dependents(capability_name, disabled)

        return disabled

    def _disable_with_dependents(self, name: CapabilityName, disabled: List[CapabilityName]) -> None:
        capability = self._capabilities[name]
        if not capability.enabled:
            return

        # Switch off first so dependency cycles cannot recurse forever
        capability.enabled = False
        for dependent in self._dependents_of(name):
            self._disable_with_dependents(dependent, disabled)

        capability.config = {}
        disabled.append(name)

    def _dependents_of(self, name: CapabilityName) -> List[CapabilityName]:
        return [
            c.name for c in self._capabilities.values()
            if name in c.prerequisites and c.enabled
        ]

    def clear(self) -> None:
        with self._lock:
            self._assert_mutable("clear capabilities")
            for capability in self._capabilities.values():
                capability.enabled = False
                capability.config = {}

    # -------------------------
    # QUERIES
    # -------------------------

    def has_capability(self, name: CapabilityRef) -> bool:
        return self._capabilities[resolve_capability(name)].enabled

    def get_capability(self, name: CapabilityRef) -> Capability:
        return self._capabilities[resolve_capability(name)]

    def get_enabled_capabilities(self) -> List[CapabilityName]:
        """Enabled capabilities in catalog order."""
        return [c.name for c in self._capabilities.values() if c.enabled]

    def get_capability_configs(self) -> Dict[CapabilityName, Dict[str, Any]]:
        return {
            c.name: dict(c.config)
            for c in self._capabilities.values()
            if c.enabled and c.config
        }

    # -------------------------
    # PROFILES
    # -------------------------

    @property
    def deployment_mode(self) -> Optional[Profile]:
        return self._mode

    def get_recommended_capabilities(self, profile: ProfileRef) -> List[CapabilityName]:
        return list(RECOMMENDED_CAPABILITIES[resolve_profile(profile)])

    def set_deployment_mode(self, profile: ProfileRef, auto_configure: bool = True) -> None:
        """
        Select a deployment profile.

        With ``auto_configure`` the enabled set becomes exactly the profile's
        recommended capabilities; any previous selection is discarded.
        """
        resolved = resolve_profile(profile)

        with self._lock:
            self._assert_mutable(f"switch deployment mode to {resolved.value}")
            self._mode = resolved

            if auto_configure:
                self.clear()
                for name in RECOMMENDED_CAPABILITIES[resolved]:
                    self.enable_capability(name)

        logger.info(
            f"[capabilities] deployment mode {resolved.value} "
            f"({len(self.get_enabled_capabilities())} capabilities enabled)"
        )

    # -------------------------
    # REPORT
    # -------------------------

    def get_capability_report(self) -> Dict[str, Any]:
        """Every registered capability with its state, for audit."""
        capabilities = {}
        for capability in self._capabilities.values():
            capabilities[capability.name.value] = {
                "category": capability.category.value,
                "description": capability.description,
                "enabled": capability.enabled,
                "config": dict(capability.config) or None,
                "prerequisites": [p.value for p in capability.prerequisites],
            }

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "deployment_mode": self._mode.value if self._mode else None,
            "total_available": len(self._capabilities),
            "total_enabled": len(self.get_enabled_capabilities()),
            "capabilities": capabilities,
        }


def registry_for_profile(profile: ProfileRef) -> CapabilityRegistry:
    registry = CapabilityRegistry()
    registry.set_deployment_mode(profile, auto_configure=True)
    return registry
