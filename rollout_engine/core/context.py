# rollout_engine/core/context.py
"""Execution context threaded through phase hooks."""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, FrozenSet, Mapping, Optional

from rollout_engine.capabilities.definitions import CapabilityName
from rollout_engine.core.models import Phase, TargetIdentity


def _freeze(value: Any) -> Any:
    """Recursively wrap dicts so hooks cannot mutate earlier outputs."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of the freezing above, for serialization."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class ExecutionContext:
    """
    Read-only view handed to each phase hook.

    A new instance is produced after every phase via ``with_phase_output``;
    instances are never mutated in place.
    """

    execution_id: str
    target: TargetIdentity
    enabled_capabilities: FrozenSet[CapabilityName] = frozenset()
    outputs: Mapping[Phase, Mapping[str, Any]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    capability_config: Mapping[CapabilityName, Mapping[str, Any]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    settings: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    secrets: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    current_phase: Optional[Phase] = None

    @classmethod
    def create(
        cls,
        *,
        execution_id: str,
        target: TargetIdentity,
        enabled_capabilities=(),
        capability_config: Optional[Mapping[CapabilityName, Mapping[str, Any]]] = None,
        settings: Optional[Mapping[str, Any]] = None,
        secrets: Optional[Mapping[str, str]] = None,
    ) -> "ExecutionContext":
        return cls(
            execution_id=execution_id,
            target=target,
            enabled_capabilities=frozenset(enabled_capabilities),
            capability_config=_freeze(capability_config or {}),
            settings=_freeze(settings or {}),
            secrets=MappingProxyType(dict(secrets or {})),
        )

    def has_capability(self, name: CapabilityName) -> bool:
        return name in self.enabled_capabilities

    def config_for(self, name: CapabilityName) -> Mapping[str, Any]:
        return self.capability_config.get(name, MappingProxyType({}))

    def output_of(self, phase: Phase) -> Mapping[str, Any]:
        return self.outputs.get(phase, MappingProxyType({}))

    def entering(self, phase: Phase) -> "ExecutionContext":
        return replace(self, current_phase=phase)

    def with_phase_output(self, phase: Phase, output: Mapping[str, Any]) -> "ExecutionContext":
        outputs = dict(self.outputs)
        outputs[phase] = _freeze(dict(output))
        return replace(self, outputs=MappingProxyType(outputs))

    def to_dict(self) -> dict:
        """Serializable snapshot; secret values are reduced to key names."""
        return {
            "execution_id": self.execution_id,
            "target": self.target.to_dict(),
            "current_phase": self.current_phase.value if self.current_phase else None,
            "enabled_capabilities": sorted(c.value for c in self.enabled_capabilities),
            "outputs": {p.value: thaw(o) for p, o in self.outputs.items()},
            "secret_keys": sorted(self.secrets.keys()),
        }
