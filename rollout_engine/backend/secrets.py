# rollout_engine/backend/secrets.py
"""Secret providers. Values are handed to hooks, never logged or checkpointed."""

import os
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from rollout_engine.core.models import TargetIdentity


class SecretProvider(ABC):
    @abstractmethod
    def get_secrets(self, target: TargetIdentity) -> Mapping[str, str]:
        raise NotImplementedError


class StaticSecretProvider(SecretProvider):
    """Fixed secrets, optionally per service name."""

    def __init__(
        self,
        secrets: Optional[Mapping[str, str]] = None,
        per_service: Optional[Mapping[str, Mapping[str, str]]] = None,
    ):
        self._secrets = dict(secrets or {})
        self._per_service = {k: dict(v) for k, v in (per_service or {}).items()}

    def get_secrets(self, target: TargetIdentity) -> Mapping[str, str]:
        merged: Dict[str, str] = dict(self._secrets)
        merged.update(self._per_service.get(target.service_name, {}))
        return merged


class EnvironmentSecretProvider(SecretProvider):
    """
    Reads ``<PREFIX><SERVICE>_<KEY>`` variables, e.g.
    ``ROLLOUT_SECRET_API_GATEWAY_AUTH_TOKEN`` for service ``api-gateway``.
    """

    def __init__(self, prefix: str = "ROLLOUT_SECRET_", environ: Optional[Mapping[str, str]] = None):
        self.prefix = prefix
        self._environ = environ if environ is not None else os.environ

    def get_secrets(self, target: TargetIdentity) -> Mapping[str, str]:
        service_key = target.service_name.upper().replace("-", "_")
        scoped_prefix = f"{self.prefix}{service_key}_"
        return {
            name[len(scoped_prefix):]: value
            for name, value in self._environ.items()
            if name.startswith(scoped_prefix)
        }
