# rollout_engine/core/repository.py

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from rollout_engine.core.checkpoint import Checkpoint
from rollout_engine.core.models import Phase


class CheckpointRepository(ABC):
    """
    Persistence contract for checkpoints.
    """

    @abstractmethod
    def append(self, checkpoint: Checkpoint) -> None:
        """
        Persist a new checkpoint version.
        Must fail with CheckpointConflictError if (execution_id, phase, version)
        already exists. Never overwrites.
        """
        raise NotImplementedError

    @abstractmethod
    def get_latest(self, execution_id: str, phase: Phase) -> Optional[Checkpoint]:
        """
        Fetch the highest-version checkpoint for the key.
        Returns None if not found. Does not validate checksums.
        """
        raise NotImplementedError

    @abstractmethod
    def list_for_execution(self, execution_id: str) -> Iterable[Checkpoint]:
        """
        All stored versions for an execution, ordered by phase sequence
        then version.
        """
        raise NotImplementedError
