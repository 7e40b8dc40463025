# rollout_engine/infrastructure/memory/checkpoint_repository.py

import copy
from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple

from rollout_engine.core.checkpoint import Checkpoint
from rollout_engine.core.errors import CheckpointConflictError
from rollout_engine.core.models import PHASE_SEQUENCE, Phase
from rollout_engine.core.repository import CheckpointRepository


class InMemoryCheckpointRepository(CheckpointRepository):
    def __init__(self):
        # (execution_id, phase) -> versions in ascending order
        self._store: Dict[Tuple[str, Phase], List[Checkpoint]] = {}
        self._lock = Lock()

    def append(self, checkpoint: Checkpoint) -> None:
        key = (checkpoint.execution_id, checkpoint.phase)
        with self._lock:
            versions = self._store.setdefault(key, [])
            if any(c.version == checkpoint.version for c in versions):
                raise CheckpointConflictError(
                    f"Checkpoint {checkpoint.execution_id}/{checkpoint.phase.value} "
                    f"v{checkpoint.version} already exists"
                )
            versions.append(copy.deepcopy(checkpoint))
            versions.sort(key=lambda c: c.version)

    def get_latest(self, execution_id: str, phase: Phase) -> Optional[Checkpoint]:
        with self._lock:
            versions = self._store.get((execution_id, phase))
            if not versions:
                return None
            return copy.deepcopy(versions[-1])

    def list_for_execution(self, execution_id: str) -> Iterable[Checkpoint]:
        results = []
        with self._lock:
            for phase in PHASE_SEQUENCE:
                for checkpoint in self._store.get((execution_id, phase), []):
                    results.append(copy.deepcopy(checkpoint))
        return results
