# rollout_engine/core/checkpoint_store.py
"""Checkpoint store - versioned, checksummed phase snapshots and recovery."""

import logging
from typing import Any, Dict, List, Optional

from rollout_engine.core.checkpoint import Checkpoint, RecoveryState
from rollout_engine.core.errors import CheckpointConflictError, CheckpointCorruptionError
from rollout_engine.core.models import PHASE_SEQUENCE, Phase, PhaseStatus
from rollout_engine.core.repository import CheckpointRepository

logger = logging.getLogger(__name__)


class CheckpointStore:
    """Append-only checkpoint persistence on top of a repository."""

    def __init__(self, repository: CheckpointRepository, max_conflict_retries: int = 3):
        self._repo = repository
        self._max_conflict_retries = max_conflict_retries

    # -------------------------
    # SAVE
    # -------------------------

    def save_checkpoint(
        self,
        execution_id: str,
        phase: Phase,
        payload: Dict[str, Any],
    ) -> Checkpoint:
        """
        Persist a new version for (execution_id, phase).

        The version is allocated as latest + 1. If another writer wins the
        same version the allocation is retried, up to ``max_conflict_retries``.
        """
        attempt = 0
        while True:
            latest = self._repo.get_latest(execution_id, phase)
            version = latest.version + 1 if latest else 1

            checkpoint = Checkpoint.build(
                execution_id=execution_id,
                phase=phase,
                payload=payload,
                version=version,
            )

            try:
                self._repo.append(checkpoint)
            except CheckpointConflictError:
                attempt += 1
                if attempt > self._max_conflict_retries:
                    raise
                logger.info(
                    f"[checkpoint] version {version} of {execution_id}/{phase.value} "
                    f"taken, retrying ({attempt}/{self._max_conflict_retries})"
                )
                continue

            logger.debug(f"[checkpoint] saved {execution_id}/{phase.value} v{version}")
            return checkpoint

    # -------------------------
    # LOAD
    # -------------------------

    def load_checkpoint(self, execution_id: str, phase: Phase) -> Optional[Checkpoint]:
        """
        Return the authoritative (highest version) checkpoint, or None.

        A checksum mismatch makes the key read as absent.
        """
        checkpoint = self._repo.get_latest(execution_id, phase)
        if checkpoint is None:
            return None

        try:
            self._verify(checkpoint)
        except CheckpointCorruptionError as e:
            logger.warning(f"[checkpoint] {e}; treating as absent")
            return None

        return checkpoint

    @staticmethod
    def _verify(checkpoint: Checkpoint) -> None:
        if not checkpoint.is_valid():
            raise CheckpointCorruptionError(
                f"Checksum mismatch for {checkpoint.execution_id}/"
                f"{checkpoint.phase.value} v{checkpoint.version}"
            )

    def list_checkpoints(self, execution_id: str) -> List[Checkpoint]:
        return list(self._repo.list_for_execution(execution_id))

    # -------------------------
    # RECOVERY
    # -------------------------

    def compute_recovery_state(self, execution_id: str) -> RecoveryState:
        """
        Walk the phase sequence and collect the contiguous prefix of phases
        whose latest valid checkpoint recorded a successful result.
        """
        state = RecoveryState(execution_id=execution_id, remaining_phases=[])
        prefix_open = True

        for phase in PHASE_SEQUENCE:
            checkpoint = self._repo.get_latest(execution_id, phase)
            if checkpoint is not None:
                try:
                    self._verify(checkpoint)
                except CheckpointCorruptionError as e:
                    logger.warning(f"[checkpoint] {e}; treating as absent")
                    state.corrupt_phases.append(phase)
                    checkpoint = None

            succeeded = (
                checkpoint is not None
                and checkpoint.phase_status == PhaseStatus.SUCCEEDED.value
            )

            if prefix_open and succeeded:
                state.completed_phases.append(phase)
                state.checkpoints[phase] = checkpoint
            else:
                prefix_open = False
                state.remaining_phases.append(phase)

        if state.completed_phases:
            logger.info(
                f"[checkpoint] {execution_id} recoverable after "
                f"{state.last_completed_phase.value} "
                f"({len(state.remaining_phases)} phase(s) remaining)"
            )
        return state
