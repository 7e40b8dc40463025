# rollout_engine/core/errors.py

# -----------------------------
# Base Errors
# -----------------------------

class OrchestrationError(Exception):
    """Base class for all rollout engine errors."""
    pass


# -----------------------------
# Validation / Domain Errors
# -----------------------------

class DeploymentValidationError(OrchestrationError):
    """A phase precondition is unmet. Always fatal, never retried."""
    pass


class InvalidStateTransition(OrchestrationError):
    """Illegal execution status transition attempted."""
    pass


class ExecutionCancelled(OrchestrationError):
    """Execution was cancelled between phases."""
    pass


# -----------------------------
# Backend Errors
# -----------------------------

class BackendError(OrchestrationError):
    """Failure reported by the execution backend."""

    def __init__(self, message: str, *, exit_code: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class TransientBackendError(BackendError):
    """Recoverable backend condition (binding not propagated, rate limit)."""
    pass


class FatalBackendError(BackendError):
    """Any backend failure not classified as transient."""
    pass


class BackendTimeoutError(FatalBackendError):
    """External call exceeded its timeout."""
    pass


# -----------------------------
# Checkpoint Errors
# -----------------------------

class CheckpointError(OrchestrationError):
    pass


class CheckpointCorruptionError(CheckpointError):
    """Stored checksum does not match the checkpoint contents."""
    pass


class CheckpointConflictError(CheckpointError):
    """A checkpoint with the same (execution, phase, version) already exists."""
    pass


# -----------------------------
# Capability Errors
# -----------------------------

class CapabilityError(OrchestrationError):
    pass


class UnknownCapabilityError(CapabilityError):
    pass


class CapabilityLockedError(CapabilityError):
    """Registry mutation attempted while an execution is running."""
    pass


class UnknownProfileError(CapabilityError):
    pass
