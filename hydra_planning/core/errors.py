"""
Exception hierarchy for the planning pipeline.

Three families:
- PlanValidationError: bad references or calls made in the wrong state.
  Raised synchronously to the caller and never retried.
- ExecutionError: an executor failed, timed out or observed cancellation
  for a phase or task.
- StorageError: a persisted plan document could not be read.
"""


class PlanningError(Exception):
    """Base class for all planning errors."""
    pass


class PlanValidationError(PlanningError):
    """Invalid reference or operation attempted in the wrong state."""
    pass


class InvalidStateError(PlanValidationError):
    """Orchestrator operation attempted in a state that does not allow it."""

    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} in state: {state}")


class InvalidTransitionError(PlanValidationError):
    """Plan status change that would move the lifecycle backwards."""

    def __init__(self, plan_id: str, from_status: str, to_status: str):
        self.plan_id = plan_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid status transition for {plan_id}: {from_status} -> {to_status}"
        )


class GraphConfigurationError(PlanValidationError):
    """Phase graph definition is inconsistent."""
    pass


class NotFoundError(PlanValidationError):
    """Referenced plan, phase or task does not exist."""
    pass


class PlanNotFoundError(NotFoundError):
    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Plan not found: {plan_id}")


class PhaseNotFoundError(NotFoundError):
    def __init__(self, phase_name: str):
        self.phase_name = phase_name
        super().__init__(f"Invalid phase: {phase_name}")


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class ExecutionError(PlanningError):
    """Executor failure for a phase or task."""
    pass


class PhaseTimeoutError(ExecutionError):
    """Phase or task exceeded its configured time budget."""

    def __init__(self, name: str, timeout: float):
        self.name = name
        self.timeout = timeout
        super().__init__(f"Timeout after {timeout}s: {name}")


class OperationCancelledError(ExecutionError):
    """Raised by cooperative executors once they observe cancellation."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


class TaskFailuresError(ExecutionError):
    """Task phase failed because at least one task failed (propagate policy)."""

    def __init__(self, failed_task_ids):
        self.failed_task_ids = list(failed_task_ids)
        super().__init__(
            f"{len(self.failed_task_ids)} task(s) failed: {', '.join(self.failed_task_ids)}"
        )


class StorageError(PlanningError):
    """Persisted plan document could not be read or parsed."""
    pass
