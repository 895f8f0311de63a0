"""
Executor contract.

The executor is the only seam between the orchestrator and the agents that
do the actual work. It receives an ExecutionRequest and returns any
JSON-serializable result, or raises.

Cancellation is cooperative: the orchestrator sets the shared
CancellationToken and well-behaved executors check it and stop. Nothing
here kills work that ignores the token.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from hydra_planning.core.errors import OperationCancelledError
from hydra_planning.models.plan import TaskRecord, utc_now

logger = logging.getLogger(__name__)


class CancellationToken:
    """Shared cancellation signal for one plan run."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Plan cancelled"):
        """Signal cancellation; later calls keep the first reason."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self):
        """Block until cancellation is signalled."""
        await self._event.wait()

    def raise_if_cancelled(self):
        """Raise OperationCancelledError once cancelled."""
        if self._event.is_set():
            raise OperationCancelledError(self.reason or "Operation cancelled")


@dataclass
class ExecutionRequest:
    """
    One delegated unit of work.

    Phase requests carry `phase` and `instructions`; task requests carry
    `task` and use the task description as the query.
    """
    role: Optional[str]
    query: str
    context: Dict[str, Any] = field(default_factory=dict)
    phase: Optional[str] = None
    task: Optional[TaskRecord] = None
    instructions: Optional[str] = None
    cancellation: Optional[CancellationToken] = None

    @property
    def target(self) -> str:
        """Phase name or task id, for logging."""
        if self.phase:
            return self.phase
        if self.task is not None and self.task.id:
            return self.task.id
        return "task"


Executor = Callable[[ExecutionRequest], Union[Awaitable[Any], Any]]


async def invoke_executor(executor: Executor, request: ExecutionRequest) -> Any:
    """
    Call an executor.

    Coroutine executors run on the event loop. Plain callables run in a
    worker thread so a blocking call can still be raced against a timeout;
    an awaitable they return is awaited on the loop.
    """
    if _is_async_callable(executor):
        return await executor(request)

    result = await asyncio.to_thread(executor, request)
    if inspect.isawaitable(result):
        result = await result
    return result


def _is_async_callable(executor: Executor) -> bool:
    return inspect.iscoroutinefunction(executor) or inspect.iscoroutinefunction(
        getattr(executor, "__call__", None)
    )


async def placeholder_executor(request: ExecutionRequest) -> Dict[str, Any]:
    """
    Diagnostic executor that logs the request and echoes it back.

    Stand-in until a real agent integration is injected.
    """
    logger.info(f"[PlanMode] Executing with role: {request.role}")
    logger.info(f"[PlanMode] Target: {request.target}")
    logger.info(f"[PlanMode] Query: {request.query}")

    return {
        "role": request.role,
        "phase": request.phase,
        "task_id": request.task.id if request.task is not None else None,
        "timestamp": utc_now().isoformat(),
        "result": "Placeholder - inject an executor to perform real work",
    }
