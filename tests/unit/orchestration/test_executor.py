"""
Unit tests for the executor contract.
"""

import asyncio
import threading

import pytest

from hydra_planning.core.errors import OperationCancelledError
from hydra_planning.models.plan import TaskRecord
from hydra_planning.orchestration.executor import (
    CancellationToken,
    ExecutionRequest,
    invoke_executor,
    placeholder_executor,
)


class TestCancellationToken:
    """Test the cooperative cancellation signal."""

    @pytest.mark.asyncio
    async def test_initial_state(self):
        token = CancellationToken()

        assert token.cancelled is False
        token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_cancel_keeps_first_reason(self):
        token = CancellationToken()

        token.cancel("user abort")
        token.cancel("second")

        assert token.cancelled is True
        assert token.reason == "user abort"
        with pytest.raises(OperationCancelledError, match="user abort"):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_wait_unblocks_on_cancel(self):
        token = CancellationToken()

        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel()
        await asyncio.wait_for(waiter, timeout=1)


class TestExecutionRequest:
    """Test request helpers."""

    def test_target_for_phase(self):
        assert ExecutionRequest(role="planner", query="q", phase="plan").target == "plan"

    def test_target_for_task(self):
        request = ExecutionRequest(role="tester", query="q", task=TaskRecord(id="task-2"))
        assert request.target == "task-2"

    def test_target_fallback(self):
        assert ExecutionRequest(role=None, query="q").target == "task"


class TestInvokeExecutor:
    """Test sync and async executors."""

    @pytest.mark.asyncio
    async def test_sync_executor(self):
        result = await invoke_executor(lambda request: request.query.upper(), ExecutionRequest(role=None, query="hi"))

        assert result == "HI"

    @pytest.mark.asyncio
    async def test_async_executor(self):
        async def executor(request):
            await asyncio.sleep(0)
            return {"role": request.role}

        result = await invoke_executor(executor, ExecutionRequest(role="architect", query="q"))

        assert result == {"role": "architect"}

    @pytest.mark.asyncio
    async def test_sync_executor_runs_off_the_loop(self):
        loop_thread = threading.get_ident()

        result = await invoke_executor(
            lambda request: threading.get_ident(),
            ExecutionRequest(role=None, query="q"),
        )

        assert result != loop_thread

    @pytest.mark.asyncio
    async def test_async_callable_object_runs_on_the_loop(self):
        class Agent:
            async def __call__(self, request):
                return threading.get_ident()

        result = await invoke_executor(Agent(), ExecutionRequest(role=None, query="q"))

        assert result == threading.get_ident()

    @pytest.mark.asyncio
    async def test_sync_executor_returning_awaitable(self):
        async def work():
            return "awaited"

        result = await invoke_executor(lambda request: work(), ExecutionRequest(role=None, query="q"))

        assert result == "awaited"

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        def executor(request):
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            await invoke_executor(executor, ExecutionRequest(role=None, query="q"))


@pytest.mark.asyncio
async def test_placeholder_executor_echoes_request():
    request = ExecutionRequest(role="researcher", query="add toggle", phase="speculate")

    result = await placeholder_executor(request)

    assert result["role"] == "researcher"
    assert result["phase"] == "speculate"
    assert result["task_id"] is None
    assert "timestamp" in result
