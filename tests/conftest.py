"""
Shared fixtures for planning tests.
"""

import asyncio
import os

import pytest

from hydra_planning.config import reset_config
from hydra_planning.core.errors import OperationCancelledError
from hydra_planning.core.phases import PhaseGraph
from hydra_planning.storage.plan_store import PlanStore


DARK_MODE_PLAN = {
    "tasks": [
        {
            "id": "task-1",
            "description": "Create dark mode toggle component",
            "type": "code",
            "priority": 1,
            "verification": "Toggle renders in settings page",
        },
        {
            "id": "task-2",
            "description": "Write unit tests for the toggle",
            "type": "test",
            "priority": 2,
            "verification": "Tests pass",
        },
    ],
    "execution_order": ["task-1", "task-2"],
    "parallel_groups": [["task-1", "task-2"]],
}


class ScriptedExecutor:
    """
    Fake executor with scripted behaviour.

    - the plan phase returns `plan_output`
    - phases in `fail_phases` and tasks in `fail_tasks` raise RuntimeError
    - `task_delays` maps task id -> seconds to sleep before finishing
    - `wait_for_cancel` task ids block until the token is cancelled, then raise
    """

    def __init__(self, plan_output=None, fail_phases=(), fail_tasks=(),
                 task_delays=None, wait_for_cancel=(), hooks=None):
        self.plan_output = DARK_MODE_PLAN if plan_output is None else plan_output
        self.fail_phases = set(fail_phases)
        self.fail_tasks = set(fail_tasks)
        self.task_delays = task_delays or {}
        self.wait_for_cancel = set(wait_for_cancel)
        self.hooks = hooks or {}
        self.calls = []

    @property
    def phase_calls(self):
        return [r.phase for r in self.calls if r.phase]

    @property
    def task_calls(self):
        return [r.task.id for r in self.calls if r.task is not None]

    async def __call__(self, request):
        self.calls.append(request)

        key = request.phase or request.task.id
        hook = self.hooks.get(key)
        if hook is not None:
            result = hook(request)
            if asyncio.iscoroutine(result):
                await result

        if request.phase:
            if request.phase in self.fail_phases:
                raise RuntimeError(f"{request.phase} exploded")
            if request.phase == "plan":
                return self.plan_output
            return {"phase": request.phase, "role": request.role, "summary": f"{request.phase} done"}

        task_id = request.task.id
        if task_id in self.wait_for_cancel:
            await request.cancellation.wait()
            raise OperationCancelledError(f"{task_id} cancelled")
        await asyncio.sleep(self.task_delays.get(task_id, 0))
        if task_id in self.fail_tasks:
            raise RuntimeError(f"{task_id} exploded")
        return {"task": task_id, "role": request.role, "done": True}


@pytest.fixture
def storage_dir(tmp_path):
    """Directory for plan documents."""
    return tmp_path / "plans"


@pytest.fixture
def store(storage_dir):
    """PlanStore on the default pipeline."""
    return PlanStore(storage_dir=storage_dir)


@pytest.fixture
def graph():
    """Default phase graph."""
    return PhaseGraph()


@pytest.fixture
def scripted_executor():
    """Factory for ScriptedExecutor instances."""
    return ScriptedExecutor


@pytest.fixture
def dark_mode_plan():
    """Plan-phase output with two tasks in one parallel group."""
    return {
        **DARK_MODE_PLAN,
        "tasks": [dict(task) for task in DARK_MODE_PLAN["tasks"]],
    }


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Keep HYDRA_PLANNING_* settings out of tests."""
    for name in list(os.environ):
        if name.startswith("HYDRA_PLANNING_"):
            monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
