"""
Task plan parsing and grouping.

The plan phase returns a task list plus an optional execution order and
parallel groups. This module turns that output into validated TaskSpecs and
the sequence of groups the execute phase runs.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from hydra_planning.core.errors import PlanValidationError
from hydra_planning.models.plan import TaskRecord

logger = logging.getLogger(__name__)


class TaskSpec(BaseModel):
    """Task as proposed by the plan phase."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    description: str = ""
    type: Optional[str] = None
    role: Optional[str] = Field(None, validation_alias=AliasChoices("role", "agent"))
    priority: int = 0
    dependencies: List[str] = Field(default_factory=list)
    verification: Optional[str] = None

    def to_record(self) -> TaskRecord:
        return TaskRecord(
            id=self.id,
            description=self.description,
            type=self.type,
            role=self.role,
            priority=self.priority,
            dependencies=list(self.dependencies),
            verification=self.verification,
        )


class TaskPlan(BaseModel):
    """
    Output of the plan phase.

    Accepts snake_case or camelCase keys (`parallel_groups` or
    `parallelGroups`). Tasks without an id get `task-<position>`.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tasks: List[TaskSpec] = Field(default_factory=list)
    execution_order: List[str] = Field(default_factory=list, alias="executionOrder")
    parallel_groups: Optional[List[List[str]]] = Field(None, alias="parallelGroups")

    @model_validator(mode="after")
    def assign_missing_ids(self) -> "TaskPlan":
        for index, task in enumerate(self.tasks, start=1):
            if not task.id:
                task.id = f"task-{index}"
        return self

    @classmethod
    def from_output(cls, output: Any) -> "TaskPlan":
        """
        Parse a plan-phase output.

        Raises:
            PlanValidationError: If the output holds no tasks
        """
        if not isinstance(output, dict):
            raise PlanValidationError("No tasks found from plan phase")

        try:
            plan = cls.model_validate(output)
        except ValidationError as e:
            raise PlanValidationError(f"Malformed task plan: {e}") from e

        if not plan.tasks:
            raise PlanValidationError("No tasks found from plan phase")
        return plan

    def get_task(self, task_id: str) -> Optional[TaskSpec]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def groups(self) -> List[List[str]]:
        """
        Groups of task ids to run; groups in sequence, ids within a group together.

        Explicit parallel_groups win, then layers derived from task
        dependencies, then a single group (execution_order or every task).
        """
        if self.parallel_groups:
            return [list(group) for group in self.parallel_groups]

        if any(task.dependencies for task in self.tasks):
            return group_tasks_by_dependencies(self.tasks)

        if self.execution_order:
            return [list(self.execution_order)]
        return [[task.id for task in self.tasks]]

    def unscheduled(self, groups: List[List[str]]) -> List[str]:
        """Ids of planned tasks that appear in none of the groups."""
        scheduled = {task_id for group in groups for task_id in group}
        return [task.id for task in self.tasks if task.id not in scheduled]


def group_tasks_by_dependencies(tasks: List[TaskSpec]) -> List[List[str]]:
    """
    Layer tasks so each layer only depends on earlier layers.

    Dependencies on ids outside the task list are ignored. Within a layer,
    tasks keep priority order (lower first), then list order.

    Raises:
        PlanValidationError: If the dependencies contain a cycle
    """
    known = {task.id for task in tasks}
    remaining: Dict[str, set] = {
        task.id: {dep for dep in task.dependencies if dep in known and dep != task.id}
        for task in tasks
    }
    position = {task.id: (task.priority, index) for index, task in enumerate(tasks)}

    layers = []
    done = set()

    while remaining:
        ready = [task_id for task_id, deps in remaining.items() if deps <= done]
        if not ready:
            raise PlanValidationError(
                f"Task dependency cycle among: {', '.join(sorted(remaining))}"
            )

        ready.sort(key=lambda task_id: position[task_id])
        layers.append(ready)
        done.update(ready)
        for task_id in ready:
            del remaining[task_id]

    logger.debug(f"Grouped {len(tasks)} tasks into {len(layers)} layers")
    return layers


class TaskPhaseResult(BaseModel):
    """Aggregate outcome of the execute phase."""

    completed: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)
