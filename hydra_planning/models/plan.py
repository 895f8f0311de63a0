"""
Plan document models.

A Plan is the durable record of one orchestration run: per-phase records,
the tasks discovered during planning, phase outputs and lifecycle status.
PlanStore is the only writer of these documents.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from hydra_planning.core.phases import PhaseStatus

PLAN_VERSION = "1.0.0"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class PlanStatus(str, Enum):
    """Lifecycle status of a plan."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


# Forward-only lifecycle; ARCHIVED is applied by PlanStore.archive
ALLOWED_STATUS_TRANSITIONS = {
    PlanStatus.ACTIVE: [PlanStatus.COMPLETED, PlanStatus.FAILED, PlanStatus.CANCELLED],
    PlanStatus.COMPLETED: [PlanStatus.ARCHIVED],
    PlanStatus.FAILED: [],
    PlanStatus.CANCELLED: [],
    PlanStatus.ARCHIVED: [],
}


class TaskStatus(str, Enum):
    """Status of one planned task."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class PhaseRecord(BaseModel):
    """Execution state of one phase."""

    status: PhaseStatus = PhaseStatus.PENDING
    role: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    output: Any = None
    error: Optional[str] = None


class TaskRecord(BaseModel):
    """
    A unit of work discovered during the plan phase.

    Example:
        ```python
        task = TaskRecord(
            id="task-1",
            description="Add toggle component",
            type="code",
            priority=1,
            verification="Toggle renders in settings page"
        )
        ```
    """

    id: Optional[str] = None  # assigned by PlanStore.add_task when missing
    description: str = ""
    type: Optional[str] = None
    role: Optional[str] = None
    priority: int = 0
    dependencies: List[str] = Field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    verification: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    output: Any = None
    error: Optional[str] = None


class Plan(BaseModel):
    """One orchestration run."""

    id: str
    version: str = PLAN_VERSION
    status: PlanStatus = PlanStatus.ACTIVE
    query: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    phases: Dict[str, PhaseRecord] = Field(default_factory=dict)
    tasks: List[TaskRecord] = Field(default_factory=list)
    outputs: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    archived_at: Optional[datetime] = None

    def phase_statuses(self) -> Dict[str, PhaseStatus]:
        """Phase name -> status."""
        return {name: record.status for name, record in self.phases.items()}

    def get_task(self, task_id: str) -> Optional[TaskRecord]:
        """Task with the given id, or None."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def completed_phase_outputs(self) -> Dict[str, Any]:
        """Outputs of phases that completed, in phase order."""
        return {
            name: record.output
            for name, record in self.phases.items()
            if record.status == PhaseStatus.COMPLETED
        }

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dictionary."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        """Create Plan from dictionary."""
        return cls.model_validate(data)
