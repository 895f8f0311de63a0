"""
Orchestration Module.

Drives plans through the phase pipeline:

    PlanOrchestrator → PhaseGraph.can_start → executor → PlanStore
          ↑                                                  ↓
          └──────────── persisted phase outputs ─────────────┘

Key Components:
1. PlanOrchestrator: phase loop, task fan-out, cancel/pause/resume
2. ExecutionRequest / CancellationToken: the executor contract
3. TaskPlan: parsing and grouping of the plan phase output
"""

from .executor import CancellationToken, ExecutionRequest, placeholder_executor
from .task_plan import TaskPlan, TaskSpec, TaskPhaseResult, group_tasks_by_dependencies
from .orchestrator import OrchestratorEvent, OrchestratorState, PlanOrchestrator, TaskFailurePolicy

__all__ = [
    "CancellationToken",
    "ExecutionRequest",
    "placeholder_executor",
    "TaskPlan",
    "TaskSpec",
    "TaskPhaseResult",
    "group_tasks_by_dependencies",
    "OrchestratorEvent",
    "OrchestratorState",
    "PlanOrchestrator",
    "TaskFailurePolicy",
]
