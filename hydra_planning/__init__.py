"""
Hydra planning: multi-phase plan orchestration.

Pipeline: SPECULATE → PLAN → EXECUTE → SYNTHESIZE → LOG → ARCHIVE

Components:
- PhaseGraph: phase order, prerequisites and executor roles
- PlanStore: durable JSON plan documents
- PlanOrchestrator: drives a plan through the pipeline via an injected executor
"""

from hydra_planning.core.errors import (
    PlanningError,
    PlanValidationError,
    ExecutionError,
    StorageError,
)
from hydra_planning.core.phases import PhaseConfig, PhaseGraph, PhaseKind, PhaseName, PhaseStatus
from hydra_planning.models.plan import Plan, PhaseRecord, PlanStatus, TaskRecord, TaskStatus
from hydra_planning.storage.plan_store import PlanStore
from hydra_planning.orchestration.executor import CancellationToken, ExecutionRequest, placeholder_executor
from hydra_planning.orchestration.orchestrator import (
    OrchestratorEvent,
    OrchestratorState,
    PlanOrchestrator,
    TaskFailurePolicy,
)
from hydra_planning.factory import build_orchestrator, init_planning, shutdown_planning

__version__ = "0.1.0"

__all__ = [
    "PlanningError",
    "PlanValidationError",
    "ExecutionError",
    "StorageError",
    "PhaseConfig",
    "PhaseGraph",
    "PhaseKind",
    "PhaseName",
    "PhaseStatus",
    "Plan",
    "PhaseRecord",
    "PlanStatus",
    "TaskRecord",
    "TaskStatus",
    "PlanStore",
    "CancellationToken",
    "ExecutionRequest",
    "placeholder_executor",
    "OrchestratorEvent",
    "OrchestratorState",
    "PlanOrchestrator",
    "TaskFailurePolicy",
    "build_orchestrator",
    "init_planning",
    "shutdown_planning",
]
