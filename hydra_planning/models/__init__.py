"""
Plan document models.
"""

from .plan import Plan, PhaseRecord, PlanStatus, TaskRecord, TaskStatus

__all__ = [
    "Plan",
    "PhaseRecord",
    "PlanStatus",
    "TaskRecord",
    "TaskStatus",
]
