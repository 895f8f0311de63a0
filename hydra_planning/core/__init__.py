"""
Core definitions: phase graph, role resolution, errors and logging setup.
"""

from .phases import PhaseConfig, PhaseGraph, PhaseKind, PhaseName, PhaseStatus, PHASE_CONFIGS
from .roles import RoleResolver, KeywordRoleResolver, TASK_ROLE_MAPPING, DEFAULT_ROLE

__all__ = [
    "PhaseConfig",
    "PhaseGraph",
    "PhaseKind",
    "PhaseName",
    "PhaseStatus",
    "PHASE_CONFIGS",
    "RoleResolver",
    "KeywordRoleResolver",
    "TASK_ROLE_MAPPING",
    "DEFAULT_ROLE",
]
