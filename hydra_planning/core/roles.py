"""
Executor role resolution.

Maps task types and free-text task descriptions onto executor roles. A role
only names which pluggable implementation should perform the work; invoking
it is the executor's business.

Text inference is a heuristic, so it sits behind the RoleResolver strategy
and can be swapped without touching the scheduler.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


DEFAULT_ROLE = "architect"

# Insertion order matters: text inference returns the first type whose
# name occurs in the description.
TASK_ROLE_MAPPING: Dict[str, str] = {
    # Code tasks
    "code": "architect",
    "implementation": "architect",
    "refactor": "remediator",
    "architecture": "architect",

    # Testing tasks
    "test": "tester",
    "qa": "tester",
    "validation": "tester",

    # Security tasks
    "security": "security",
    "audit": "security",
    "review": "reviewer",

    # DevOps tasks
    "deploy": "devops",
    "ci_cd": "devops",
    "infrastructure": "devops",
    "shell": "devops",

    # Data tasks
    "data": "data",
    "database": "data",
    "migration": "data",

    # Documentation tasks
    "documentation": "documenter",
    "readme": "documenter",
    "changelog": "documenter",

    # Research tasks
    "research": "researcher",
    "analysis": "researcher",

    # Performance tasks
    "performance": "performance",
    "optimization": "performance",

    # API tasks
    "api": "integrator",
    "integration": "integrator",

    # Planning tasks
    "planning": "planner",
    "strategy": "planner",
}

# (keywords, role) rules applied when no task type matches the text
FALLBACK_KEYWORD_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("write", "implement", "create"), "architect"),
    (("fix", "debug", "error"), "remediator"),
    (("explain", "understand", "why"), "researcher"),
]


class RoleResolver(ABC):
    """Strategy for picking an executor role."""

    @abstractmethod
    def for_task_type(self, task_type: Optional[str]) -> str:
        """Role for an explicit task type."""
        pass

    @abstractmethod
    def infer(self, description: str) -> str:
        """Role guessed from a task description."""
        pass

    def knows_type(self, task_type: Optional[str]) -> bool:
        """Whether the task type has a dedicated entry."""
        return False


class KeywordRoleResolver(RoleResolver):
    """
    Substring-matching role resolver.

    Lookup order for `infer`:
    1. first task type (in table order) contained in the description
    2. fallback keyword rules
    3. the default role

    Example:
        ```python
        resolver = KeywordRoleResolver()
        resolver.infer("Add unit test for parser")   # "tester"
        resolver.infer("Why does the cache miss?")   # "researcher"
        ```
    """

    def __init__(
        self,
        mapping: Optional[Dict[str, str]] = None,
        default_role: str = DEFAULT_ROLE,
        fallback_rules: Optional[List[Tuple[Tuple[str, ...], str]]] = None
    ):
        """
        Initialize resolver.

        Args:
            mapping: Task type -> role table (defaults to TASK_ROLE_MAPPING)
            default_role: Role used when nothing matches
            fallback_rules: Keyword rules tried after the type table
        """
        source = mapping if mapping is not None else TASK_ROLE_MAPPING
        self.mapping = {k.lower(): v for k, v in source.items()}
        self.default_role = default_role
        self.fallback_rules = fallback_rules if fallback_rules is not None else FALLBACK_KEYWORD_RULES

    def knows_type(self, task_type: Optional[str]) -> bool:
        return bool(task_type) and task_type.lower() in self.mapping

    def for_task_type(self, task_type: Optional[str]) -> str:
        if not task_type:
            return self.default_role
        return self.mapping.get(task_type.lower(), self.default_role)

    def infer(self, description: str) -> str:
        lower = (description or "").lower()

        for task_type, role in self.mapping.items():
            if task_type in lower:
                return role

        for keywords, role in self.fallback_rules:
            if any(keyword in lower for keyword in keywords):
                return role

        logger.debug(f"No role keyword matched, using default: {self.default_role}")
        return self.default_role
