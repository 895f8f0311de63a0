"""
Phase definitions for the planning pipeline.

SPECULATE → PLAN → EXECUTE → SYNTHESIZE → LOG → ARCHIVE

Each phase declares its prerequisites, executor role and time budget.
PhaseGraph answers the static questions about the pipeline: the order of
phases, whether a phase may start given the current statuses, and which
executor role handles a unit of work.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from hydra_planning.core.errors import GraphConfigurationError
from hydra_planning.core.roles import KeywordRoleResolver, RoleResolver

logger = logging.getLogger(__name__)


class PhaseName(str, Enum):
    """Phases of the default pipeline."""

    SPECULATE = "speculate"
    PLAN = "plan"
    EXECUTE = "execute"
    SYNTHESIZE = "synthesize"
    LOG = "log"
    ARCHIVE = "archive"


class PhaseStatus(str, Enum):
    """Execution status of one phase within a plan."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class PhaseKind(str, Enum):
    """How the orchestrator runs a phase."""

    AGENT = "agent"      # single executor call
    TASKS = "tasks"      # fan out over the planned tasks
    ARCHIVE = "archive"  # move the plan into the archive area


class PhaseConfig(BaseModel):
    """
    Static configuration of one pipeline phase.

    Example:
        ```python
        config = PhaseConfig(
            name="review",
            description="Review the change",
            role="reviewer",
            timeout=20.0,
            dependencies=["execute"]
        )
        ```
    """
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    role: Optional[str] = None  # None for dynamic or system phases
    timeout: float = Field(30.0, gt=0, description="Time budget in seconds")
    required: bool = True
    parallel: bool = False
    dependencies: List[str] = Field(default_factory=list)
    instructions: Optional[str] = None
    kind: PhaseKind = PhaseKind.AGENT


PHASE_CONFIGS: Dict[str, PhaseConfig] = {
    PhaseName.SPECULATE.value: PhaseConfig(
        name=PhaseName.SPECULATE.value,
        description="Research and analyze the task context",
        role="researcher",
        timeout=30.0,
        required=True,
        dependencies=[],
        instructions="""You are the research analyst.
Analyze the request in depth and gather the context it needs.

Analyze:
1. What is being requested?
2. Which existing code and patterns are relevant?
3. Which approaches are possible?
4. What are the risks and considerations?
5. What information is missing?

Return a structured analysis with:
- concepts: key concepts involved
- approaches: possible implementation approaches
- complexity: simple, medium or complex
- unknowns: information gaps that need clarification""",
    ),
    PhaseName.PLAN.value: PhaseConfig(
        name=PhaseName.PLAN.value,
        description="Create detailed execution plan with task decomposition",
        role="planner",
        timeout=45.0,
        required=True,
        dependencies=[PhaseName.SPECULATE.value],
        instructions="""You are the strategic planner.
Using the research analysis, produce a detailed execution plan.

The plan lists:
1. Tasks: specific, actionable items
2. Dependencies: which tasks depend on others
3. Roles: the executor role best suited to each task
4. Priority: order of execution
5. Verification: how to confirm each task is complete

Return JSON:
{
  "tasks": [
    {
      "id": "task-1",
      "description": "Task description",
      "type": "code",
      "role": "architect",
      "priority": 1,
      "dependencies": [],
      "verification": "How to verify completion"
    }
  ],
  "execution_order": ["task-1", "task-2"],
  "parallel_groups": [["task-1"], ["task-2", "task-3"]]
}""",
    ),
    PhaseName.EXECUTE.value: PhaseConfig(
        name=PhaseName.EXECUTE.value,
        description="Execute planned tasks using appropriate executors",
        role=None,  # chosen per task
        timeout=120.0,
        required=True,
        parallel=True,
        dependencies=[PhaseName.PLAN.value],
        kind=PhaseKind.TASKS,
    ),
    PhaseName.SYNTHESIZE.value: PhaseConfig(
        name=PhaseName.SYNTHESIZE.value,
        description="Combine and synthesize results from execution",
        role="architect",
        timeout=30.0,
        required=True,
        dependencies=[PhaseName.EXECUTE.value],
        instructions="""You are the system architect.
Synthesize the execution results into one coherent response.

1. Review every task output
2. Identify successes and failures
3. Combine related outputs
4. Write a unified summary
5. Flag issues that need attention

Return a structured synthesis with:
- summary: overall result
- outputs: combined task outputs
- issues: problems encountered
- recommendations: next steps, if any""",
    ),
    PhaseName.LOG.value: PhaseConfig(
        name=PhaseName.LOG.value,
        description="Document the execution for future reference",
        role="documenter",
        timeout=15.0,
        required=False,
        dependencies=[PhaseName.SYNTHESIZE.value],
        instructions="""You are the documentalist.
Write a concise log of this execution covering what was requested,
the approach taken, what was accomplished and any lessons learned.""",
    ),
    PhaseName.ARCHIVE.value: PhaseConfig(
        name=PhaseName.ARCHIVE.value,
        description="Archive the plan for future reference",
        role=None,  # system operation
        timeout=5.0,
        required=False,
        dependencies=[PhaseName.LOG.value],
        kind=PhaseKind.ARCHIVE,
    ),
}

DEFAULT_PHASE_ORDER = [
    PhaseName.SPECULATE.value,
    PhaseName.PLAN.value,
    PhaseName.EXECUTE.value,
    PhaseName.SYNTHESIZE.value,
    PhaseName.LOG.value,
    PhaseName.ARCHIVE.value,
]


class PhaseGraph:
    """
    Static description of the pipeline.

    Holds the ordered phase configurations and the role resolver used to
    pick executor roles for tasks. Pure: nothing here touches storage.
    """

    def __init__(
        self,
        phases: Optional[Iterable[PhaseConfig]] = None,
        role_resolver: Optional[RoleResolver] = None,
        task_source: str = PhaseName.PLAN.value
    ):
        """
        Initialize phase graph.

        Args:
            phases: Phase configurations in pipeline order (default pipeline if None)
            role_resolver: Strategy for task roles (KeywordRoleResolver if None)
            task_source: Phase whose output holds the task plan

        Raises:
            GraphConfigurationError: If the phases do not form a valid pipeline
        """
        if phases is None:
            phases = [PHASE_CONFIGS[name] for name in DEFAULT_PHASE_ORDER]

        self._phases: List[PhaseConfig] = list(phases)
        self._by_name: Dict[str, PhaseConfig] = {}
        self.role_resolver = role_resolver or KeywordRoleResolver()
        self.task_source = task_source

        self._validate()

    def _validate(self):
        """Check names, prerequisite ordering and archive placement."""
        if not self._phases:
            raise GraphConfigurationError("Phase graph needs at least one phase")

        for index, phase in enumerate(self._phases):
            if phase.name in self._by_name:
                raise GraphConfigurationError(f"Duplicate phase: {phase.name}")

            for dep in phase.dependencies:
                if dep not in self._by_name:
                    raise GraphConfigurationError(
                        f"Phase '{phase.name}' depends on '{dep}', "
                        f"which is unknown or ordered after it"
                    )

            if phase.kind == PhaseKind.ARCHIVE and index != len(self._phases) - 1:
                raise GraphConfigurationError(
                    f"Archive phase '{phase.name}' must be the last phase"
                )

            self._by_name[phase.name] = phase

    @property
    def phase_names(self) -> List[str]:
        """Phase names in pipeline order."""
        return [phase.name for phase in self._phases]

    def get_phase(self, phase_name: str) -> Optional[PhaseConfig]:
        """Configuration for a phase, or None if unknown."""
        return self._by_name.get(phase_name)

    def ordered_phases(self, include_optional: bool = True) -> List[PhaseConfig]:
        """
        Phases in pipeline order.

        Args:
            include_optional: Keep phases that are not required

        Returns:
            List of phase configurations
        """
        return [
            phase for phase in self._phases
            if include_optional or phase.required
        ]

    def can_start(self, phase_name: str, statuses: Mapping[str, str]) -> bool:
        """
        Check whether every prerequisite of a phase is completed.

        Args:
            phase_name: Phase to check
            statuses: Phase name -> status

        Returns:
            bool: False for unknown phases or unmet prerequisites
        """
        config = self._by_name.get(phase_name)
        if config is None:
            return False

        for dep in config.dependencies:
            if _status_value(statuses.get(dep)) != PhaseStatus.COMPLETED.value:
                return False

        return True

    def initial_statuses(self) -> Dict[str, PhaseStatus]:
        """Status map with every phase pending."""
        return {name: PhaseStatus.PENDING for name in self.phase_names}

    def role_for_task_type(self, task_type: Optional[str]) -> str:
        """Exact task type lookup, falling back to the default role."""
        return self.role_resolver.for_task_type(task_type)

    def infer_role_from_text(self, description: str) -> str:
        """Keyword heuristic over a task description."""
        return self.role_resolver.infer(description)

    def resolve_task_role(
        self,
        role: Optional[str],
        task_type: Optional[str],
        description: str
    ) -> str:
        """Explicit role, then a known task type, then text inference."""
        if role:
            return role
        if self.role_resolver.knows_type(task_type):
            return self.role_resolver.for_task_type(task_type)
        return self.role_resolver.infer(description)


def _status_value(status) -> Optional[str]:
    if isinstance(status, Enum):
        return status.value
    return status
