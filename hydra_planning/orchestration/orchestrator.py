"""
Plan orchestrator.

Drives one plan through the SPECULATE → PLAN → EXECUTE → SYNTHESIZE → LOG →
ARCHIVE pipeline. Work is delegated to an injected executor and every
transition is written through PlanStore, so the stored document always
mirrors orchestration progress. Phase context is rebuilt from persisted
outputs; a restart between phases loses at most the phase in flight.

States:
    IDLE → PLANNING → EXECUTING → (PAUSED) → COMPLETED | FAILED | CANCELLED
    reset() returns a finished orchestrator to IDLE.
"""

import asyncio
import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from hydra_planning.core.errors import (
    ExecutionError,
    GraphConfigurationError,
    InvalidStateError,
    PhaseTimeoutError,
    PlanNotFoundError,
    PlanningError,
    PlanValidationError,
    TaskFailuresError,
    TaskNotFoundError,
)
from hydra_planning.core.phases import PhaseConfig, PhaseGraph, PhaseKind, PhaseStatus
from hydra_planning.models.plan import Plan, PlanStatus, TaskRecord, TaskStatus, utc_now
from hydra_planning.orchestration.executor import (
    CancellationToken,
    ExecutionRequest,
    Executor,
    invoke_executor,
    placeholder_executor,
)
from hydra_planning.orchestration.task_plan import TaskPhaseResult, TaskPlan, TaskSpec
from hydra_planning.storage.plan_store import PlanStore

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    """States of a PlanOrchestrator."""

    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class OrchestratorEvent(str, Enum):
    """Notifications emitted while a plan runs."""

    STATE_CHANGE = "state_change"
    PLAN_START = "plan_start"
    PHASE_START = "phase_start"
    PHASE_COMPLETE = "phase_complete"
    PHASE_FAILED = "phase_failed"
    PHASE_SKIPPED = "phase_skipped"
    TASK_START = "task_start"
    TASK_COMPLETE = "task_complete"
    TASK_FAILED = "task_failed"
    PLAN_COMPLETE = "plan_complete"
    ERROR = "error"


class TaskFailurePolicy(str, Enum):
    """
    How failed tasks affect the execute phase.

    TOLERATE: the phase completes and reports failures in its output.
    PROPAGATE: any failed task fails the phase (and so the plan).
    """

    TOLERATE = "tolerate"
    PROPAGATE = "propagate"


# Phases in these states are not run again when the loop re-scans
FINISHED_PHASE_STATUSES = (PhaseStatus.COMPLETED, PhaseStatus.FAILED, PhaseStatus.SKIPPED)

EventHandler = Callable[[Dict[str, Any]], None]


class PlanOrchestrator:
    """
    Runs one plan at a time through the phase pipeline.

    Example:
        ```python
        async def executor(request):
            return await my_agents.run(request.role, request.query, request.context)

        orchestrator = PlanOrchestrator(
            store=PlanStore(storage_dir="/tmp/plans"),
            executor=executor
        )
        plan = await orchestrator.start_plan("add dark mode toggle")
        ```
    """

    def __init__(
        self,
        store: Optional[PlanStore] = None,
        executor: Optional[Executor] = None,
        graph: Optional[PhaseGraph] = None,
        auto_archive: bool = True,
        task_failure_policy: Union[TaskFailurePolicy, str] = TaskFailurePolicy.TOLERATE,
        task_timeout: Optional[float] = None
    ):
        """
        Initialize orchestrator.

        Args:
            store: Plan store (a default PlanStore sharing `graph` if None)
            executor: Executor callable (placeholder_executor if None)
            graph: Phase graph (the store's graph if None)
            auto_archive: Let the archive phase move the plan to the archive area
            task_failure_policy: Effect of failed tasks on the execute phase
            task_timeout: Per-task budget in seconds (execute phase timeout if None)

        Raises:
            GraphConfigurationError: If store and graph disagree on the phases
        """
        if graph is None:
            graph = store.graph if store is not None else PhaseGraph()
        if store is None:
            store = PlanStore(graph=graph)
        if store.graph.phase_names != graph.phase_names:
            raise GraphConfigurationError(
                f"Store phases {store.graph.phase_names} do not match "
                f"orchestrator phases {graph.phase_names}"
            )

        self.store = store
        self.graph = graph
        self.executor = executor or placeholder_executor
        self.auto_archive = auto_archive
        self.task_failure_policy = TaskFailurePolicy(task_failure_policy)
        self.task_timeout = task_timeout

        self.state = OrchestratorState.IDLE
        self.current_plan: Optional[Plan] = None
        self.current_phase: Optional[str] = None
        self.cancellation: Optional[CancellationToken] = None
        self.phase_outputs: Dict[str, Any] = {}

        self._listeners: Dict[OrchestratorEvent, List[EventHandler]] = defaultdict(list)
        self._archived_path = None
        self._running = False

    # ========================================================================
    # EVENTS
    # ========================================================================

    def on(self, event: Union[OrchestratorEvent, str], handler: EventHandler):
        """Register a handler; it receives the event payload dict."""
        self._listeners[OrchestratorEvent(event)].append(handler)

    def off(self, event: Union[OrchestratorEvent, str], handler: EventHandler):
        """Remove a previously registered handler."""
        handlers = self._listeners[OrchestratorEvent(event)]
        if handler in handlers:
            handlers.remove(handler)

    def _emit(self, event: OrchestratorEvent, **payload):
        payload["event"] = event.value
        for handler in list(self._listeners[event]):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"Event handler for '{event.value}' failed")

    def _set_state(self, new_state: OrchestratorState):
        old_state = self.state
        if old_state == new_state:
            return

        self.state = new_state
        logger.debug(f"Orchestrator state {old_state.value} -> {new_state.value}")
        self._emit(OrchestratorEvent.STATE_CHANGE, old_state=old_state, new_state=new_state)

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def start_plan(self, query: str, metadata: Optional[Dict[str, Any]] = None) -> Plan:
        """
        Create a plan and run it through the pipeline.

        Args:
            query: User request
            metadata: Extra plan metadata

        Returns:
            Final plan snapshot (the archived copy once archived)

        Raises:
            InvalidStateError: If the orchestrator is not idle
            PlanningError: If a required phase fails
        """
        if self.state != OrchestratorState.IDLE:
            raise InvalidStateError("start plan", self.state.value)

        self._set_state(OrchestratorState.PLANNING)
        self.cancellation = CancellationToken()
        self.phase_outputs = {}
        self._archived_path = None

        try:
            self.current_plan = self.store.create(query, {
                **(metadata or {}),
                "started_at": utc_now().isoformat(),
            })
        except Exception as e:
            self._fail_plan(e)
            raise

        logger.info(f"Starting plan {self.current_plan.id}: '{query}'")
        self._emit(OrchestratorEvent.PLAN_START, plan=self.current_plan)

        return await self._drive()

    async def resume_plan(self, plan_id: str) -> Plan:
        """
        Attach an idle orchestrator to a persisted active plan and continue it.

        Raises:
            InvalidStateError: If the orchestrator is not idle
            PlanNotFoundError: Unknown plan
            PlanValidationError: If the plan is no longer active
        """
        if self.state != OrchestratorState.IDLE:
            raise InvalidStateError("resume plan", self.state.value)

        plan = self.store.load(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        if plan.status != PlanStatus.ACTIVE:
            raise PlanValidationError(f"Plan {plan_id} is {plan.status.value}, not active")

        self.current_plan = plan
        self.cancellation = CancellationToken()
        self.phase_outputs = plan.completed_phase_outputs()
        self._archived_path = None
        self._set_state(OrchestratorState.EXECUTING)

        logger.info(f"Resuming plan {plan_id}")
        return await self._drive()

    async def _drive(self) -> Plan:
        """Run the phase loop, translating errors into orchestrator state."""
        self._running = True
        try:
            await self._run_phases()
        except Exception as e:
            if self._is_cancelled():
                logger.warning(f"Plan {self.current_plan.id} stopped after cancellation: {e}")
                return self._snapshot()
            self._fail_plan(e)
            raise
        finally:
            self._running = False

        return self._snapshot()

    async def _run_phases(self):
        """
        Run every phase whose prerequisites are met, in pipeline order.

        Finished phases are passed over, so re-entering the loop continues
        where the plan left off.
        """
        for phase_config in self.graph.ordered_phases(include_optional=True):
            if self._is_cancelled():
                self._set_state(OrchestratorState.CANCELLED)
                return
            if self.state == OrchestratorState.PAUSED:
                logger.info(f"Plan {self.current_plan.id} paused before phase '{phase_config.name}'")
                return

            plan = self._refresh_plan()
            record = plan.phases.get(phase_config.name)
            if record is not None and record.status in FINISHED_PHASE_STATUSES:
                continue

            if not self.graph.can_start(phase_config.name, plan.phase_statuses()):
                self._skip_phase(phase_config)
                continue

            try:
                await self.execute_phase(phase_config)
            except Exception as e:
                if phase_config.required or self._is_cancelled():
                    raise
                logger.warning(f"Optional phase '{phase_config.name}' failed, continuing: {e}")

        if self._is_cancelled():
            self._set_state(OrchestratorState.CANCELLED)
            return

        self._complete_plan()

    # ========================================================================
    # PHASES
    # ========================================================================

    async def execute_phase(self, phase_config: PhaseConfig) -> Any:
        """
        Execute a single phase and record the outcome.

        Args:
            phase_config: Phase configuration

        Returns:
            Phase output

        Raises:
            Exception: The phase failure, after recording it
        """
        name = phase_config.name
        self.current_phase = name
        if self.state != OrchestratorState.EXECUTING:
            self._set_state(OrchestratorState.EXECUTING)

        self.store.update_phase(self.current_plan.id, name, {
            "status": PhaseStatus.ACTIVE,
            "role": phase_config.role,
            "started_at": utc_now(),
            "error": None,
        })

        logger.info(f"Phase '{name}' started (role={phase_config.role})")
        self._emit(OrchestratorEvent.PHASE_START, phase=name, role=phase_config.role,
                   plan=self.current_plan)

        try:
            if phase_config.kind == PhaseKind.TASKS:
                output = await self.execute_task_phase(phase_config)
            elif phase_config.kind == PhaseKind.ARCHIVE:
                return await self._execute_archive_phase(phase_config)
            else:
                output = await self._execute_agent_phase(phase_config)

            self._complete_phase(name, output)
            return output

        except Exception as e:
            self._mark_phase_failed(name, e)
            raise

    async def _execute_agent_phase(self, phase_config: PhaseConfig) -> Any:
        """Single executor call bounded by the phase timeout."""
        plan = self._refresh_plan()

        request = ExecutionRequest(
            role=phase_config.role,
            phase=phase_config.name,
            instructions=phase_config.instructions,
            query=plan.query,
            context=self.build_phase_context(phase_config, plan),
            cancellation=self.cancellation,
        )

        return await self._call_executor(request, phase_config.timeout, f"phase {phase_config.name}")

    async def _execute_archive_phase(self, phase_config: PhaseConfig) -> Dict[str, Any]:
        """
        Finalize the plan and move it into the archive area.

        The phase and plan are marked completed before the move because the
        live document is gone afterwards.
        """
        if not self.auto_archive:
            output = {"archived": False, "reason": "auto_archive disabled"}
            self._complete_phase(phase_config.name, output)
            return output

        plan_id = self.current_plan.id
        output = {"archived": True, "path": str(self.store.get_archive_path(plan_id))}

        self._complete_phase(phase_config.name, output)
        self._finalize_plan()
        self._archived_path = self.store.archive(plan_id)

        return output

    def build_phase_context(self, phase_config: PhaseConfig, plan: Optional[Plan] = None) -> Dict[str, Any]:
        """
        Context for a phase from persisted outputs of its completed prerequisites.

        Args:
            phase_config: Phase configuration
            plan: Plan snapshot (reloaded from the store if None)

        Returns:
            Dict with plan_id, query, previous_phases and, once tasks exist, tasks
        """
        plan = plan or self._refresh_plan()

        context = {
            "plan_id": plan.id,
            "query": plan.query,
            "previous_phases": {},
        }

        for dep in phase_config.dependencies:
            record = plan.phases.get(dep)
            if record is not None and record.status == PhaseStatus.COMPLETED:
                context["previous_phases"][dep] = record.output

        if plan.tasks:
            context["tasks"] = [task.model_dump(mode="json") for task in plan.tasks]

        return context

    # ========================================================================
    # TASKS
    # ========================================================================

    async def execute_task_phase(self, phase_config: Optional[PhaseConfig] = None) -> Dict[str, List[str]]:
        """
        Run the tasks produced by the plan phase.

        Groups run one after another; tasks in a group run concurrently and
        a failing task never stops its siblings.

        Args:
            phase_config: The execute phase (supplies the default task timeout)

        Returns:
            {"completed": [...], "failed": [...], "skipped": [...]} task ids

        Raises:
            PlanValidationError: If the plan phase produced no tasks
            TaskFailuresError: If a task failed and the policy is PROPAGATE
        """
        plan = self._refresh_plan()
        source = plan.phases.get(self.graph.task_source)
        task_plan = TaskPlan.from_output(source.output if source is not None else None)

        timeout = self.task_timeout
        if timeout is None and phase_config is not None:
            timeout = phase_config.timeout

        groups = task_plan.groups()
        result = TaskPhaseResult()

        logger.info(f"Executing {len(task_plan.tasks)} tasks in {len(groups)} group(s)")

        for group in groups:
            if self._is_cancelled():
                result.skipped.extend(group)
                continue

            outcomes = await asyncio.gather(
                *(self._run_planned_task(task_plan, task_id, timeout) for task_id in group),
                return_exceptions=True,
            )

            for task_id, outcome in zip(group, outcomes):
                if isinstance(outcome, BaseException):
                    result.failed.append(task_id)
                else:
                    result.completed.append(task_id)

        unscheduled = task_plan.unscheduled(groups)
        if unscheduled:
            logger.warning(f"Tasks in no execution group were not run: {', '.join(unscheduled)}")
            result.skipped.extend(unscheduled)

        output = result.model_dump()

        logger.info(
            f"Task phase: {len(result.completed)} completed, "
            f"{len(result.failed)} failed, {len(result.skipped)} skipped"
        )

        if result.has_failures and self.task_failure_policy == TaskFailurePolicy.PROPAGATE:
            if phase_config is not None:
                self.phase_outputs[phase_config.name] = output
                self.store.update_phase(self.current_plan.id, phase_config.name, {"output": output})
            raise TaskFailuresError(result.failed)

        return output

    async def _run_planned_task(self, task_plan: TaskPlan, task_id: str, timeout: Optional[float]) -> Any:
        spec = task_plan.get_task(task_id)
        if spec is None:
            logger.warning(f"Parallel group references unknown task: {task_id}")
            raise TaskNotFoundError(task_id)
        return await self.execute_task(spec, timeout=timeout)

    async def execute_task(self, task: Union[TaskRecord, TaskSpec, Dict[str, Any]],
                           timeout: Optional[float] = None) -> Any:
        """
        Execute one task and record its outcome.

        Args:
            task: Task to run (added to the plan unless its id already exists)
            timeout: Budget in seconds (task_timeout if None)

        Returns:
            Executor output

        Raises:
            Exception: The task failure, after recording it
        """
        if task is None:
            raise TaskNotFoundError("<missing>")
        if isinstance(task, TaskSpec):
            record = task.to_record()
        elif isinstance(task, dict):
            record = TaskSpec.model_validate(task).to_record()
        else:
            record = task

        plan_id = self.current_plan.id
        plan = self._refresh_plan()

        if record.id and plan.get_task(record.id) is not None:
            task_id = record.id
        else:
            plan = self.store.add_task(plan_id, record)
            task_id = plan.tasks[-1].id

        role = self.graph.resolve_task_role(record.role, record.type, record.description)
        plan = self.store.update_task(plan_id, task_id, {
            "status": TaskStatus.IN_PROGRESS,
            "role": role,
            "error": None,
        })
        stored = plan.get_task(task_id)

        self._emit(OrchestratorEvent.TASK_START, task=stored, role=role, plan=self.current_plan)

        try:
            if self.cancellation is not None:
                self.cancellation.raise_if_cancelled()

            request = ExecutionRequest(
                role=role,
                task=stored,
                query=stored.description,
                context={
                    "plan_id": plan_id,
                    "task_id": task_id,
                    "previous_outputs": plan.completed_phase_outputs(),
                },
                cancellation=self.cancellation,
            )
            output = await self._call_executor(
                request,
                timeout if timeout is not None else self.task_timeout,
                f"task {task_id}",
            )
            self.store.update_task(plan_id, task_id, {
                "status": TaskStatus.COMPLETED,
                "output": output,
            })
        except Exception as e:
            self.store.update_task(plan_id, task_id, {
                "status": TaskStatus.FAILED,
                "error": _error_message(e),
            })
            logger.warning(f"Task {task_id} failed: {_error_message(e)}")
            self._emit(OrchestratorEvent.TASK_FAILED, task=stored, error=e, plan=self.current_plan)
            raise

        self._emit(OrchestratorEvent.TASK_COMPLETE, task=stored, output=output, plan=self.current_plan)

        return output

    async def _call_executor(self, request: ExecutionRequest, timeout: Optional[float], label: str) -> Any:
        """Invoke the executor, raced against the timeout."""
        try:
            return await asyncio.wait_for(invoke_executor(self.executor, request), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise PhaseTimeoutError(label, timeout) from e
        except PlanningError:
            raise
        except Exception as e:
            raise ExecutionError(_error_message(e)) from e

    # ========================================================================
    # RECORDING
    # ========================================================================

    def _complete_phase(self, phase_name: str, output: Any):
        self.phase_outputs[phase_name] = output
        self.store.update_phase(self.current_plan.id, phase_name, {
            "status": PhaseStatus.COMPLETED,
            "completed_at": utc_now(),
            "output": output,
            "error": None,
        })

        logger.info(f"Phase '{phase_name}' completed")
        self._emit(OrchestratorEvent.PHASE_COMPLETE, phase=phase_name, output=output,
                   plan=self.current_plan)

    def _mark_phase_failed(self, phase_name: str, error: Exception):
        if self._archived_path is not None:
            return

        self.store.update_phase(self.current_plan.id, phase_name, {
            "status": PhaseStatus.FAILED,
            "completed_at": utc_now(),
            "error": _error_message(error),
        })

        logger.error(f"Phase '{phase_name}' failed: {_error_message(error)}")
        self._emit(OrchestratorEvent.PHASE_FAILED, phase=phase_name, error=error,
                   plan=self.current_plan)

    def _skip_phase(self, phase_config: PhaseConfig):
        self.store.update_phase(self.current_plan.id, phase_config.name, {
            "status": PhaseStatus.SKIPPED,
        })
        logger.info(f"Phase '{phase_config.name}' skipped: prerequisites not completed")
        self._emit(OrchestratorEvent.PHASE_SKIPPED, phase=phase_config.name, plan=self.current_plan)

    def _finalize_plan(self):
        """Mark the stored plan completed and attach the collected phase outputs."""
        plan = self._refresh_plan()
        if plan.status == PlanStatus.ACTIVE:
            self.store.update_status(plan.id, PlanStatus.COMPLETED)
        self.current_plan = self.store.add_output(plan.id, "phase_outputs", dict(self.phase_outputs))

    def _complete_plan(self):
        if self._archived_path is None:
            self._finalize_plan()

        self._set_state(OrchestratorState.COMPLETED)
        logger.info(f"Plan {self.current_plan.id} completed")
        self._emit(OrchestratorEvent.PLAN_COMPLETE, plan=self.current_plan)

    def _fail_plan(self, error: Exception):
        self._set_state(OrchestratorState.FAILED)

        if self.current_plan is not None and self._archived_path is None:
            try:
                plan = self.store.load(self.current_plan.id)
                if plan is not None and plan.status == PlanStatus.ACTIVE:
                    self.current_plan = self.store.update_status(plan.id, PlanStatus.FAILED)
            except (PlanningError, OSError):
                logger.exception(f"Could not mark plan {self.current_plan.id} failed")

        plan_id = self.current_plan.id if self.current_plan is not None else None
        logger.error(f"Plan {plan_id} failed: {_error_message(error)}")
        self._emit(OrchestratorEvent.ERROR, error=error, plan=self.current_plan)

    def _refresh_plan(self) -> Plan:
        plan = self.store.load(self.current_plan.id)
        if plan is None:
            raise PlanNotFoundError(self.current_plan.id)
        self.current_plan = plan
        return plan

    def _snapshot(self) -> Optional[Plan]:
        """Latest stored copy of the current plan, live or archived."""
        if self.current_plan is None:
            return None
        if self._archived_path is not None:
            plan = self.store.load_archived(self.current_plan.id)
        else:
            plan = self.store.load(self.current_plan.id)
        if plan is not None:
            self.current_plan = plan
        return self.current_plan

    def _is_cancelled(self) -> bool:
        return self.cancellation is not None and self.cancellation.cancelled

    # ========================================================================
    # CONTROL
    # ========================================================================

    async def cancel(self):
        """
        Cancel the current plan.

        Signals the shared token and marks the plan cancelled. Work in flight
        stops only if its executor observes the token.
        """
        if self.cancellation is not None:
            self.cancellation.cancel()

        if self.current_plan is not None and self._archived_path is None:
            plan = self.store.load(self.current_plan.id)
            if plan is not None and plan.status == PlanStatus.ACTIVE:
                self.current_plan = self.store.update_status(plan.id, PlanStatus.CANCELLED)
                logger.info(f"Plan {plan.id} cancelled")

        self._set_state(OrchestratorState.CANCELLED)

    def pause(self):
        """Pause at the next phase boundary; only while executing."""
        if self.state == OrchestratorState.EXECUTING:
            self._set_state(OrchestratorState.PAUSED)

    async def resume(self) -> Optional[Plan]:
        """
        Resume a paused plan.

        Re-scans the pipeline from the top; finished phases are passed over.

        Returns:
            Plan snapshot, or None if the orchestrator was not paused
        """
        if self.state != OrchestratorState.PAUSED:
            return None

        self._set_state(OrchestratorState.EXECUTING)

        # loop still finishing the phase that was running when paused
        if self._running:
            return self.current_plan

        return await self._drive()

    def get_status(self) -> Dict[str, Any]:
        """Current state, plan id, phase and outputs."""
        return {
            "state": self.state.value,
            "plan_id": self.current_plan.id if self.current_plan is not None else None,
            "current_phase": self.current_phase,
            "phase_outputs": dict(self.phase_outputs),
            "plan": self.current_plan,
        }

    def reset(self):
        """Drop the current plan and return to IDLE."""
        if self.cancellation is not None:
            self.cancellation.cancel("Orchestrator reset")

        self.current_plan = None
        self.current_phase = None
        self.cancellation = None
        self.phase_outputs = {}
        self._archived_path = None
        self._set_state(OrchestratorState.IDLE)


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__
