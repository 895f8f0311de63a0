"""
File-backed plan persistence.

One JSON document per plan:

    <storage_dir>/<plan_id>.json
    <storage_dir>/archive/<plan_id>.json

PlanStore is the single writer of plan state. Every mutation loads the full
document, applies a partial update and rewrites the whole file; nothing is
persisted field by field. There is no locking: one orchestrator per plan.
"""

import json
import logging
import os
import time
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from hydra_planning.core.errors import (
    InvalidTransitionError,
    PhaseNotFoundError,
    PlanNotFoundError,
    PlanValidationError,
    StorageError,
    TaskNotFoundError,
)
from hydra_planning.core.phases import PhaseGraph
from hydra_planning.models.plan import (
    ALLOWED_STATUS_TRANSITIONS,
    Plan,
    PhaseRecord,
    PlanStatus,
    TaskRecord,
    TaskStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_DIR = Path(".hydra") / "plans"
ARCHIVE_DIR_NAME = "archive"


class PlanStore:
    """
    Durable store for plan documents.

    Example:
        ```python
        store = PlanStore(storage_dir="/tmp/plans")
        plan = store.create("add dark mode toggle")
        store.update_phase(plan.id, "speculate", {"status": "active"})
        store.archive(plan.id)
        ```
    """

    def __init__(
        self,
        storage_dir: Optional[Union[str, Path]] = None,
        graph: Optional[PhaseGraph] = None
    ):
        """
        Initialize plan store.

        Args:
            storage_dir: Directory for plan documents (default: <cwd>/.hydra/plans)
            graph: Phase graph used to seed new plans
        """
        self.storage_dir = Path(storage_dir) if storage_dir else Path.cwd() / DEFAULT_STORAGE_DIR
        self.archive_dir = self.storage_dir / ARCHIVE_DIR_NAME
        self.graph = graph or PhaseGraph()

    # ========================================================================
    # PATHS
    # ========================================================================

    def ensure_storage_dir(self):
        """Create the storage directory if needed."""
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def generate_plan_id(self) -> str:
        """Unique plan id: plan-<ms timestamp hex>-<random hex>."""
        timestamp = format(int(time.time() * 1000), "x")
        return f"plan-{timestamp}-{uuid.uuid4().hex[:6]}"

    def get_plan_path(self, plan_id: str) -> Path:
        return self.storage_dir / f"{plan_id}.json"

    def get_archive_path(self, plan_id: str) -> Path:
        return self.archive_dir / f"{plan_id}.json"

    # ========================================================================
    # DOCUMENT I/O
    # ========================================================================

    def _write(self, path: Path, plan: Plan):
        """Write a document atomically (temp file + rename)."""
        data = plan.to_dict()
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)

    def _read(self, path: Path) -> Optional[Plan]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read plan document {path}: {e}") from e

        try:
            return Plan.from_dict(data)
        except ValidationError as e:
            raise StorageError(f"Invalid plan document {path}: {e}") from e

    def _require(self, plan_id: str) -> Plan:
        plan = self.load(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    # ========================================================================
    # CRUD
    # ========================================================================

    def create(self, query: str, metadata: Optional[Dict[str, Any]] = None) -> Plan:
        """
        Create and persist a new plan.

        Args:
            query: User request
            metadata: Additional metadata

        Returns:
            Plan with every configured phase pending
        """
        self.ensure_storage_dir()

        now = utc_now()
        plan = Plan(
            id=self.generate_plan_id(),
            query=query,
            created_at=now,
            updated_at=now,
            phases={
                name: PhaseRecord(status=status)
                for name, status in self.graph.initial_statuses().items()
            },
            metadata={
                **(metadata or {}),
                "estimated_tokens": 0,
                "actual_tokens": 0,
            },
        )

        self.save(plan)
        logger.info(f"Created plan {plan.id}: '{query}'")
        return plan

    def save(self, plan: Plan, touch: bool = True):
        """
        Overwrite the plan document.

        Args:
            plan: Plan to persist
            touch: Stamp updated_at with the current time
        """
        self.ensure_storage_dir()
        if touch:
            plan.updated_at = utc_now()
        self._write(self.get_plan_path(plan.id), plan)
        logger.debug(f"Saved plan {plan.id} (status={plan.status.value})")

    def load(self, plan_id: str) -> Optional[Plan]:
        """
        Load a live plan.

        Returns:
            Plan, or None if no such document exists

        Raises:
            StorageError: If the document exists but cannot be parsed
        """
        return self._read(self.get_plan_path(plan_id))

    def load_archived(self, plan_id: str) -> Optional[Plan]:
        """Load a plan from the archive area, or None."""
        return self._read(self.get_archive_path(plan_id))

    def delete(self, plan_id: str) -> bool:
        """
        Delete a live plan document.

        Returns:
            True if deleted, False if it did not exist
        """
        try:
            self.get_plan_path(plan_id).unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Deleted plan {plan_id}")
        return True

    def list(
        self,
        status: Optional[Union[PlanStatus, str]] = None,
        limit: Optional[int] = None
    ) -> List[Plan]:
        """
        List live plans, newest first.

        Args:
            status: Only plans with this status
            limit: Maximum number of plans

        Returns:
            Plans sorted by created_at descending; unreadable documents are skipped
        """
        if not self.storage_dir.exists():
            return []

        wanted = PlanStatus(status) if status is not None else None
        plans = []

        for path in self.storage_dir.glob("*.json"):
            try:
                plan = self._read(path)
            except StorageError as e:
                logger.warning(f"Skipping unreadable plan document: {e}")
                continue

            if plan is None:
                continue
            if wanted is None or plan.status == wanted:
                plans.append(plan)

        plans.sort(key=lambda p: p.created_at, reverse=True)

        if limit is not None:
            return plans[:limit]
        return plans

    # ========================================================================
    # PARTIAL UPDATES
    # ========================================================================

    def update_phase(self, plan_id: str, phase_name: str, updates: Dict[str, Any]) -> Plan:
        """
        Merge fields into a phase record.

        Raises:
            PlanNotFoundError: Unknown plan
            PhaseNotFoundError: Unknown phase name
        """
        plan = self._require(plan_id)

        record = plan.phases.get(phase_name)
        if record is None:
            raise PhaseNotFoundError(phase_name)

        plan.phases[phase_name] = PhaseRecord.model_validate({**record.model_dump(), **updates})

        self.save(plan)
        return plan

    def update_status(self, plan_id: str, status: Union[PlanStatus, str]) -> Plan:
        """
        Change the plan lifecycle status.

        Raises:
            PlanNotFoundError: Unknown plan
            InvalidTransitionError: If the change would move the lifecycle backwards
        """
        plan = self._require(plan_id)
        target = PlanStatus(status)

        if target != plan.status:
            if target not in ALLOWED_STATUS_TRANSITIONS[plan.status]:
                raise InvalidTransitionError(plan_id, plan.status.value, target.value)
            plan.status = target
            logger.info(f"Plan {plan_id} status -> {target.value}")

        self.save(plan)
        return plan

    def add_task(self, plan_id: str, task: Union[TaskRecord, Dict[str, Any]]) -> Plan:
        """
        Append a task to the plan.

        Assigns `task-<n+1>` when the task has no id, stamps created_at and
        defaults the status to pending.

        Raises:
            PlanNotFoundError: Unknown plan
            PlanValidationError: If a task with the same id already exists
        """
        plan = self._require(plan_id)

        record = task.model_copy(deep=True) if isinstance(task, TaskRecord) else TaskRecord.model_validate(task)

        if not record.id:
            record.id = f"task-{len(plan.tasks) + 1}"
        if plan.get_task(record.id) is not None:
            raise PlanValidationError(f"Duplicate task id in {plan_id}: {record.id}")

        record.created_at = utc_now()
        record.status = record.status or TaskStatus.PENDING

        plan.tasks.append(record)

        self.save(plan)
        return plan

    def update_task(self, plan_id: str, task_id: str, updates: Dict[str, Any]) -> Plan:
        """
        Merge fields into a task record, stamping updated_at.

        Raises:
            PlanNotFoundError: Unknown plan
            TaskNotFoundError: Unknown task id
        """
        plan = self._require(plan_id)

        for index, task in enumerate(plan.tasks):
            if task.id == task_id:
                plan.tasks[index] = TaskRecord.model_validate({
                    **task.model_dump(),
                    **updates,
                    "id": task_id,
                    "updated_at": utc_now(),
                })
                break
        else:
            raise TaskNotFoundError(task_id)

        self.save(plan)
        return plan

    def add_output(self, plan_id: str, key: str, value: Any) -> Plan:
        """Store a named output on the plan."""
        plan = self._require(plan_id)
        plan.outputs[key] = value
        self.save(plan)
        return plan

    # ========================================================================
    # ARCHIVAL
    # ========================================================================

    def archive(self, plan_id: str) -> Path:
        """
        Move a plan into the archive area.

        The archived copy gets status archived and archived_at; the live
        document is deleted.

        Returns:
            Path of the archived document

        Raises:
            PlanNotFoundError: Unknown plan
        """
        plan = self._require(plan_id)

        plan.status = PlanStatus.ARCHIVED
        plan.archived_at = utc_now()

        archive_path = self.get_archive_path(plan_id)
        self._write(archive_path, plan)
        self.delete(plan_id)

        logger.info(f"Archived plan {plan_id} to {archive_path}")
        return archive_path

    def get_active_plan(self) -> Optional[Plan]:
        """Most recently created active plan, or None."""
        plans = self.list(status=PlanStatus.ACTIVE, limit=1)
        return plans[0] if plans else None

    def cleanup(self, max_age_days: float = 7) -> int:
        """
        Archive completed plans not updated within max_age_days.

        Returns:
            Number of plans archived
        """
        cutoff = utc_now() - timedelta(days=max_age_days)
        cleaned = 0

        for plan in self.list(status=PlanStatus.COMPLETED):
            if plan.updated_at < cutoff:
                self.archive(plan.id)
                cleaned += 1

        if cleaned:
            logger.info(f"Cleanup archived {cleaned} completed plan(s) older than {max_age_days} days")
        return cleaned
