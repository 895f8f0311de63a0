"""
Application wiring for the planning system.

The core never reaches for shared instances; this module is the one place a
default store/orchestrator pair may live, for applications that want one.
"""

import logging
from typing import Optional, Tuple

from hydra_planning.config import PlanningConfig, get_config
from hydra_planning.core.logging import setup_logging
from hydra_planning.core.phases import PhaseGraph
from hydra_planning.orchestration.executor import Executor
from hydra_planning.orchestration.orchestrator import PlanOrchestrator
from hydra_planning.storage.plan_store import PlanStore

logger = logging.getLogger(__name__)

_default: Optional[Tuple[PlanStore, PlanOrchestrator]] = None


def build_orchestrator(
    config: Optional[PlanningConfig] = None,
    executor: Optional[Executor] = None,
    store: Optional[PlanStore] = None,
    graph: Optional[PhaseGraph] = None
) -> PlanOrchestrator:
    """
    Build an orchestrator from configuration.

    Args:
        config: Settings (get_config() if None)
        executor: Executor callable (placeholder if None)
        store: Plan store (built from config.storage_dir if None)
        graph: Phase graph (default pipeline if None)

    Returns:
        PlanOrchestrator

    Example:
        ```python
        from hydra_planning import build_orchestrator

        orchestrator = build_orchestrator(executor=my_executor)
        plan = await orchestrator.start_plan("add dark mode toggle")
        ```
    """
    config = config or get_config()

    if store is None:
        store = PlanStore(storage_dir=config.storage_dir, graph=graph)

    return PlanOrchestrator(
        store=store,
        executor=executor,
        graph=graph or store.graph,
        auto_archive=config.auto_archive,
        task_failure_policy=config.task_failure_policy,
        task_timeout=config.task_timeout,
    )


def init_planning(
    config: Optional[PlanningConfig] = None,
    executor: Optional[Executor] = None,
    configure_logging: bool = False
) -> Tuple[PlanStore, PlanOrchestrator]:
    """
    Create (once) the application's default store and orchestrator.

    Completed plans older than config.cleanup_max_age_days are archived
    on the first call.

    Args:
        config: Settings (get_config() if None)
        executor: Executor callable
        configure_logging: Also call setup_logging from the config

    Returns:
        (store, orchestrator)
    """
    global _default
    if _default is not None:
        return _default

    config = config or get_config()
    if configure_logging:
        setup_logging(config.log_level, config.log_file)

    orchestrator = build_orchestrator(config=config, executor=executor)
    orchestrator.store.cleanup(config.cleanup_max_age_days)
    _default = (orchestrator.store, orchestrator)

    logger.info(f"Planning initialized (storage={orchestrator.store.storage_dir})")
    return _default


def shutdown_planning():
    """Reset and forget the default orchestrator."""
    global _default
    if _default is not None:
        _default[1].reset()
    _default = None
