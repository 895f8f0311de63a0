"""
Unit tests for wiring helpers and logging setup.
"""

import logging
from datetime import timedelta

import pytest

from hydra_planning.config import PlanningConfig
from hydra_planning.core.logging import LOGGER_NAME, setup_logging
from hydra_planning.core.phases import PhaseConfig, PhaseGraph
from hydra_planning.factory import build_orchestrator, init_planning, shutdown_planning
from hydra_planning.models.plan import PlanStatus, utc_now
from hydra_planning.orchestration.executor import placeholder_executor
from hydra_planning.orchestration.orchestrator import OrchestratorState, TaskFailurePolicy
from hydra_planning.storage.plan_store import PlanStore


@pytest.fixture
def config(storage_dir):
    return PlanningConfig(
        storage_dir=storage_dir,
        auto_archive=False,
        task_failure_policy="propagate",
        task_timeout=3,
    )


@pytest.fixture
def package_logger():
    logger = logging.getLogger(LOGGER_NAME)
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def default_planning():
    shutdown_planning()
    yield
    shutdown_planning()


class TestBuildOrchestrator:
    """Test building from configuration."""

    def test_settings_applied(self, config, storage_dir):
        orchestrator = build_orchestrator(config=config)

        assert orchestrator.store.storage_dir == storage_dir
        assert orchestrator.auto_archive is False
        assert orchestrator.task_failure_policy == TaskFailurePolicy.PROPAGATE
        assert orchestrator.task_timeout == 3
        assert orchestrator.executor is placeholder_executor

    def test_custom_graph(self, config):
        graph = PhaseGraph([PhaseConfig(name="only")])

        orchestrator = build_orchestrator(config=config, graph=graph)

        assert orchestrator.graph is graph
        assert orchestrator.store.graph is graph

    def test_existing_store(self, config, store):
        orchestrator = build_orchestrator(config=config, store=store)

        assert orchestrator.store is store

    def test_config_from_environment(self, monkeypatch, storage_dir):
        monkeypatch.setenv("HYDRA_PLANNING_STORAGE_DIR", str(storage_dir))

        orchestrator = build_orchestrator()

        assert orchestrator.store.storage_dir == storage_dir


class TestInitPlanning:
    """Test the default instance."""

    def test_created_once(self, config, default_planning):
        store, orchestrator = init_planning(config=config)

        assert init_planning(config=config) == (store, orchestrator)

    def test_archives_stale_completed_plans(self, config, default_planning, storage_dir):
        seed = PlanStore(storage_dir=storage_dir)
        stale = seed.create("old request")
        seed.update_status(stale.id, PlanStatus.COMPLETED)
        plan = seed.load(stale.id)
        plan.updated_at = utc_now() - timedelta(days=config.cleanup_max_age_days + 1)
        seed.save(plan, touch=False)
        fresh = seed.create("new request")

        store, _ = init_planning(config=config)

        assert store.load(stale.id) is None
        assert store.load_archived(stale.id) is not None
        assert store.load(fresh.id).status == PlanStatus.ACTIVE

    def test_shutdown_resets(self, config, default_planning):
        _, orchestrator = init_planning(config=config)
        orchestrator.state = OrchestratorState.COMPLETED

        shutdown_planning()

        assert orchestrator.state == OrchestratorState.IDLE
        assert init_planning(config=config)[1] is not orchestrator

    def test_configure_logging(self, config, default_planning, package_logger):
        config.log_level = "DEBUG"

        init_planning(config=config, configure_logging=True)

        assert package_logger.level == logging.DEBUG
        assert len(package_logger.handlers) == 1


class TestSetupLogging:
    """Test logging configuration."""

    def test_console_handler(self, package_logger):
        logger = setup_logging("warning")

        assert logger is package_logger
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_repeat_calls_replace_handlers(self, package_logger):
        setup_logging()
        setup_logging()

        assert len(package_logger.handlers) == 1

    def test_log_file(self, package_logger, tmp_path):
        log_file = tmp_path / "logs" / "planning.log"

        setup_logging(logging.INFO, log_file=log_file)
        logging.getLogger("hydra_planning.storage").info("stored plan")
        for handler in package_logger.handlers:
            handler.flush()

        assert len(package_logger.handlers) == 2
        assert "stored plan" in log_file.read_text()
