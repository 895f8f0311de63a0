"""
Configuration for the planning system.

Settings come from environment variables prefixed with HYDRA_PLANNING_
(or a .env file), e.g.:

    HYDRA_PLANNING_STORAGE_DIR=/var/lib/hydra/plans
    HYDRA_PLANNING_TASK_FAILURE_POLICY=propagate
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hydra_planning.orchestration.orchestrator import TaskFailurePolicy
from hydra_planning.storage.plan_store import DEFAULT_STORAGE_DIR


class PlanningConfig(BaseSettings):
    """Planning system settings."""

    model_config = SettingsConfigDict(
        env_prefix="HYDRA_PLANNING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    storage_dir: Path = Field(default_factory=lambda: Path.cwd() / DEFAULT_STORAGE_DIR)
    auto_archive: bool = True
    cleanup_max_age_days: float = Field(default=7, gt=0)
    task_failure_policy: TaskFailurePolicy = TaskFailurePolicy.TOLERATE
    task_timeout: Optional[float] = Field(default=None, gt=0)
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


_config: Optional[PlanningConfig] = None


def get_config(reload: bool = False) -> PlanningConfig:
    """
    Get the process-wide configuration, loading it on first use.

    Args:
        reload: Re-read the environment

    Returns:
        PlanningConfig
    """
    global _config
    if _config is None or reload:
        _config = PlanningConfig()
    return _config


def reset_config():
    """Forget the cached configuration (for testing)."""
    global _config
    _config = None
