# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings: the tracked
branch, concurrency policy, and which backend serves each collaborator
(state store, artifact store, publisher, notifier, build environment).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Pipeline ===
    pipeline_name: str = "site-pipeline"
    tracked_branch: str = "master"
    concurrency_policy: Literal["queue", "reject", "parallel"] = "queue"
    max_queued: int = 1
    definition_file: Path | None = None

    # === Source ===
    source_backend: Literal["git", "directory"] = "git"
    source_path: Path = Path(".")

    # === State store ===
    state_backend: Literal["json", "sqlite", "redis"] = "json"
    state_root: Path = Path("~/.sitepipe/state")
    state_redis_url: str = ""

    # === Artifact store ===
    artifact_backend: Literal["local", "s3"] = "local"
    artifact_root: Path = Path("~/.sitepipe/artifacts")
    artifact_s3_bucket: str = ""
    artifact_s3_prefix: str = "sitepipe/"
    artifact_s3_region: str = ""
    artifact_retention_versions: int = 20

    # === Build environment ===
    build_workdir: Path = Path("~/.sitepipe/builds")
    build_timeout_minutes: int = 60
    buildspec_file: Path | None = None

    # === Approval / notification ===
    approval_timeout_hours: float = 0.0
    approval_external_link: str = ""
    approval_message: str = (
        "A new build of the site was created. Do you want to implement the changes?"
    )
    notification_backend: Literal["log", "sns"] = "log"
    notification_target: str = ""
    notification_region: str = ""

    # === Publish ===
    deploy_destination: str = ""
    staging_destination: str = ""
    deploy_acl_public_read: bool = True
    deploy_delete_removed: bool = True
    publish_region: str = ""

    # === Sweeper ===
    sweep_interval_seconds: float = 30.0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("tracked_branch")
    @classmethod
    def validate_tracked_branch(cls, v: str) -> str:  # noqa: N805
        """Branch names are compared without the refs/heads/ prefix."""
        v = v.strip()
        if v.startswith("refs/heads/"):
            v = v[len("refs/heads/"):]
        if not v:
            raise ValueError("tracked_branch must not be empty")
        return v

    @field_validator("artifact_retention_versions")
    @classmethod
    def validate_retention(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("artifact_retention_versions must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.concurrency_policy == "queue" and self.max_queued < 1:
            errors.append("MAX_QUEUED must be >= 1 when CONCURRENCY_POLICY=queue")

        if self.state_backend == "redis" and not self.state_redis_url:
            errors.append("STATE_BACKEND=redis requires STATE_REDIS_URL")

        if self.artifact_backend == "s3" and not self.artifact_s3_bucket:
            errors.append("ARTIFACT_BACKEND=s3 requires ARTIFACT_S3_BUCKET")

        if self.notification_backend == "sns" and not self.notification_target:
            errors.append("NOTIFICATION_BACKEND=sns requires NOTIFICATION_TARGET")

        if self.build_timeout_minutes < 0:
            errors.append("BUILD_TIMEOUT_MINUTES must be >= 0")

        if self.approval_timeout_hours < 0:
            errors.append("APPROVAL_TIMEOUT_HOURS must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def build_timeout_seconds(self) -> float | None:
        """Build timeout in seconds (None = unbounded)."""
        if self.build_timeout_minutes == 0:
            return None
        return self.build_timeout_minutes * 60.0

    @property
    def approval_timeout_seconds(self) -> float | None:
        """Approval deadline in seconds (None = wait indefinitely)."""
        if not self.approval_timeout_hours:
            return None
        return self.approval_timeout_hours * 3600.0


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or one-off runs).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
