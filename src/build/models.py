# src/build/models.py — v1
"""Build specification and build report models.

A buildspec is the YAML document the site repository ships (or the
pipeline configures) describing how to build it::

    version: 0.2
    env:
      variables:
        NODE_ENV: production
    phases:
      install:
        commands:
          - npm install -g gatsby
      pre_build:
        commands:
          - npm install
      build:
        commands:
          - npm run build
    artifacts:
      base-directory: public
      files:
        - "**/*"
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

PHASE_ORDER: tuple[str, ...] = ("install", "pre_build", "build", "post_build")

BuildState = Literal["running", "succeeded", "failed", "timed_out", "stopped", "lost"]


class BuildPhase(BaseModel):
    commands: list[str] = Field(default_factory=list)


class BuildArtifacts(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    base_directory: str = Field(default=".", alias="base-directory")
    files: list[str] = Field(default_factory=lambda: ["**/*"])
    exclude: list[str] = Field(default_factory=list, alias="exclude-paths")


class BuildEnvVars(BaseModel):
    variables: dict[str, str] = Field(default_factory=dict)


class BuildSpec(BaseModel):
    """Parsed buildspec; opaque to the orchestrator."""

    version: str = "0.2"
    env: BuildEnvVars = Field(default_factory=BuildEnvVars)
    phases: dict[str, BuildPhase] = Field(default_factory=dict)
    artifacts: BuildArtifacts = Field(default_factory=BuildArtifacts)

    def ordered_phases(self) -> list[tuple[str, BuildPhase]]:
        """Declared phases in execution order; unknown phase names are ignored."""
        return [(name, self.phases[name]) for name in PHASE_ORDER if name in self.phases]

    @classmethod
    def from_yaml(cls, text: str) -> BuildSpec:
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError("buildspec must be a YAML mapping")
        data["version"] = str(data.get("version", "0.2"))
        return cls.model_validate(data)

    @classmethod
    def from_file(cls, path: Path) -> BuildSpec:
        return cls.from_yaml(Path(path).read_text(encoding="utf-8"))

    @classmethod
    def coerce(cls, value: Any) -> BuildSpec:
        """Accept a BuildSpec, a mapping, or YAML text (stage config values)."""
        if isinstance(value, BuildSpec):
            return value
        if isinstance(value, str):
            return cls.from_yaml(value)
        if isinstance(value, dict):
            return cls.model_validate(value)
        raise TypeError(f"Cannot build a BuildSpec from {type(value).__name__}")


class BuildReport(BaseModel):
    """Status of one build, persisted by the environment as report.json."""

    build_id: str
    status: BuildState = "running"
    phase: str | None = None
    exit_code: int | None = None
    error_kind: Literal["command", "provision", "artifacts"] | None = None
    reason: str | None = None
    started_at: datetime
    ended_at: datetime | None = None
    output_files: int = 0

    @property
    def finished(self) -> bool:
        return self.status != "running"
