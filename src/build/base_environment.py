# src/build/base_environment.py — v1
"""Abstract build environment: the containerised process compiling the site.

Builds are addressed by an opaque build id so an orchestrator restarted in
the middle of a build can re-attach to it instead of starting a new one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from sitepipe.build.models import BuildReport, BuildSpec


class BaseBuildEnvironment(ABC):
    """Unified interface for build backends."""

    @abstractmethod
    async def start(
        self,
        source_bundle: bytes,
        spec: BuildSpec,
        env: dict[str, str] | None = None,
    ) -> str:
        """Provision a workspace, start the build, return its build id."""

    @abstractmethod
    async def wait(self, build_id: str, timeout: float | None = None) -> BuildReport:
        """Wait for the build to finish. On timeout, stop it and report timed_out."""

    @abstractmethod
    async def status(self, build_id: str) -> BuildReport | None:
        """Current report, or None for an unknown build id."""

    @abstractmethod
    async def stop(self, build_id: str) -> None:
        """Best-effort stop of a running build."""

    @abstractmethod
    async def read_output(self, build_id: str) -> bytes:
        """Zip bundle of the declared output files of a succeeded build."""
