# src/build/local_environment.py — v1
"""Local build environment: runs buildspec phases as shell commands.

Each build gets its own workspace under BUILD_WORKDIR::

    <workdir>/<build_id>/src/         unpacked source bundle
    <workdir>/<build_id>/build.log    combined stdout/stderr of all commands
    <workdir>/<build_id>/report.json  BuildReport, rewritten on every change
    <workdir>/<build_id>/output.zip   packaged artifacts (on success)

A build still marked running in report.json but not owned by this process
is reported as ``lost``: the process that ran it died with it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from pathlib import Path

from sitepipe.artifacts.bundle import pack_directory, unpack
from sitepipe.build.base_environment import BaseBuildEnvironment
from sitepipe.build.models import BuildReport, BuildSpec
from sitepipe.core.models import utcnow

logger = logging.getLogger(__name__)


class LocalBuildEnvironment(BaseBuildEnvironment):
    """Run builds as subprocesses on this host."""

    def __init__(self, workdir: Path | str, shell: str | None = None) -> None:
        self._workdir = Path(workdir).expanduser()
        self._workdir.mkdir(parents=True, exist_ok=True)
        self._shell = shell
        self._tasks: dict[str, asyncio.Task[BuildReport]] = {}
        self._procs: dict[str, asyncio.subprocess.Process] = {}

    async def start(
        self,
        source_bundle: bytes,
        spec: BuildSpec,
        env: dict[str, str] | None = None,
    ) -> str:
        build_id = f"build-{uuid.uuid4().hex[:12]}"
        build_dir = self._workdir / build_id
        report = BuildReport(build_id=build_id, started_at=utcnow())

        try:
            unpack(source_bundle, build_dir / "src")
        except (OSError, ValueError) as e:
            report.status = "failed"
            report.error_kind = "provision"
            report.reason = f"Workspace provisioning failed: {e}"
            report.ended_at = utcnow()
            self._save_report(report)
            logger.error("Build %s provisioning failed: %s", build_id, e)
            return build_id

        self._save_report(report)
        build_env = {**os.environ, **spec.env.variables, **(env or {})}
        task = asyncio.create_task(self._execute(report, spec, build_env), name=build_id)
        self._tasks[build_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(build_id, None))
        logger.info("Build %s started", build_id)
        return build_id

    async def wait(self, build_id: str, timeout: float | None = None) -> BuildReport:
        task = self._tasks.get(build_id)
        if task is None:
            report = await self.status(build_id)
            if report is None:
                raise KeyError(build_id)
            return report
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            logger.warning("Build %s exceeded %.0fs, stopping", build_id, timeout or 0)
            await self._terminate(build_id, "timed_out", f"Timed out after {timeout:.0f}s")
            report = await self.status(build_id)
            if report is None:
                raise KeyError(build_id)
            return report

    async def status(self, build_id: str) -> BuildReport | None:
        path = self._workdir / build_id / "report.json"
        if not path.exists():
            return None
        report = BuildReport.model_validate_json(path.read_text(encoding="utf-8"))
        if report.status == "running" and build_id not in self._tasks:
            report.status = "lost"
            report.reason = "Build is not owned by this process"
        return report

    async def stop(self, build_id: str) -> None:
        if build_id in self._tasks:
            await self._terminate(build_id, "stopped", "Stopped on request")

    async def read_output(self, build_id: str) -> bytes:
        return (self._workdir / build_id / "output.zip").read_bytes()

    def log_path(self, build_id: str) -> Path:
        return self._workdir / build_id / "build.log"

    # --- Internals ---

    async def _execute(
        self, report: BuildReport, spec: BuildSpec, env: dict[str, str]
    ) -> BuildReport:
        build_dir = self._workdir / report.build_id
        src = build_dir / "src"
        try:
            with (build_dir / "build.log").open("ab") as log:
                for phase_name, phase in spec.ordered_phases():
                    report.phase = phase_name
                    self._save_report(report)
                    for command in phase.commands:
                        log.write(f"[{phase_name}] $ {command}\n".encode())
                        log.flush()
                        code = await self._run_command(report.build_id, command, src, env, log)
                        if code != 0:
                            return self._finish(
                                report,
                                "failed",
                                error_kind="command",
                                exit_code=code,
                                reason=f"Command exited {code} in {phase_name}: {command}",
                            )

            base = src / spec.artifacts.base_directory
            if not base.is_dir():
                return self._finish(
                    report,
                    "failed",
                    error_kind="artifacts",
                    reason=f"Artifact base-directory missing: {spec.artifacts.base_directory}",
                )
            bundle = pack_directory(base, spec.artifacts.files, spec.artifacts.exclude)
            (build_dir / "output.zip").write_bytes(bundle)
            report.output_files = sum(1 for p in base.rglob("*") if p.is_file())
            return self._finish(report, "succeeded", exit_code=0)
        except OSError as e:
            logger.exception("Build %s environment error", report.build_id)
            return self._finish(report, "failed", error_kind="provision", reason=str(e))

    async def _run_command(
        self,
        build_id: str,
        command: str,
        cwd: Path,
        env: dict[str, str],
        log,
    ) -> int:
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd),
            env=env,
            stdout=log,
            stderr=asyncio.subprocess.STDOUT,
            executable=self._shell,
        )
        self._procs[build_id] = proc
        try:
            return await proc.wait()
        finally:
            self._procs.pop(build_id, None)

    async def _terminate(self, build_id: str, status: str, reason: str) -> None:
        proc = self._procs.get(build_id)
        if proc is not None and proc.returncode is None:
            proc.kill()
        task = self._tasks.get(build_id)
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        report = await self.status(build_id)
        if report is not None and report.status in ("running", "lost"):
            self._finish(report, status, reason=reason)

    def _finish(
        self,
        report: BuildReport,
        status: str,
        error_kind: str | None = None,
        exit_code: int | None = None,
        reason: str | None = None,
    ) -> BuildReport:
        report.status = status  # type: ignore[assignment]
        report.error_kind = error_kind  # type: ignore[assignment]
        report.exit_code = exit_code
        report.reason = reason
        report.ended_at = utcnow()
        self._save_report(report)
        logger.info("Build %s %s%s", report.build_id, status, f": {reason}" if reason else "")
        return report

    def _save_report(self, report: BuildReport) -> None:
        path = self._workdir / report.build_id / "report.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(path)
