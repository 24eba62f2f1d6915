# src/main.py — v1
"""CLI entry point — trigger, inspect and operate the site pipeline.

Usage:
    sitepipe trigger <commit> [--branch master] [--change-type referenceUpdated]
    sitepipe status <execution_id>
    sitepipe list [--status Running]
    sitepipe approvals
    sitepipe approve <request_id> --actor alice [--comment ...]
    sitepipe reject <request_id> --actor alice [--comment ...]
    sitepipe cancel <execution_id>
    sitepipe recover
    sitepipe sweep
    sitepipe audit <execution_id> [--export trail.jsonl]
    sitepipe serve
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from sitepipe.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    from sitepipe.config.settings import ConfigurationError, load_settings
    from sitepipe.core.errors import PipelineError
    from sitepipe.logging.logger import setup_logging

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )

    try:
        return asyncio.run(_run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except PipelineError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


async def _run(args: argparse.Namespace, settings) -> int:
    from sitepipe.api.facade import PipelineService

    service = PipelineService.from_settings(settings)
    try:
        return await args.func(service, args)
    finally:
        await service.close()


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="sitepipe",
        description=f"sitepipe v{__version__} — source, build, approve, deploy",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- trigger ---
    p_trigger = subparsers.add_parser("trigger", help="Deliver a source change")
    p_trigger.add_argument("commit", help="Commit id")
    p_trigger.add_argument("--branch", default="master", help="Branch (default: master)")
    p_trigger.add_argument(
        "--change-type", default="referenceUpdated",
        choices=["referenceCreated", "referenceUpdated", "referenceDeleted"],
        help="Reference change type (default: referenceUpdated)",
    )
    p_trigger.add_argument(
        "--no-wait", action="store_true",
        help="Return right after the execution is created",
    )
    p_trigger.set_defaults(func=_cmd_trigger)

    # --- status ---
    p_status = subparsers.add_parser("status", help="Show one execution")
    p_status.add_argument("execution_id")
    p_status.set_defaults(func=_cmd_status)

    # --- list ---
    p_list = subparsers.add_parser("list", help="List executions")
    p_list.add_argument(
        "--status", default=None,
        choices=["Pending", "Running", "Succeeded", "Failed", "Cancelled"],
    )
    p_list.set_defaults(func=_cmd_list)

    # --- approvals ---
    p_approvals = subparsers.add_parser("approvals", help="List pending approvals")
    p_approvals.add_argument("--all", action="store_true", help="Include resolved requests")
    p_approvals.set_defaults(func=_cmd_approvals)

    # --- approve / reject ---
    for name, decision in (("approve", "Approved"), ("reject", "Rejected")):
        p = subparsers.add_parser(name, help=f"{name.capitalize()} a pending request")
        p.add_argument("request_id")
        p.add_argument("--actor", required=True, help="Who decides")
        p.add_argument("--comment", default=None)
        p.set_defaults(func=_cmd_decide, decision=decision)

    # --- cancel ---
    p_cancel = subparsers.add_parser("cancel", help="Cancel an execution")
    p_cancel.add_argument("execution_id")
    p_cancel.set_defaults(func=_cmd_cancel)

    # --- recover ---
    p_recover = subparsers.add_parser("recover", help="Re-attach to unfinished executions")
    p_recover.set_defaults(func=_cmd_recover)

    # --- sweep ---
    p_sweep = subparsers.add_parser("sweep", help="Fail stages past their deadline")
    p_sweep.set_defaults(func=_cmd_sweep)

    # --- audit ---
    p_audit = subparsers.add_parser("audit", help="Show an execution's audit trail")
    p_audit.add_argument("execution_id")
    p_audit.add_argument("--export", type=Path, default=None, help="Write JSON Lines file")
    p_audit.set_defaults(func=_cmd_audit)

    # --- serve ---
    p_serve = subparsers.add_parser("serve", help="Recover, then sweep timeouts until stopped")
    p_serve.set_defaults(func=_cmd_serve)

    return parser


async def _cmd_trigger(service, args: argparse.Namespace) -> int:
    event, execution_id = await service.trigger(args.commit, args.branch, args.change_type)
    if event is None:
        print(f"Ignored: {args.change_type} on {args.branch} does not trigger the pipeline")
        return 0
    if event.duplicate:
        print(f"Duplicate trigger for {event.dedupe_key} (execution {execution_id})")
        return 0

    print(f"Execution {execution_id} created for {event.branch}@{event.commit_ref}")
    if not args.no_wait:
        await service.wait_idle()
        _print_summary(await service.summary(execution_id))
    return 0


async def _cmd_status(service, args: argparse.Namespace) -> int:
    _print_summary(await service.summary(args.execution_id))
    return 0


async def _cmd_list(service, args: argparse.Namespace) -> int:
    summaries = await service.list_executions(args.status)
    if not summaries:
        print("No executions")
    for summary in summaries:
        print(summary.one_line())
    return 0


async def _cmd_approvals(service, args: argparse.Namespace) -> int:
    requests = await service.list_approvals(pending_only=not args.all)
    if not requests:
        print("No approval requests")
    for request in requests:
        deadline = request.deadline.isoformat() if request.deadline else "none"
        print(
            f"{request.request_id}  exec {request.execution_id}  {request.stage_name}  "
            f"{request.status}  deadline={deadline}"
        )
    return 0


async def _cmd_decide(service, args: argparse.Namespace) -> int:
    execution = await service.decide(
        args.request_id, args.decision, args.actor, args.comment,
    )
    print(f"Request {args.request_id} {args.decision} by {args.actor}")
    await service.wait_idle()
    _print_summary(await service.summary(execution.execution_id))
    return 0


async def _cmd_cancel(service, args: argparse.Namespace) -> int:
    execution = await service.cancel(args.execution_id)
    print(f"Execution {execution.execution_id} {execution.status}")
    return 0


async def _cmd_recover(service, args: argparse.Namespace) -> int:
    recovered = await service.recover()
    print(f"Re-attached {len(recovered)} execution(s)")
    await service.wait_idle()
    return 0


async def _cmd_sweep(service, args: argparse.Namespace) -> int:
    failed = await service.sweep()
    print(f"Timed out {len(failed)} execution(s)" + (f": {', '.join(failed)}" if failed else ""))
    return 0


async def _cmd_audit(service, args: argparse.Namespace) -> int:
    entries = await service.audit(args.execution_id, export=args.export)
    for entry in entries:
        subject = entry.stage_name or entry.scope
        reason = f" [{entry.reason}]" if entry.reason else ""
        print(
            f"{entry.sequence:>3}  {entry.timestamp:%Y-%m-%d %H:%M:%S}  "
            f"{subject:<10} {entry.from_status or '-'} -> {entry.to_status}{reason}"
        )
    if args.export is not None:
        print(f"Exported to {args.export}")
    return 0


async def _cmd_serve(service, args: argparse.Namespace) -> int:
    await service.recover()
    sweeper = service.sweeper()
    sweeper.start()
    logger.info("Serving; press Ctrl+C to stop")
    try:
        await asyncio.Event().wait()
    finally:
        await sweeper.stop()
    return 0


def _print_summary(summary) -> None:
    """Print a human-readable ExecutionSummary."""
    print(f"\nExecution {summary.execution_id}:")
    print(f"  Commit:   {summary.branch}@{summary.commit_ref}")
    print(f"  Status:   {summary.status}")
    if summary.failure_reason:
        detail = f" — {summary.failure_detail}" if summary.failure_detail else ""
        print(f"  Failure:  {summary.failure_reason}{detail}")
    for stage in summary.stages:
        extra = ""
        if stage.approval_request_id and stage.status == "AwaitingApproval":
            extra = f"  request={stage.approval_request_id}"
        elif stage.outputs:
            extra = f"  -> {', '.join(stage.outputs)}"
        elif stage.failure_reason:
            extra = f"  ({stage.failure_reason})"
        print(f"    {stage.name:<10} {stage.status:<16}{extra}")


if __name__ == "__main__":
    sys.exit(main())
