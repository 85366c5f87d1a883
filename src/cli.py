"""
siterunner command line.

Usage:
    siterunner run --workflow workflows/sample-workflow.yaml [--headless false]
    siterunner capture --site google --url https://accounts.google.com
    siterunner serve [--port 8787]
    siterunner schedule --workflow workflows/daily.yaml --time 09:00 [--install]
    siterunner openclaw --workflow workflows/daily.yaml [--exec]
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

import structlog
from dotenv import load_dotenv

from adapters.openclaw import OpenClawAdapter
from core import __version__
from core.config import RunnerConfig, load_workflow
from core.errors import FrameworkError
from core.logging import configure_logging
from orchestrator.engine import WorkflowEngine
from orchestrator.session import capture_session
from panel.server import ControlPanel
from schedule.launchd import build_launchd_job, install_launchd_job, write_launchd_job

logger = structlog.get_logger()

COMMANDS = ("run", "capture", "serve", "schedule", "openclaw")


def _bool_arg(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


def build_parser(config: RunnerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="siterunner",
        description="Run YAML-described browser workflows across sites.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    p_run = sub.add_parser("run", help="Execute a workflow")
    p_run.add_argument("--workflow", default=config.workflow, help="Path to workflow yaml")
    p_run.add_argument("--output", default=None, help="Output root (default: settings.outputDir)")
    p_run.add_argument("--headless", type=_bool_arg, default=None, help="true|false")
    policy = p_run.add_mutually_exclusive_group()
    policy.add_argument(
        "--continue-on-failure", dest="continue_on_failure",
        action="store_const", const=True, default=None,
        help="Keep running remaining sites after a failure",
    )
    policy.add_argument(
        "--stop-on-failure", dest="continue_on_failure",
        action="store_const", const=False,
        help="Abort the run at the first failed site",
    )
    p_run.add_argument("--openclaw", action="store_true", help="Print the OpenClaw command instead of running")

    p_capture = sub.add_parser("capture", help="Capture a site login session state")
    p_capture.add_argument("--site", "--alias", dest="alias", default="default", help="Site alias")
    p_capture.add_argument("--url", required=True, help="Login page URL")
    p_capture.add_argument("--output", default=None, help="Session file name (default: <alias>-session.json)")

    p_serve = sub.add_parser("serve", help="Start the local control panel")
    p_serve.add_argument("--host", default=config.panel_host)
    p_serve.add_argument("--port", type=int, default=config.panel_port)

    p_schedule = sub.add_parser("schedule", help="Create a macOS launchd job (daily)")
    p_schedule.add_argument("--workflow", default=config.workflow)
    p_schedule.add_argument("--time", default="09:00", help="HH:MM")
    p_schedule.add_argument("--install", action="store_true", help="Register the job with launchctl")

    p_openclaw = sub.add_parser("openclaw", help="Print/execute the OpenClaw command for a workflow")
    p_openclaw.add_argument("--workflow", default=config.workflow)
    p_openclaw.add_argument("--output", default="outputs")
    p_openclaw.add_argument("--exec", dest="execute", action="store_true", help="Run the command")

    return parser


def _openclaw_adapter(config: RunnerConfig) -> OpenClawAdapter:
    return OpenClawAdapter(bin_name=config.openclaw_bin, command_template=config.openclaw_command)


async def _cmd_run(args: argparse.Namespace, config: RunnerConfig) -> int:
    workflow_path = Path(args.workflow).resolve()

    if args.openclaw:
        loaded = load_workflow(workflow_path)
        command = _openclaw_adapter(config).build_command(
            workflow_path,
            Path(args.output or "outputs").resolve(),
            loaded.raw,
        )
        print(command)
        return 0

    outcome = await WorkflowEngine().run_workflow(
        workflow_path,
        output_dir=args.output,
        headless=args.headless,
        continue_on_failure=args.continue_on_failure,
        extra={"workflow": args.workflow, "cli": vars(args)},
    )

    print(f"Run complete: {outcome.report.status}")
    print(f"Run ID: {outcome.run_id}")
    print(f"Report: {outcome.report_path}")
    return 0 if outcome.report.status == "success" else 1


async def _cmd_capture(args: argparse.Namespace, config: RunnerConfig) -> int:
    session = await capture_session(
        alias=args.alias,
        url=args.url,
        output=args.output,
        base_dir=Path.cwd(),
        auth_dir=config.auth_dir,
    )
    print(f"Saved auth state: {session.auth_state}")
    return 0


async def _cmd_serve(args: argparse.Namespace, config: RunnerConfig) -> int:
    panel = ControlPanel(
        host=args.host,
        port=args.port,
        base_dir=Path.cwd(),
        default_workflow=config.workflow,
    )
    shutdown = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    await panel.start()
    print(f"Control panel: http://{args.host}:{args.port}")
    try:
        await shutdown.wait()
    finally:
        await panel.stop()
    return 0


def _cmd_schedule(args: argparse.Namespace, config: RunnerConfig) -> int:
    job = build_launchd_job(workflow=args.workflow, time=args.time, project_root=Path.cwd())
    write_launchd_job(job)
    print(f"Launchd file: {job.plist_path}")
    print(f"Command: {job.command}")

    if args.install:
        install_launchd_job(job)
        print(f"Loaded launchd job: {job.label}")
    else:
        print("Run with --install to register the daily job now.")
    return 0


def _cmd_openclaw(args: argparse.Namespace, config: RunnerConfig) -> int:
    workflow_path = Path(args.workflow).resolve()
    loaded = load_workflow(workflow_path)
    adapter = _openclaw_adapter(config)

    if args.execute:
        result = adapter.run(workflow_path, args.output, loaded.raw)
        print(f"OpenClaw exit: {result['exitCode']}")
        print(f"Command: {result['command']}")
        return result["exitCode"]

    metadata = adapter.metadata(workflow_path, args.output, loaded.raw)
    print(f"Generated OpenClaw command:\n{metadata['command']}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point; returns the process exit code."""
    load_dotenv()
    config = RunnerConfig.from_env()
    configure_logging(config.log_format, config.log_level)

    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or (argv[0] not in COMMANDS and argv[0].startswith("--") and argv[0] not in ("--help", "--version")):
        argv = ["run", *argv]

    args = build_parser(config).parse_args(argv)

    try:
        if args.command == "run":
            return asyncio.run(_cmd_run(args, config))
        if args.command == "capture":
            return asyncio.run(_cmd_capture(args, config))
        if args.command == "serve":
            return asyncio.run(_cmd_serve(args, config))
        if args.command == "schedule":
            return _cmd_schedule(args, config)
        if args.command == "openclaw":
            return _cmd_openclaw(args, config)
    except FrameworkError as e:
        logger.error("command_failed", command=args.command, error=e.message, error_type=type(e).__name__)
        print(e.message, file=sys.stderr)
        return 1

    return 2


if __name__ == "__main__":
    sys.exit(main())
