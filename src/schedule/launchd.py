"""Daily launchd job that runs a workflow through the CLI."""

import os
import plistlib
import re
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

import structlog

from core.errors import ScheduleError

logger = structlog.get_logger()

LABEL = "com.siterunner.daily"
TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


@dataclass(frozen=True)
class LaunchdJob:
    """A launchd agent definition and where it will be written."""
    label: str
    plist_path: Path
    command: str
    hour: int
    minute: int
    log_dir: Path

    def to_plist(self) -> dict[str, Any]:
        return {
            "Label": self.label,
            "ProgramArguments": ["/bin/sh", "-lc", self.command],
            "StartCalendarInterval": {"Hour": self.hour, "Minute": self.minute},
            "StandardOutPath": str(self.log_dir / "siterunner.out.log"),
            "StandardErrorPath": str(self.log_dir / "siterunner.err.log"),
        }

    def render(self) -> bytes:
        return plistlib.dumps(self.to_plist())


def parse_time(value: str) -> tuple[int, int]:
    """HH:MM -> (hour, minute)."""
    match = TIME_PATTERN.match(str(value).strip())
    if not match:
        raise ScheduleError(f"--time must be HH:MM (got {value!r})")

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ScheduleError(f"--time must be HH:MM (got {value!r})")
    return hour, minute


def build_launchd_job(
    workflow: str,
    time: str = "09:00",
    project_root: Optional[Union[str, Path]] = None,
    home: Optional[Union[str, Path]] = None,
    executable: str = "siterunner",
) -> LaunchdJob:
    """
    Build the job that runs `workflow` every day at `time`.

    Relative workflow paths are anchored at `project_root` (default: cwd).
    """
    hour, minute = parse_time(time)
    root = Path(project_root or Path.cwd()).resolve()
    home_dir = Path(home or os.environ.get("HOME") or Path.home())

    workflow_path = Path(workflow)
    if not workflow_path.is_absolute():
        workflow_path = root / workflow_path

    command = f"cd {shlex.quote(str(root))} && {executable} run --workflow {shlex.quote(str(workflow_path))}"

    return LaunchdJob(
        label=LABEL,
        plist_path=home_dir / "Library" / "LaunchAgents" / f"{LABEL}.plist",
        command=command,
        hour=hour,
        minute=minute,
        log_dir=home_dir / "Library" / "Logs",
    )


def write_launchd_job(job: LaunchdJob) -> Path:
    """Write the plist file, creating LaunchAgents/ if needed."""
    job.plist_path.parent.mkdir(parents=True, exist_ok=True)
    job.plist_path.write_bytes(job.render())
    logger.info("launchd_job_written", path=str(job.plist_path), command=job.command)
    return job.plist_path


def install_launchd_job(job: LaunchdJob, runner: Callable[..., Any] = subprocess.run) -> None:
    """Register the job with launchd for the current user."""
    try:
        runner(
            ["launchctl", "bootstrap", f"gui/{os.getuid()}", str(job.plist_path)],
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as e:
        raise ScheduleError(f"launchctl bootstrap failed: {e}") from e

    logger.info("launchd_job_installed", label=job.label)
