"""
OpenClaw adapter - builds (and optionally runs) the shell command that
delegates a workflow to the `openclaw` agent CLI instead of running it
with the local browser.
"""

import re
import shlex
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

import structlog

from core.template import TemplateResolver

logger = structlog.get_logger()

VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)\.(\d+)")


@dataclass(frozen=True)
class ToolVersion:
    """Parsed `--version` output."""
    major: Optional[int]
    raw: str


def parse_version(raw: Optional[str]) -> ToolVersion:
    """Extract the major version from the first X.Y.Z in `raw`."""
    if not raw:
        return ToolVersion(major=None, raw="")
    text = str(raw).strip()
    match = VERSION_PATTERN.search(text)
    return ToolVersion(major=int(match.group(1)) if match else None, raw=text)


def default_template(version: ToolVersion, bin_name: str) -> str:
    """Command template for the detected CLI generation."""
    if version.major is not None and version.major >= 2:
        return f"{bin_name} agent run --workflow {{{{ workflow.path }}}} --output {{{{ workflow.output }}}} --name {{{{ workflow.label }}}}"
    return f"{bin_name} run --workflow {{{{ workflow.path }}}} --output {{{{ workflow.output }}}}"


class OpenClawAdapter:
    """
    Command construction for the openclaw CLI.

    Template precedence: workflow `openclaw.command` / `openclaw.template`,
    then the configured override, then the version-dependent default.
    """

    def __init__(
        self,
        bin_name: str = "openclaw",
        command_template: Optional[str] = None,
        runner: Callable[..., Any] = subprocess.run,
        resolver: Optional[TemplateResolver] = None,
    ):
        """
        Initialize adapter.

        Args:
            bin_name: Executable name or path
            command_template: Template overriding the default command
            runner: subprocess.run-compatible callable (injectable for tests)
            resolver: Template resolver used to render the command
        """
        self.bin_name = bin_name
        self.command_template = command_template
        self.runner = runner
        self.resolver = resolver or TemplateResolver()

    def detect_version(self) -> ToolVersion:
        """Ask the CLI for its version; unknown when it cannot be run."""
        try:
            proc = self.runner(
                [self.bin_name, "--version"],
                capture_output=True,
                text=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            logger.debug("openclaw_version_unavailable", bin=self.bin_name, error=str(e))
            return ToolVersion(major=None, raw="")
        return parse_version(proc.stdout)

    def build_command(
        self,
        workflow_path: Union[str, Path],
        output_path: Union[str, Path],
        workflow_config: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Render the command line for a workflow."""
        workflow_config = workflow_config or {}
        section = workflow_config.get("openclaw") or {}
        template = (
            section.get("command")
            or section.get("template")
            or self.command_template
            or default_template(self.detect_version(), self.bin_name)
        )

        context = {
            "workflow": {
                "path": shlex.quote(str(workflow_path)),
                "output": shlex.quote(str(output_path)),
                "label": shlex.quote(str(workflow_config.get("name") or "run")),
            },
            "outputs": {},
        }
        return self.resolver.render(template, context)

    def metadata(
        self,
        workflow_path: Union[str, Path],
        output_path: Union[str, Path],
        workflow_config: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, str]:
        return {
            "adapter": "openclaw",
            "command": self.build_command(workflow_path, output_path, workflow_config),
        }

    def run(
        self,
        workflow_path: Union[str, Path],
        output_path: Union[str, Path],
        workflow_config: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, Any]:
        """Execute the command through the shell, inheriting stdio."""
        command = self.build_command(workflow_path, output_path, workflow_config)
        logger.info("openclaw_run_started", command=command)

        proc = self.runner(command, shell=True, check=False)

        logger.info("openclaw_run_completed", exit_code=proc.returncode)
        return {"command": command, "exitCode": proc.returncode}
