"""Run and site results, and the JSON artifacts written from them."""

import json
import re
import traceback
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from core.errors import FrameworkError


class SiteStatus(Enum):
    """Per-site execution state."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


def sanitize_name(value: Any) -> str:
    """Filesystem-safe directory token for a site name."""
    return re.sub(r"[^a-z0-9_-]+", "_", str(value or "site").lower())


def error_record(error: BaseException) -> dict[str, Any]:
    """Message + trace for a captured site error."""
    record = {
        "type": type(error).__name__,
        "message": str(error),
        "trace": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
    }
    if isinstance(error, FrameworkError):
        record["category"] = error.category.value
        record["context"] = error.context
    return record


def write_json(path: Path, data: Any) -> Path:
    """Write pretty-printed JSON (no trailing newline)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
    return path


@dataclass(frozen=True)
class SiteResult:
    """Outcome of one site. Built once, when the site finishes."""
    name: str
    status: SiteStatus
    output_dir: Path
    outputs: dict[str, Any] = field(default_factory=dict)
    errors: list[dict[str, Any]] = field(default_factory=list)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status is SiteStatus.FAILED

    def artifact(self, run_id: str) -> dict[str, Any]:
        """Content of the per-site outputs.json."""
        return {
            "runId": run_id,
            "name": self.name,
            "status": self.status.value,
            "outputs": self.outputs,
            "errors": self.errors,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "outputs": self.outputs,
            "errors": self.errors,
            "outputDir": str(self.output_dir),
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }


@dataclass
class RunReport:
    """Aggregate of all site results for one run."""
    workflow: str
    run_id: str
    started_at: str
    settings: dict[str, Any]
    results: list[SiteResult] = field(default_factory=list)
    finished_at: Optional[str] = None
    aborted: bool = False
    extra: Optional[dict[str, Any]] = None

    @property
    def status(self) -> str:
        return "failed" if any(result.failed for result in self.results) else "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow": self.workflow,
            "runId": self.run_id,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "settings": self.settings,
            "results": [result.to_dict() for result in self.results],
            "status": self.status,
            "aborted": self.aborted,
            "extra": self.extra,
        }


@dataclass(frozen=True)
class RunOutcome:
    """What run_workflow hands back to callers."""
    run_id: str
    output_dir: Path
    report_path: Path
    report: RunReport

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "outputDir": str(self.output_dir),
            "reportPath": str(self.report_path),
            "report": self.report.to_dict(),
        }
