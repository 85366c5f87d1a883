"""Workflow orchestration: engine, reports and session capture."""

from .engine import WorkflowEngine, run_workflow
from .report import RunOutcome, RunReport, SiteResult, SiteStatus
from .session import capture_session

__all__ = [
    "WorkflowEngine",
    "run_workflow",
    "RunOutcome",
    "RunReport",
    "SiteResult",
    "SiteStatus",
    "capture_session",
]
