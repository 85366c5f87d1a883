"""Core runner components: errors, config, templates, context, steps."""

from .config import LoadedWorkflow, RunnerConfig, WorkflowDocument, load_workflow
from .context import RunContext, build_context, clone_context
from .template import TemplateResolver, render_template
from .errors import (
    FrameworkError,
    ConfigError,
    WorkflowLoadFailure,
    UnsupportedAction,
    MissingAuthState,
    StepExecutionFailure,
    UnresolvedTemplate,
)

__version__ = "0.1.0"

__all__ = [
    "LoadedWorkflow",
    "RunnerConfig",
    "WorkflowDocument",
    "load_workflow",
    "RunContext",
    "build_context",
    "clone_context",
    "TemplateResolver",
    "render_template",
    "FrameworkError",
    "ConfigError",
    "WorkflowLoadFailure",
    "UnsupportedAction",
    "MissingAuthState",
    "StepExecutionFailure",
    "UnresolvedTemplate",
]
