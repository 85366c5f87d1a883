"""Workflow document loading/validation and runner configuration."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Literal, Optional, Union

import yaml
import jsonschema
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import ConfigError, WorkflowLoadFailure


# Shape check run before model validation so that authors get a
# pointer to the offending part of the document.
WORKFLOW_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": ["string", "null"]},
        "defaults": {
            "type": ["object", "null"],
            "properties": {
                "steps": {"type": ["array", "null"], "items": {"type": "object"}},
            },
        },
        "settings": {"type": ["object", "null"]},
        "vars": {"type": ["object", "null"]},
        "sites": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": ["string", "number", "null"]},
                    "url": {"type": ["string", "null"]},
                    "authState": {"type": ["string", "null"]},
                    "requiresLogin": {"type": ["boolean", "null"]},
                    "steps": {"type": ["array", "null"], "items": {"type": "object"}},
                },
            },
        },
    },
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class Viewport(_CamelModel):
    """Browser viewport size."""
    width: int = Field(default=1280, ge=1)
    height: int = Field(default=720, ge=1)


class WorkflowSettings(_CamelModel):
    """Run settings declared by the workflow document."""
    timeout_ms: int = Field(default=30000, ge=0)
    headless: bool = Field(default=True)
    slow_mo: int = Field(default=0, ge=0)
    viewport: Optional[Viewport] = Field(default=None)
    continue_on_failure: Optional[bool] = Field(default=None)
    output_dir: str = Field(default="./outputs")
    concurrency: int = Field(default=1, ge=1, le=16)
    browser: Literal["chromium", "firefox", "webkit"] = Field(default="chromium")
    strict_templates: bool = Field(default=False)

    @field_validator("headless", "strict_templates", mode="before")
    @classmethod
    def _null_is_default(cls, value: Any, info) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].default
        return value


class WorkflowDefaults(_CamelModel):
    """Shared steps run before each site's own steps."""
    steps: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("steps", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value


class SiteDefinition(_CamelModel):
    """One target site and its steps."""
    name: Optional[Union[str, int, float]] = None
    url: Optional[str] = None
    auth_state: Optional[str] = None
    requires_login: bool = False
    steps: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("steps", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("requires_login", mode="before")
    @classmethod
    def _none_to_false(cls, value: Any) -> Any:
        return False if value is None else value

    def display_name(self, index: int) -> str:
        """Site name, falling back to its URL, then its 1-based position."""
        if self.name not in (None, ""):
            return str(self.name)
        return self.url or f"site-{index + 1}"


class WorkflowDocument(_CamelModel):
    """Parsed workflow document. Immutable for the duration of a run."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    name: Optional[str] = None
    defaults: WorkflowDefaults = Field(default_factory=WorkflowDefaults)
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    vars: dict[str, Any] = Field(default_factory=dict)
    sites: list[SiteDefinition] = Field(default_factory=list)

    @field_validator("defaults", "settings", "vars", mode="before")
    @classmethod
    def _none_to_dict(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("sites", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value


@dataclass(frozen=True)
class LoadedWorkflow:
    """A workflow document together with where it came from."""
    workflow: WorkflowDocument
    abs_path: Path
    dirname: Path
    raw: dict[str, Any] = field(default_factory=dict)


def load_workflow(path: Union[str, Path]) -> LoadedWorkflow:
    """
    Load and validate a YAML (or JSON) workflow document.

    Raises:
        WorkflowLoadFailure: file missing/unreadable, invalid YAML, or
            a document that does not match the workflow shape
    """
    abs_path = Path(path).expanduser().resolve()

    if not abs_path.is_file():
        raise WorkflowLoadFailure(f"Workflow file not found: {abs_path}", workflow_path=str(abs_path))

    try:
        content = abs_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise WorkflowLoadFailure(f"Cannot read workflow: {e}", workflow_path=str(abs_path)) from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise WorkflowLoadFailure(f"Invalid YAML: {e}", workflow_path=str(abs_path)) from e

    if data is None:
        data = {}

    try:
        jsonschema.validate(data, WORKFLOW_SCHEMA)
    except jsonschema.ValidationError as e:
        location = "/".join(str(part) for part in e.absolute_path) or "<root>"
        raise WorkflowLoadFailure(
            f"Invalid workflow at {location}: {e.message}",
            workflow_path=str(abs_path),
        ) from e

    try:
        workflow = WorkflowDocument.model_validate(data)
    except ValidationError as e:
        raise WorkflowLoadFailure(f"Invalid workflow: {e}", workflow_path=str(abs_path)) from e

    return LoadedWorkflow(
        workflow=workflow,
        abs_path=abs_path,
        dirname=abs_path.parent,
        raw=data,
    )


class RunnerConfig(BaseModel):
    """Process-level configuration read from the environment."""
    log_format: Literal["console", "json"] = Field(default="console")
    log_level: str = Field(default="INFO")
    workflow: str = Field(default="workflows/sample-workflow.yaml")
    auth_dir: str = Field(default="auth")
    panel_host: str = Field(default="127.0.0.1")
    panel_port: int = Field(default=8787, ge=1, le=65535)
    openclaw_bin: str = Field(default="openclaw")
    openclaw_command: Optional[str] = Field(default=None)

    ENV_KEYS: ClassVar[dict[str, str]] = {
        "log_format": "LOG_FORMAT",
        "log_level": "LOG_LEVEL",
        "workflow": "SITERUNNER_WORKFLOW",
        "auth_dir": "SITERUNNER_AUTH_DIR",
        "panel_host": "SITERUNNER_PANEL_HOST",
        "panel_port": "SITERUNNER_PANEL_PORT",
        "openclaw_bin": "SITERUNNER_OPENCLAW_BIN",
        "openclaw_command": "SITERUNNER_OPENCLAW_COMMAND",
    }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RunnerConfig":
        """Build config from environment variables (unset keys keep defaults)."""
        environ = os.environ if environ is None else environ
        data = {
            name: environ[key]
            for name, key in cls.ENV_KEYS.items()
            if environ.get(key)
        }
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid runner environment: {e}") from e
