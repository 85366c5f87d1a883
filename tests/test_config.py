"""Tests for workflow loading, runner configuration and error types."""

import pytest

from core.config import RunnerConfig, SiteDefinition, load_workflow
from core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorSeverity,
    MissingAuthState,
    StepExecutionFailure,
    UnsupportedAction,
    WorkflowLoadFailure,
)


class TestLoadWorkflow:
    """Loading and validating workflow documents."""

    def test_loads_document(self, write_workflow):
        path = write_workflow({
            "name": "Daily",
            "settings": {"timeoutMs": 5000, "headless": False, "viewport": {"width": 800, "height": 600}},
            "vars": {"term": "hello"},
            "defaults": {"steps": [{"action": "wait", "ms": 10}]},
            "sites": [
                {"name": "example", "url": "https://example.test", "steps": [{"action": "click", "selector": "h1"}]},
            ],
        })

        loaded = load_workflow(path)
        workflow = loaded.workflow

        assert loaded.abs_path == path.resolve()
        assert loaded.dirname == path.resolve().parent
        assert workflow.name == "Daily"
        assert workflow.settings.timeout_ms == 5000
        assert workflow.settings.headless is False
        assert workflow.settings.viewport.width == 800
        assert workflow.vars == {"term": "hello"}
        assert workflow.defaults.steps == [{"action": "wait", "ms": 10}]
        assert workflow.sites[0].steps == [{"action": "click", "selector": "h1"}]
        assert loaded.raw["name"] == "Daily"

    def test_defaults_applied(self, write_workflow):
        loaded = load_workflow(write_workflow({"sites": None, "settings": {"headless": None}}))
        settings = loaded.workflow.settings

        assert loaded.workflow.sites == []
        assert settings.timeout_ms == 30000
        assert settings.headless is True
        assert settings.output_dir == "./outputs"
        assert settings.continue_on_failure is None
        assert settings.concurrency == 1
        assert settings.browser == "chromium"

    def test_empty_document(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        loaded = load_workflow(path)

        assert loaded.workflow.sites == []
        assert loaded.raw == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(WorkflowLoadFailure) as exc_info:
            load_workflow(tmp_path / "nope.yaml")

        assert "not found" in exc_info.value.message
        assert exc_info.value.severity == ErrorSeverity.CRITICAL

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("sites: [\n  - name: a\n")

        with pytest.raises(WorkflowLoadFailure, match="Invalid YAML"):
            load_workflow(path)

    def test_wrong_shape(self, write_workflow):
        path = write_workflow({"sites": {"name": "not-a-list"}})

        with pytest.raises(WorkflowLoadFailure, match="sites"):
            load_workflow(path)

    def test_bad_setting_value(self, write_workflow):
        path = write_workflow({"settings": {"concurrency": 0}})

        with pytest.raises(WorkflowLoadFailure):
            load_workflow(path)


class TestSiteDefinition:
    def test_display_name_fallbacks(self):
        assert SiteDefinition(name="A").display_name(0) == "A"
        assert SiteDefinition(url="https://a.test").display_name(0) == "https://a.test"
        assert SiteDefinition().display_name(2) == "site-3"

    def test_camel_case_keys(self):
        site = SiteDefinition.model_validate({"authState": "auth/a.json", "requiresLogin": True})
        assert site.auth_state == "auth/a.json"
        assert site.requires_login is True


class TestRunnerConfig:
    """Environment-driven runner config."""

    def test_defaults(self):
        config = RunnerConfig.from_env({})

        assert config.log_format == "console"
        assert config.panel_port == 8787
        assert config.workflow == "workflows/sample-workflow.yaml"

    def test_env_overrides(self):
        config = RunnerConfig.from_env({
            "LOG_FORMAT": "json",
            "SITERUNNER_PANEL_PORT": "9000",
            "SITERUNNER_OPENCLAW_COMMAND": "oc {{ workflow.path }}",
        })

        assert config.log_format == "json"
        assert config.panel_port == 9000
        assert config.openclaw_command == "oc {{ workflow.path }}"

    def test_invalid_env(self):
        with pytest.raises(ConfigError):
            RunnerConfig.from_env({"SITERUNNER_PANEL_PORT": "not-a-port"})


class TestErrors:
    """Error taxonomy."""

    def test_unsupported_action(self):
        error = UnsupportedAction("teleport")

        assert error.message == "Unsupported action: teleport"
        assert error.action == "teleport"
        assert error.category == ErrorCategory.VALIDATION
        assert error.retryable is False

    def test_missing_auth_state(self):
        error = MissingAuthState("bank", "/tmp/bank.json")

        assert error.category == ErrorCategory.PRECONDITION
        assert error.context == {"site": "bank", "auth_state": "/tmp/bank.json"}

    def test_to_dict(self):
        error = StepExecutionFailure("click failed", action="click", selector="#go", step_index=3)
        data = error.to_dict()

        assert data["type"] == "StepExecutionFailure"
        assert data["category"] == "external"
        assert data["context"]["selector"] == "#go"
        assert data["context"]["step_index"] == 3
        assert len(data["fingerprint"]) == 16

    def test_fingerprint_ignores_message(self):
        first = StepExecutionFailure("timeout 1", action="click", selector="#go")
        second = StepExecutionFailure("timeout 2", action="click", selector="#go")
        other = StepExecutionFailure("timeout 1", action="click", selector="#stop")

        assert first.fingerprint() == second.fingerprint()
        assert first.fingerprint() != other.fingerprint()
