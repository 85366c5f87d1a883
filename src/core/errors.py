"""Workflow runner error definitions."""

import hashlib
from typing import Optional, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for classification."""
    LOW = "low"           # Cosmetic, run continues unaffected
    MEDIUM = "medium"     # Step failed, site may continue
    HIGH = "high"         # Site cannot run
    CRITICAL = "critical" # Run cannot start


class ErrorCategory(Enum):
    """Error categories for routing and reporting."""
    TRANSIENT = "transient"       # Timeout, navigation hiccup - may resolve on rerun
    PERMANENT = "permanent"       # Bad workflow document - won't resolve
    EXTERNAL = "external"         # Browser driver or external tool failure
    VALIDATION = "validation"     # Step or template validation failure
    PRECONDITION = "precondition" # Required state missing before start


class FrameworkError(Exception):
    """Base exception for all runner errors."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        context: Optional[dict[str, Any]] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.category = category
        self.context = context or {}
        self.retryable = retryable

    def fingerprint(self) -> str:
        """Generate error fingerprint for deduplication across runs."""
        components = [
            self.__class__.__name__,
            self.category.value,
            str(self.context.get("site", "")),
            str(self.context.get("action", "")),
            str(self.context.get("selector", "")),
        ]
        return hashlib.sha256(":".join(components).encode()).hexdigest()[:16]

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging/reports."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context,
            "retryable": self.retryable,
            "fingerprint": self.fingerprint(),
        }


class WorkflowLoadFailure(FrameworkError):
    """Workflow document missing, unreadable or malformed."""

    def __init__(self, message: str, workflow_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["workflow_path"] = workflow_path


class UnsupportedAction(FrameworkError):
    """Step names an action the executor does not know."""

    def __init__(self, action: Any, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("retryable", False)
        super().__init__(f"Unsupported action: {action}", **kwargs)
        self.action = action
        self.context["action"] = action


class MissingAuthState(FrameworkError):
    """Site requires a persisted session that does not exist on disk."""

    def __init__(self, site: str, auth_state: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.PRECONDITION)
        kwargs.setdefault("retryable", False)
        super().__init__(
            f"Missing auth state for site {site} ({auth_state})",
            **kwargs
        )
        self.context["site"] = site
        self.context["auth_state"] = auth_state


class StepExecutionFailure(FrameworkError):
    """A browser operation failed while executing a step."""

    def __init__(
        self,
        message: str,
        action: Optional[str] = None,
        selector: Optional[str] = None,
        url: Optional[str] = None,
        step_index: Optional[int] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        super().__init__(message, **kwargs)
        self.context["action"] = action
        self.context["selector"] = selector
        self.context["url"] = url
        self.context["step_index"] = step_index


class UnresolvedTemplate(FrameworkError):
    """Template expression had nothing to resolve to (strict mode only)."""

    def __init__(self, expression: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("retryable", False)
        super().__init__(f"Unresolved template expression: {expression}", **kwargs)
        self.context["expression"] = expression


class ScheduleError(FrameworkError):
    """Scheduler job could not be built or installed."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)


class ConfigError(FrameworkError):
    """Runner configuration loading or validation error."""

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["config_path"] = config_path
