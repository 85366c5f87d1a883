"""Browser automation module using Playwright."""

from .manager import BrowserManager
from .actions import StepExecutor

__all__ = ["BrowserManager", "StepExecutor"]
