"""Adapters that hand a workflow to external tools."""

from .openclaw import OpenClawAdapter, ToolVersion, parse_version

__all__ = ["OpenClawAdapter", "ToolVersion", "parse_version"]
