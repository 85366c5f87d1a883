"""Local HTTP control panel."""

from .server import ControlPanel

__all__ = ["ControlPanel"]
