"""Terminal rendering."""

from .console import SessionConsole

__all__ = ["SessionConsole"]
