"""Execution helpers for the run command."""

from .strategies import ConsoleOutput, QuietOutput

__all__ = ["ConsoleOutput", "QuietOutput"]
