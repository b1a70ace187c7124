"""Run history persistence."""

from .manager import DatabaseManager

__all__ = ["DatabaseManager"]
