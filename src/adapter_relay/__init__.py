"""Resilient invocation layer for remote adapter services."""

__version__ = "0.1.0"
