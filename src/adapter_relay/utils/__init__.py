"""Utility functions package."""

from adapter_relay.utils.logger import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
