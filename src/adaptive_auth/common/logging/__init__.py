"""Logging helpers."""

from adaptive_auth.common.logging.logger import get_logger

__all__ = ["get_logger"]
