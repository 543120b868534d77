"""Shared utilities."""

from gpu_bridge.utils.logging_config import setup_logging

__all__ = ["setup_logging"]
