"""Shared utility functions."""

from .logging import get_logger, setup_logging
from .env import get_env, load_env

__all__ = ["setup_logging", "get_logger", "load_env", "get_env"]
