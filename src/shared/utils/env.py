"""Environment variable loading utilities.

Secrets and endpoints for the fact freshness functions come from the process
environment, optionally seeded from ``.env`` files found between the
filesystem root and the current working directory.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import List, Optional
import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _candidate_env_files(start: Path) -> List[Path]:
    """Return ``.env`` files from the outermost parent down to *start*."""

    candidates: List[Path] = []
    for directory in [*reversed(start.parents), start]:
        candidate = directory / ".env"
        if candidate.exists():
            candidates.append(candidate)
    return candidates


def load_env(env_file: Optional[str] = None, override: bool = False) -> None:
    """Load environment variables from .env file(s).

    Args:
        env_file: Path to a specific .env file. If None, every .env found in
                 the current directory and its parents is loaded, outermost
                 first, so the closest file wins when ``override`` is set.
        override: Whether to override existing environment variables.
    """
    if env_file:
        env_paths = [Path(env_file)] if Path(env_file).exists() else []
    else:
        env_paths = _candidate_env_files(Path.cwd())

    if not env_paths:
        logger.debug("No .env file found, using system environment")
        return

    for path in dict.fromkeys(env_paths):
        load_dotenv(path, override=override)
        logger.debug("Loaded environment from %s", path)


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get an environment variable, stripping whitespace and stray quotes.

    Args:
        key: Environment variable name
        default: Default value if not set or blank

    Returns:
        Environment variable value or default
    """
    value = os.getenv(key)
    if value is None:
        return default
    cleaned = value.strip().strip('"').strip("'")
    return cleaned or default
