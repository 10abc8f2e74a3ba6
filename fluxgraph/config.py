"""Configuration helpers for loading environment variables.

This module ensures that variables defined in a project-level ``.env`` file
are loaded before attempting to access them. Consumers should rely on the
``get_env`` helper instead of using :func:`os.getenv` directly so that the
configuration is loaded in a single, well-defined place.

Recognised keys:

``FLUXGRAPH_STRICT_LOAD``
    When truthy, :meth:`fluxgraph.graph.store.GraphStore.from_json` raises on
    edges that reference missing nodes or ports instead of dropping them.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_FILE = Path(__file__).resolve().parents[1] / ".env"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


@lru_cache(maxsize=1)
def _load_environment() -> None:
    """Load environment variables from the project's ``.env`` file.

    The loader first attempts to read :data:`ENV_FILE`. If the file does not
    exist we still call :func:`load_dotenv` to allow the default discovery
    mechanism to run. Subsequent calls are cached so the file is only read
    once per process.
    """

    if ENV_FILE.exists():
        load_dotenv(ENV_FILE, override=False)
    else:
        load_dotenv(override=False)


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Return the value for ``key`` from the environment.

    Parameters
    ----------
    key:
        The name of the environment variable to look up.
    default:
        The value to return when ``key`` is not present.
    """

    _load_environment()
    return os.environ.get(key, default)


def get_bool_env(key: str, default: bool = False) -> bool:
    """Return ``key`` interpreted as a boolean flag."""

    value = get_env(key)
    if value is None:
        return default
    normalised = value.strip().lower()
    if normalised in _TRUTHY:
        return True
    if normalised in _FALSY:
        return False
    raise ValueError(f"Environment variable {key}={value!r} is not a boolean")


__all__ = ["get_bool_env", "get_env"]
