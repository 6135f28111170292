"""
Runtime environment helpers.

Every component that reads secrets or deployment settings from the
environment goes through this module so missing or malformed values fail
fast with one error type.

Strict Mode
-----------
Set ``AGGREGATOR_STRICT=1`` to forbid weaker-than-default behaviour: with
strict mode on, configuration that relaxes claim-hash binding is rejected.
"""

from __future__ import annotations

import os
from typing import Optional

__all__ = [
    "MissingEnvironmentVariable",
    "InvalidEnvironmentVariable",
    "is_strict_mode",
    "get_required_env",
    "get_optional_env",
    "get_env_bool",
    "get_env_float",
    "get_env_int",
]

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


class MissingEnvironmentVariable(RuntimeError):
    """Raised when a required environment variable has not been provided."""


class InvalidEnvironmentVariable(RuntimeError):
    """Raised when an environment variable cannot be parsed."""


def is_strict_mode() -> bool:
    return os.getenv("AGGREGATOR_STRICT", "").strip() == "1"


def get_required_env(name: str) -> str:
    """
    Return the value for ``name`` or raise :class:`MissingEnvironmentVariable`.

    Secrets such as network API keys have no implicit defaults.
    """
    value = os.getenv(name)
    if value is None or value.strip() == "":
        raise MissingEnvironmentVariable(
            f"Environment variable {name} is required but was not provided."
        )
    return value.strip()


def get_optional_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise InvalidEnvironmentVariable(f"{name}={raw!r} is not a boolean")


def get_env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise InvalidEnvironmentVariable(f"{name}={raw!r} is not a number") from exc


def get_env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise InvalidEnvironmentVariable(f"{name}={raw!r} is not an integer") from exc
