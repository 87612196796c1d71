"""Runtime helpers for working with environment-backed configuration.

Values missing from the process environment fall back to ``KEY=value`` files:
``./.env`` first, then ``~/.minerstack.env``.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional, Tuple

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "f", "no", "n", "off"}

_ENV_LINE_RE = re.compile(r"^\s*(?:export\s+)?(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=(?P<value>.*)$")

_DEFAULT_VALUES: dict[str, str] | None = None


def _env_file_candidates() -> Tuple[Path, ...]:
    return (Path(".env"), Path.home() / ".minerstack.env")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    # Unquoted values may carry a trailing comment.
    return value.split(" #", 1)[0].rstrip()


def read_env_file(path: Path) -> Dict[str, str]:
    """
    Parse a ``KEY=value`` file.

    Blank lines and ``#`` comments are skipped, an ``export`` prefix is accepted and one
    pair of matching quotes around a value is removed. Malformed lines are logged and ignored.

    Raises:
        ConfigurationError: The file exists but cannot be read
    """
    if not path.is_file():
        return {}
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError.load_failed("env file", str(path)) from exc

    values: Dict[str, str] = {}
    for number, line in enumerate(text.splitlines(), start=1):
        entry = _ENV_LINE_RE.match(line)
        if entry is None:
            if line.strip() and not line.lstrip().startswith("#"):
                logger.warning("Ignoring malformed line %d in %s", number, path)
            continue
        values[entry.group("key")] = _unquote(entry.group("value").strip())
    return values


def _load_default_values() -> dict[str, str]:
    global _DEFAULT_VALUES
    if _DEFAULT_VALUES is not None:
        return _DEFAULT_VALUES

    defaults: dict[str, str] = {}
    for path in _env_file_candidates():
        for key, value in read_env_file(path).items():
            defaults.setdefault(key, value)

    _DEFAULT_VALUES = defaults
    return defaults


def reset_default_values() -> None:
    """Forget cached .env defaults so the next lookup re-reads them."""
    global _DEFAULT_VALUES
    _DEFAULT_VALUES = None


def _default_value(name: str) -> Optional[str]:
    return _load_default_values().get(name)


def _normalize(value: str | None, *, strip: bool) -> str | None:
    if value is None:
        return None
    return value.strip() if strip else value


def env_str(
    name: str,
    or_value: str | None = None,
    *,
    required: bool = False,
    strip: bool = True,
    allow_blank: bool = False,
) -> str | None:
    """Fetch an environment variable as a string with validation."""

    value = _normalize(os.getenv(name), strip=strip)

    if value is None or (not allow_blank and value == ""):
        configured_default = _default_value(name)
        if configured_default is not None:
            value = _normalize(configured_default, strip=strip)

    if value is None or (not allow_blank and value == ""):
        if required:
            raise ConfigurationError.missing_value(name, "required environment variable is not set")
        return or_value
    return value


def env_int(name: str, or_value: int | None = None, *, required: bool = False) -> int | None:
    """Fetch an environment variable and coerce it to ``int``."""

    raw = env_str(name, strip=True, allow_blank=False)
    if raw is None:
        if required and or_value is None:
            raise ConfigurationError.missing_value(name, "required environment variable is not set")
        return or_value
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError.invalid_format(name, raw, "an integer") from exc


def env_float(name: str, or_value: float | None = None, *, required: bool = False) -> float | None:
    """Fetch an environment variable and coerce it to ``float``."""

    raw = env_str(name, strip=True, allow_blank=False)
    if raw is None:
        if required and or_value is None:
            raise ConfigurationError.missing_value(name, "required environment variable is not set")
        return or_value
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError.invalid_format(name, raw, "a float") from exc


def env_bool(name: str, or_value: bool | None = None, *, required: bool = False) -> bool | None:
    """Fetch an environment variable and coerce it to ``bool``."""

    raw = env_str(name, strip=True, allow_blank=False)
    if raw is None:
        if required and or_value is None:
            raise ConfigurationError.missing_value(name, "required environment variable is not set")
        return or_value

    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError.invalid_format(name, raw, f"one of {sorted(_TRUE_VALUES | _FALSE_VALUES)}")


def env_seconds(name: str, or_value: float | None = None, *, required: bool = False) -> float | None:
    """Convenience wrapper for fetching durations stored as (possibly fractional) seconds."""

    value = env_float(name, or_value=or_value, required=required)
    if value is None:
        return None
    if value < 0:
        raise ConfigurationError.invalid_value(name, value, "must be non-negative")
    return value


__all__ = [
    "env_bool",
    "env_float",
    "env_int",
    "env_seconds",
    "env_str",
    "read_env_file",
    "reset_default_values",
]
