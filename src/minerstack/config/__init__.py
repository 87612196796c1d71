"""Shared configuration helpers and dataclasses."""

from .errors import ConfigurationError
from .runtime import env_bool, env_float, env_int, env_seconds, env_str
from .settings import AppPaths, SupervisorSettings

__all__ = [
    "AppPaths",
    "ConfigurationError",
    "SupervisorSettings",
    "env_bool",
    "env_float",
    "env_int",
    "env_seconds",
    "env_str",
]
