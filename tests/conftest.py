"""Root pytest configuration and shared fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

# Short timeouts keep process and polling tests fast.
os.environ.setdefault("MINERSTACK_STARTUP_TIMEOUT_SECONDS", "10")
os.environ.setdefault("MINERSTACK_STOP_GRACE_SECONDS", "3")
os.environ.setdefault("MINERSTACK_FORCE_KILL_TIMEOUT_SECONDS", "3")
os.environ.setdefault("MINERSTACK_RPC_TIMEOUT_SECONDS", "2")
os.environ.setdefault("MINERSTACK_READY_PROBE_INTERVAL_SECONDS", "0.05")
os.environ.setdefault("MINERSTACK_READY_PROBE_TIMEOUT_SECONDS", "2")
os.environ.setdefault("MINERSTACK_SYNC_POLL_INTERVAL_SECONDS", "0.05")
os.environ.setdefault("MINERSTACK_SYNC_MAX_WAIT_SECONDS", "5")
os.environ.setdefault("MINERSTACK_RELEASE_INDEX_URL", "http://127.0.0.1:9/index.json")

from minerstack.config import AppPaths, SupervisorSettings  # noqa: E402


@pytest.fixture
def settings() -> SupervisorSettings:
    return SupervisorSettings()


@pytest.fixture
def paths(tmp_path: Path) -> AppPaths:
    return AppPaths.under(tmp_path / "home").ensure()
