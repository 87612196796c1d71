"""
Supervisor settings and filesystem layout.

All timeout and interval values are in seconds. Every field can be overridden
through a ``MINERSTACK_*`` environment variable (or the matching entry in a
``.env`` file); constructor arguments win over both.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from pathlib import Path

from .errors import ConfigurationError
from .runtime import env_int, env_seconds, env_str

DEFAULT_RELEASE_INDEX_URL = "https://releases.minerstack.dev/index.json"
DEFAULT_NETWORK = "esmeralda"
CORRUPT_DATABASE_EXIT_CODE = 114


@dataclass(frozen=True)
class SupervisorSettings:
    """
    Tunables shared by the watcher, managers, resolver and orchestrator.

    Attributes:
        startup_timeout_seconds: Maximum wait for a spawned process to reach ``Running``
        stop_grace_seconds: Time between the graceful termination request and force-kill
        force_kill_timeout_seconds: Time to wait for exit after force-kill
        rpc_timeout_seconds: Bound on every local RPC/HTTP query
        ready_probe_interval_seconds: Delay between readiness probe attempts
        ready_probe_timeout_seconds: Maximum time a manager probes before giving up
        sync_poll_interval_seconds: Delay between node sync polls
        sync_max_wait_seconds: Maximum time to wait for initial node sync
        version_check_staleness_seconds: Minimum spacing between forced upgrade checks
        version_cache_ttl_seconds: Age after which cached release info is re-fetched
        download_timeout_seconds: Bound on a full archive download
        download_chunk_size: Streaming chunk size in bytes
        node_start_attempts: Node start attempts before setup gives up
        corrupt_database_exit_code: Node exit code that triggers a data-directory reset
        proxy_ready_timeout_seconds: Maximum wait for the merge mining proxy to answer after start
        release_index_url: Remote release manifest location
        network: Network identifier passed to node, wallet and proxy
    """

    startup_timeout_seconds: float = field(default_factory=partial(env_seconds, "MINERSTACK_STARTUP_TIMEOUT_SECONDS", 120.0))
    stop_grace_seconds: float = field(default_factory=partial(env_seconds, "MINERSTACK_STOP_GRACE_SECONDS", 10.0))
    force_kill_timeout_seconds: float = field(default_factory=partial(env_seconds, "MINERSTACK_FORCE_KILL_TIMEOUT_SECONDS", 5.0))
    rpc_timeout_seconds: float = field(default_factory=partial(env_seconds, "MINERSTACK_RPC_TIMEOUT_SECONDS", 5.0))
    ready_probe_interval_seconds: float = field(default_factory=partial(env_seconds, "MINERSTACK_READY_PROBE_INTERVAL_SECONDS", 1.0))
    ready_probe_timeout_seconds: float = field(default_factory=partial(env_seconds, "MINERSTACK_READY_PROBE_TIMEOUT_SECONDS", 60.0))
    sync_poll_interval_seconds: float = field(default_factory=partial(env_seconds, "MINERSTACK_SYNC_POLL_INTERVAL_SECONDS", 5.0))
    sync_max_wait_seconds: float = field(default_factory=partial(env_seconds, "MINERSTACK_SYNC_MAX_WAIT_SECONDS", 3 * 60 * 60.0))
    version_check_staleness_seconds: float = field(
        default_factory=partial(env_seconds, "MINERSTACK_VERSION_CHECK_STALENESS_SECONDS", 10 * 60.0)
    )
    version_cache_ttl_seconds: float = field(default_factory=partial(env_seconds, "MINERSTACK_VERSION_CACHE_TTL_SECONDS", 60 * 60.0))
    download_timeout_seconds: float = field(default_factory=partial(env_seconds, "MINERSTACK_DOWNLOAD_TIMEOUT_SECONDS", 15 * 60.0))
    download_chunk_size: int = field(default_factory=partial(env_int, "MINERSTACK_DOWNLOAD_CHUNK_SIZE", 64 * 1024))
    node_start_attempts: int = field(default_factory=partial(env_int, "MINERSTACK_NODE_START_ATTEMPTS", 2))
    corrupt_database_exit_code: int = field(
        default_factory=partial(env_int, "MINERSTACK_CORRUPT_DATABASE_EXIT_CODE", CORRUPT_DATABASE_EXIT_CODE)
    )
    proxy_ready_timeout_seconds: float = field(default_factory=partial(env_seconds, "MINERSTACK_PROXY_READY_TIMEOUT_SECONDS", 120.0))
    release_index_url: str = field(default_factory=partial(env_str, "MINERSTACK_RELEASE_INDEX_URL", DEFAULT_RELEASE_INDEX_URL))
    network: str = field(default_factory=partial(env_str, "MINERSTACK_NETWORK", DEFAULT_NETWORK))

    def __post_init__(self) -> None:
        if self.node_start_attempts < 1:
            raise ConfigurationError.invalid_value("node_start_attempts", self.node_start_attempts, "must be at least 1")
        if self.download_chunk_size <= 0:
            raise ConfigurationError.invalid_value("download_chunk_size", self.download_chunk_size, "must be positive")


@dataclass(frozen=True)
class AppPaths:
    """Filesystem layout for one application home."""

    data_dir: Path
    config_dir: Path
    log_dir: Path
    cache_dir: Path
    install_dir: Path

    @classmethod
    def under(cls, home: Path) -> "AppPaths":
        home = home.expanduser()
        return cls(
            data_dir=home / "data",
            config_dir=home / "config",
            log_dir=home / "logs",
            cache_dir=home / "cache",
            install_dir=home / "binaries",
        )

    @classmethod
    def from_env(cls) -> "AppPaths":
        raw_home = env_str("MINERSTACK_HOME", str(Path.home() / ".minerstack"))
        return cls.under(Path(raw_home))

    def ensure(self) -> "AppPaths":
        """Create every directory that does not exist yet."""
        for directory in (self.data_dir, self.config_dir, self.log_dir, self.cache_dir, self.install_dir):
            directory.mkdir(parents=True, exist_ok=True)
        return self


__all__ = ["AppPaths", "CORRUPT_DATABASE_EXIT_CODE", "DEFAULT_NETWORK", "DEFAULT_RELEASE_INDEX_URL", "SupervisorSettings"]
