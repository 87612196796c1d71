"""
Centralized logging configuration for the supervisor.

Provides a single setup_logging function with:
- Console output on stdout
- File output to <log_dir>/<service_name>.log
- Fresh log file on each start unless LOG_APPEND=1
"""

import logging
import logging.handlers
import sys
import threading
from pathlib import Path
from typing import Optional

from .config import env_bool

# Thread-safe lock for logging configuration
_config_lock = threading.Lock()
_MODULE_LOGGER = logging.getLogger(__name__)
_UNKNOWN_LOGGER_NAME = "<unknown>"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _close_handlers(logger: logging.Logger, logger_name: Optional[str] = None) -> None:
    """Close all handlers for a logger, logging any errors."""
    for handler in list(logger.handlers):
        try:
            handler.close()
        except OSError as e:  # Best-effort cleanup operation  # policy_guard: allow-silent-handler
            safe_name = logger_name if logger_name else _UNKNOWN_LOGGER_NAME
            _MODULE_LOGGER.debug("Handler close failed for logger '%s': %s", safe_name, e)


def _reset_root_handlers(root_logger: logging.Logger) -> None:
    _close_handlers(root_logger, "root")
    root_logger.handlers = []


def _build_console_handler(quiet: bool) -> logging.Handler:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    console_handler.setLevel(logging.WARNING if quiet else logging.DEBUG)
    return console_handler


def _build_file_handler(service_name: str, log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{service_name}.log"
    file_mode = "a" if env_bool("LOG_APPEND", or_value=False) else "w"

    handler_cls = getattr(logging.handlers, "WatchedFileHandler", logging.FileHandler)
    file_handler = handler_cls(log_path, mode=file_mode)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    file_handler.setLevel(logging.INFO)
    return file_handler


def _suppress_noisy_third_parties() -> None:
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def setup_logging(service_name: Optional[str] = None, log_dir: Optional[Path] = None, *, quiet: bool = False) -> None:
    """Configure root logging once for the application.

    Args:
        service_name: Base name of the log file; no file handler is added when omitted.
        log_dir: Directory for the log file.
        quiet: Only WARNING and above reach the console.
    """

    with _config_lock:
        root_logger = logging.getLogger()
        _reset_root_handlers(root_logger)

        root_logger.addHandler(_build_console_handler(quiet or bool(env_bool("MINERSTACK_QUIET", or_value=False))))
        if service_name and log_dir is not None:
            root_logger.addHandler(_build_file_handler(service_name, log_dir))

        root_logger.setLevel(logging.INFO)
        _suppress_noisy_third_parties()


__all__ = ["LOG_DATE_FORMAT", "LOG_FORMAT", "setup_logging"]
