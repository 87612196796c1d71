"""Command-line entry point: ``python -m minerstack``."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from .app_config import AppConfig, InMemoryAppConfig, MiningMode
from .collaborators import StaticWalletIdentity, WalletKeys
from .config.errors import ConfigurationError
from .config.runtime import env_str
from .config.settings import AppPaths
from .service_runner import run_headless


def _wallet_identity_from_env() -> StaticWalletIdentity:
    address = env_str("MINERSTACK_WALLET_ADDRESS", required=True)
    view_key = env_str("MINERSTACK_WALLET_VIEW_KEY", required=True)
    spend_key = env_str("MINERSTACK_WALLET_SPEND_KEY", required=True)
    return StaticWalletIdentity(address=address, keys=WalletKeys(view_key=view_key, spend_key=spend_key))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="minerstack", description="Run the local mining stack without a GUI")
    parser.add_argument("--home", type=Path, help="Application home (defaults to MINERSTACK_HOME or ~/.minerstack)")
    parser.add_argument("--start-mining", action="store_true", help="Start the miners once setup has finished")
    parser.add_argument("--p2pool", action="store_true", help="Mine through the p2pool node")
    parser.add_argument("--mode", choices=[mode.value for mode in MiningMode], default=MiningMode.ECO.value)
    parser.add_argument("--no-cpu", action="store_true", help="Disable CPU mining")
    parser.add_argument("--no-gpu", action="store_true", help="Disable GPU mining")
    parser.add_argument("--monero-address", default="", help="Address credited for merge-mined monero blocks")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        identity = _wallet_identity_from_env()
    except ConfigurationError as exc:
        sys.stderr.write(f"{exc}\n")
        return 2

    app_config = InMemoryAppConfig(
        AppConfig(
            p2pool_enabled=args.p2pool,
            cpu_mining_enabled=not args.no_cpu,
            gpu_mining_enabled=not args.no_gpu,
            mode=MiningMode.parse(args.mode),
            monero_address=args.monero_address,
        )
    )
    paths = AppPaths.under(args.home) if args.home else None
    return run_headless(app_config, identity, paths=paths, start_mining=args.start_mining)


if __name__ == "__main__":
    sys.exit(main())
