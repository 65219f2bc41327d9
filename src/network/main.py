from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from src.common.config import NetworkOptions
from src.common.logger import log_structured, setup_logger
from src.network.service import Network


def build_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--network", type=str, default="devnet", help="Network preset name")
    parser.add_argument("--peer", type=str, default=None, help="Explicit seed peer host (disables discovery)")
    parser.add_argument("--peer-port", type=int, default=4003)
    parser.add_argument("--max-latency", type=int, default=300, help="Max peer latency in ms")
    parser.add_argument("--log-level", type=str, default="INFO")
    return parser


def options_from_args(args: argparse.Namespace) -> NetworkOptions:
    return NetworkOptions(
        network=args.network,
        peer=args.peer,
        peer_port=args.peer_port,
        max_latency=args.max_latency,
    )


async def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser("Watch network milestones through discovered peers")
    args = parser.parse_args(argv)
    logger = setup_logger(args.log_level)

    network = Network()
    try:
        await network.init(options_from_args(args))
        await network.watcher.wait()
        snapshot = network.snapshot()
        log_structured(logger, "info", "watch_finished", height=snapshot.height, version=snapshot.version)
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        await network.close()


def run_cli() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run_cli()
