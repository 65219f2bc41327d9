from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from src.common.logger import setup_logger
from src.network.main import build_parser, options_from_args
from src.network.service import Network


def parse_query(items: List[str]) -> Dict[str, str]:
    query: Dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"invalid query item {item!r}, expected key=value")
        query[key] = value
    return query


async def run(args: Any) -> int:
    network = Network()
    try:
        await network.init(options_from_args(args))
        if args.method == "get":
            result = await network.send_get(args.path, parse_query(args.query))
        else:
            result = await network.send_post(args.path, json.loads(args.body))
    finally:
        await network.close()

    if not result.ok:
        print(f"Request failed after {result.attempts} attempt(s): {result.reason.value}", file=sys.stderr)
        for err in result.errors:
            peer = err.peer.address if err.peer else "-"
            print(f"  [{err.reason.value}] {peer}: {err.message}", file=sys.stderr)
        return 1
    print(json.dumps(result.data, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser("One-shot API call through a selected peer")
    parser.add_argument("method", choices=["get", "post"])
    parser.add_argument("path", help="API path, e.g. blockchain or transactions")
    parser.add_argument("--query", action="append", default=[], help="key=value, repeatable (GET)")
    parser.add_argument("--body", type=str, default="{}", help="JSON body (POST)")
    args = parser.parse_args(argv)
    setup_logger(args.log_level)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
