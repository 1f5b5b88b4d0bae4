"""Command-line entry point.

Usage:
    python -m sportfun_market snapshot --sport nfl
    python -m sportfun_market config
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from sportfun_market.chain.contracts import SPORTS
from sportfun_market.config import Settings, get_settings
from sportfun_market.market.snapshot import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TREND_DAYS,
    DEFAULT_WINDOW_HOURS,
    MarketSnapshotService,
)

logger = logging.getLogger("sportfun_market")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sportfun_market", description="Sport.fun market snapshot builder")
    subcommands = parser.add_subparsers(dest="command", required=True)

    snapshot = subcommands.add_parser("snapshot", help="Build a market snapshot and print it as JSON")
    snapshot.add_argument("--sport", choices=SPORTS, required=True)
    snapshot.add_argument("--window-hours", type=float, default=DEFAULT_WINDOW_HOURS)
    snapshot.add_argument("--trend-days", type=float, default=DEFAULT_TREND_DAYS)
    snapshot.add_argument("--max-tokens", type=int, default=DEFAULT_MAX_TOKENS)
    snapshot.add_argument("--metadata-limit", type=int, default=None)
    snapshot.add_argument("--indent", type=int, default=2)

    subcommands.add_parser("config", help="Print the effective settings with secrets redacted")
    return parser


async def run_snapshot(settings: Settings, args: argparse.Namespace) -> dict:
    service = MarketSnapshotService.from_settings(settings)
    try:
        snapshot = await service.get_market_snapshot(
            args.sport,
            window_hours=args.window_hours,
            trend_days=args.trend_days,
            max_tokens=args.max_tokens,
            metadata_limit=args.metadata_limit,
        )
        state = service.last_build_state
        logger.info("Build finished with state=%s", state.value if state else None)
        return snapshot.to_dict()
    finally:
        await service.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "config":
        print(json.dumps(settings.redacted_summary(), indent=2))
        return 0

    payload = asyncio.run(run_snapshot(settings, args))
    print(json.dumps(payload, indent=args.indent or None))
    return 0


if __name__ == "__main__":
    sys.exit(main())
