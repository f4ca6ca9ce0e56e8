"""Run the zen points cycle reconciliation once.

Useful after an outage of the scheduler, or to preview a run with a
different reference time.

Example:
    python tooling/scripts/run_cycle_reconciliation.py --page-size 200
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute zen points cycle reconciliation once")
    parser.add_argument(
        "--now",
        default=None,
        help="ISO-8601 reference time; defaults to the current UTC time.",
    )
    parser.add_argument("--page-size", type=int, default=None, help="Customers fetched per page.")
    parser.add_argument("--max-pages", type=int, default=None, help="Safety limit on pages per run.")
    parser.add_argument("--cycle-days", type=int, default=None, help="Override the cycle length in days.")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> dict[str, object]:
    src = Path(__file__).resolve().parents[2] / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))

    from zenpoints_api.core.clock import parse_timestamp  # type: ignore import-position
    from zenpoints_api.db.session import async_session  # type: ignore import-position
    from zenpoints_api.jobs.loyalty import run_cycle_reconciliation  # type: ignore import-position

    now: datetime | None = None
    if args.now:
        now = parse_timestamp(args.now)
        if now is None:
            raise SystemExit(f"Invalid --now value: {args.now}")

    return await run_cycle_reconciliation(
        session_factory=async_session,
        now=now,
        page_size=args.page_size,
        max_pages=args.max_pages,
        cycle_days=args.cycle_days,
    )


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args))
    logger.success(
        "Cycle reconciliation run completed",
        processed=summary.get("processed", 0),
        reset=summary.get("reset", 0),
        failed=summary.get("failed", 0),
        truncated=summary.get("truncated", False),
    )
    return 1 if summary.get("failed") else 0


if __name__ == "__main__":
    sys.exit(main())
