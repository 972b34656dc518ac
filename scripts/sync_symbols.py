"""CLI wrapper for one symbol master reconciliation pass."""

from __future__ import annotations

import argparse
import asyncio

from symbol_sync.config import get_settings
from symbol_sync.core.logging import setup_logging
from symbol_sync.core.telemetry import setup_telemetry
from symbol_sync.db.init import init_database
from symbol_sync.db.session import dispose_engine
from symbol_sync.domain import JobOutcome
from symbol_sync.sync.runner import run_symbol_sync


async def _run(exchanges: list[str] | None, create_schema: bool) -> int:
    settings = get_settings()
    if settings.telemetry_enabled:
        setup_telemetry(settings)
    try:
        if create_schema:
            await init_database()
        report = await run_symbol_sync(settings, exchanges=exchanges)
    finally:
        await dispose_engine()
    print(f"{settings.job_name} {report.status.value}: {report.summary()}")
    return 0 if report.status is JobOutcome.SUCCESS else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Reconcile the symbol master against Finnhub")
    parser.add_argument(
        "--exchange",
        action="append",
        dest="exchanges",
        help="Exchange code to sync (repeatable); defaults to the configured exchanges",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables before syncing",
    )
    args = parser.parse_args()
    setup_logging(get_settings().log_level)
    raise SystemExit(asyncio.run(_run(args.exchanges, args.create_schema)))


if __name__ == "__main__":
    main()
