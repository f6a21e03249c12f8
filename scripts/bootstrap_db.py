"""
Run the startup readiness sequence once, outside the web server.

Useful before `alembic upgrade head` in CI or to diagnose a database that the
API reports as degraded. Prints the bootstrap report as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from userbase.bootstrap.orchestrator import bootstrap
from userbase.bootstrap.results import BootstrapStatus
from userbase.config import settings
from userbase.db import dispose_engine
from userbase.logging import configure_logging


async def _run(args: argparse.Namespace) -> int:
    cfg = settings.model_copy(
        update={
            "db_connect_max_attempts": args.max_attempts,
            "db_connect_retry_delay_s": args.delay,
        }
    )
    try:
        report = await bootstrap(cfg)
    finally:
        await dispose_engine()

    print(json.dumps(report.to_dict(), indent=2, default=str))
    if args.strict and report.status is not BootstrapStatus.READY:
        return 1
    return 0


def main() -> None:
    p = argparse.ArgumentParser()
    p.add_argument("--max-attempts", type=int, default=settings.db_connect_max_attempts)
    p.add_argument("--delay", type=float, default=settings.db_connect_retry_delay_s, help="Seconds between attempts")
    p.add_argument("--strict", action="store_true", help="Exit 1 unless the database ends up ready")
    p.add_argument("--console", action="store_true", help="Human-readable logs instead of JSON")
    args = p.parse_args()

    configure_logging(settings.log_level, json=not args.console)
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
