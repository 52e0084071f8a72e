#!/usr/bin/env python3
"""
Run the collection cache preload once against a database and report the result.

Useful to check that every collection loads and shapes cleanly before
deploying, or to time the warm-up from a developer workstation.
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Optional

from service_portfolio.app.cache import CollectionCache
from service_portfolio.app.persistence import PostgreSQLStore


async def warm(*, postgres_dsn: str, show_payloads: bool) -> dict:
    """Execute a preload and return the summary."""
    store = PostgreSQLStore(postgres_dsn, min_size=1, max_size=5)
    await store.start()
    try:
        cache = CollectionCache(store)
        summary = await cache.preload()
        summary["cache"] = cache.get_stats()
        if show_payloads:
            summary["payloads"] = {
                resource: cache.entry(resource).payload
                for resource in summary["loaded"]
            }
        return summary
    finally:
        await store.stop()


def _parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Preload the portfolio collection cache once.")
    parser.add_argument(
        "--postgres-dsn",
        default=os.getenv("PORTFOLIO_POSTGRES_DSN", "postgresql://localhost:5432/portfolio"),
        help="PostgreSQL connection string",
    )
    parser.add_argument("--show-payloads", action="store_true", help="Include the shaped payloads in the output")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    args = _parse_args(argv)
    try:
        summary = asyncio.run(warm(postgres_dsn=args.postgres_dsn, show_payloads=args.show_payloads))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[cache-warm] failed: {exc}", file=sys.stderr)
        return 1

    rendered = json.dumps(summary, indent=2, default=str)
    print(rendered)

    if args.output:
        args.output.write_text(rendered)

    return 0 if not summary["errors"] else 2


if __name__ == "__main__":
    raise SystemExit(main())
