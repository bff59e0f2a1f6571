#!/usr/bin/env python3
"""Run the snapshot pipeline with its read API.

Starts uvicorn serving api.main:app; the ingester loop runs inside the app.

Usage:
    python scripts/run_pipeline.py [--host HOST] [--port PORT] [--log-level LEVEL]
    python scripts/run_pipeline.py --once   # single tick, no server

Environment:
    DATABASE_URL - Snapshot store (default: sqlite:///data/pipeline.db)
    AUTH_TOKEN - Optional bearer token for /data endpoints
    RATE_LIMIT_PER_MINUTE - Per-client limit on /data endpoints (default: 60, 0 disables)
    PIPELINE_INTERVAL_MINUTES, PIPELINE_LIVE_REFRESH_MINUTES, PIPELINE_PERIODS,
    PIPELINE_SOURCES, COINGECKO_IDS, COINGECKO_VS_CURRENCIES

Examples:
    python scripts/run_pipeline.py
    PIPELINE_INTERVAL_MINUTES=15 python scripts/run_pipeline.py --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the snapshot ingestion loop and its read-only API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=3000, help="Port to bind to (default: 3000)")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single ingestion tick and exit (no server)",
    )
    return parser.parse_args(argv)


def run_once() -> int:
    from api.main import build_ingester

    ingester = build_ingester().initialize()
    try:
        result = asyncio.run(ingester.tick())
    finally:
        ingester.close()
    print(
        f"tick at {result.timestamp}: {result.records} records, "
        f"archived={result.archived}, live_written={result.live_written}, "
        f"failed={list(result.failed_sources)}"
    )
    return 0 if result.live_written else 1


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.once:
        return run_once()

    import uvicorn

    print(f"Starting pipeline on {args.host}:{args.port}")
    print("Endpoints:")
    print(f"  - GET http://{args.host}:{args.port}/health")
    print(f"  - GET http://{args.host}:{args.port}/data/raw")
    print(f"  - GET http://{args.host}:{args.port}/data/transformed")
    print()

    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
    )

    return 0


if __name__ == "__main__":
    sys.exit(main())
