# crm_intake/cli.py
"""
Command line entry point: run the API server and manage the schema.
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Callable, Dict, List, Optional

import uvicorn

from crm_intake.core.config import get_settings
from crm_intake.core.logging import configure_structlog, get_structlog_logger
from crm_intake.db.session import create_database_engine, health_check, init_models

logger = get_structlog_logger(__name__)


def cmd_serve(args: argparse.Namespace) -> int:
    settings = get_settings()
    uvicorn.run(
        "crm_intake.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        reload=args.reload,
        proxy_headers=True,
        log_config=None,
    )
    return 0


async def _init_db() -> None:
    engine = create_database_engine(get_settings())
    try:
        await init_models(engine)
    finally:
        await engine.dispose()


def cmd_init_db(args: argparse.Namespace) -> int:
    asyncio.run(_init_db())
    print("[ok] schema ready")
    return 0


async def _check_db() -> Dict:
    engine = create_database_engine(get_settings())
    try:
        return await health_check(engine)
    finally:
        await engine.dispose()


def cmd_check_db(args: argparse.Namespace) -> int:
    result = asyncio.run(_check_db())
    if result["status"] != "healthy":
        print(f"[x] database {result['status']}")
        return 1
    print(f"[ok] database healthy ({result['response_time_ms']} ms)")
    return 0


COMMANDS: Dict[str, Callable[[argparse.Namespace], int]] = {
    "serve": cmd_serve,
    "init-db": cmd_init_db,
    "check-db": cmd_check_db,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="crm-intake", description="CRM lead intake service")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Bind address (default: API_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: API_PORT)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    sub.add_parser("init-db", help="Create the leads_raw and leads tables if missing")
    sub.add_parser("check-db", help="Check database connectivity")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_structlog(get_settings())
    try:
        return COMMANDS[args.command](args)
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
