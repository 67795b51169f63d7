"""
ImageShare command line: run the server and perform datastore maintenance.

Usage:
    imageshare serve [--host HOST] [--port PORT]
    imageshare migrate
    imageshare purge-expired
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import uvicorn
from pydantic import ValidationError

from imageshare.config import Settings, get_settings
from imageshare.database import create_store, init_db
from imageshare.logging_config import configure_logging
from imageshare.migrations.runner import run_migrations
from imageshare.services.image_service import purge_expired_images


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imageshare",
        description="Image sharing service with expiring share links.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the HTTP server")
    serve.add_argument("--host", default=None, help="bind address (default: IMAGESHARE_HOST)")
    serve.add_argument("--port", type=int, default=None, help="listen port (default: IMAGESHARE_PORT)")

    sub.add_parser("migrate", help="apply pending schema migrations and exit")
    sub.add_parser("purge-expired", help="delete images whose share link has expired")
    return parser


async def _migrate(settings: Settings) -> list[str]:
    store = create_store(settings)
    await store.connect()
    try:
        return await run_migrations(store)
    finally:
        await store.close()


async def _purge(settings: Settings) -> int:
    store = create_store(settings)
    try:
        await init_db(store)
        return await purge_expired_images(store)
    finally:
        await store.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"ERROR: invalid configuration:\n{e}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level)

    if args.command == "serve":
        # SIGINT/SIGTERM trigger the lifespan shutdown, which closes the pool
        uvicorn.run(
            "imageshare.main:create_app",
            factory=True,
            host=args.host or settings.host,
            port=args.port or settings.port,
            log_level=settings.log_level.lower(),
        )
        return 0

    if args.command == "migrate":
        applied = asyncio.run(_migrate(settings))
        print(f"Applied {len(applied)} migration(s)")
        for name in applied:
            print(f"  {name}")
        return 0

    if args.command == "purge-expired":
        removed = asyncio.run(_purge(settings))
        print(f"Purged {removed} expired image(s)")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
