#!/usr/bin/env python3
"""
Generate Access Keys Script

Issues a batch of single-use access keys for the current event and prints
the codes, one per line, for distribution.

Usage:
  python3 scripts/generate_access_keys.py --count 50 --created-by admin-uid
  python3 scripts/generate_access_keys.py --count 10 --expires 2025-10-02T12:00:00Z
"""

import argparse
import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from app.db.session import close_engines, get_write_session_factory
from app.db.store import SqlDocumentStore, parse_timestamp
from app.exceptions import DuplicateAccessKeyError
from app.observability import setup_logging
from app.services.access_keys import AccessKeyService
from app.services.event_details import EventDetailsService

logger = structlog.get_logger()

# Generated codes are random; a collision is retried this many times per key
MAX_COLLISION_RETRIES = 3


async def generate_keys(count: int, created_by: str, expires: str | None) -> list[str]:
    """Issue `count` keys and return their codes."""
    expires_at = parse_timestamp(expires)
    codes: list[str] = []

    factory = get_write_session_factory()
    try:
        async with factory() as session:
            store = SqlDocumentStore(session)
            event = await EventDetailsService(store).get_event_details()
            service = AccessKeyService(store)

            for _ in range(count):
                for attempt in range(MAX_COLLISION_RETRIES):
                    try:
                        key = await service.create_key(
                            created_by=created_by, expires_at=expires_at, event=event
                        )
                    except DuplicateAccessKeyError:
                        logger.warning("generated_code_collision", attempt=attempt + 1)
                        continue
                    codes.append(key.code)
                    break
    finally:
        await close_engines()

    logger.info("access_keys_generated", count=len(codes), created_by=created_by)
    return codes


def main():
    parser = argparse.ArgumentParser(
        description="Issue single-use event access keys",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--count", type=int, default=1, help="Number of keys to issue")
    parser.add_argument(
        "--created-by", default="cli", help="Identity recorded as the key creator"
    )
    parser.add_argument("--expires", help="Optional expiry (ISO 8601 date or timestamp)")

    args = parser.parse_args()

    if args.count < 1:
        logger.error("invalid_count", count=args.count)
        sys.exit(1)

    setup_logging()
    codes = asyncio.run(generate_keys(args.count, args.created_by, args.expires))
    for code in codes:
        print(code)

    sys.exit(0 if len(codes) == args.count else 1)


if __name__ == "__main__":
    main()
