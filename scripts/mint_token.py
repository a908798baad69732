#!/usr/bin/env python3
"""
Mint Token Script

Creates a bearer token signed with JWT_SECRET, for local development and
for door-staff devices before the identity provider is wired up.

Usage:
  python3 scripts/mint_token.py --sub admin-1 --role admin --name "Door Staff"
"""

import argparse
import os
import sys
from datetime import timedelta

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from app.config import settings
from app.services.auth import TokenService

logger = structlog.get_logger()


def main():
    parser = argparse.ArgumentParser(description="Mint a signed bearer token")
    parser.add_argument("--sub", required=True, help="User id (sub claim)")
    parser.add_argument("--email", help="Email claim")
    parser.add_argument("--name", help="Display name claim")
    parser.add_argument("--role", help="Role claim (use 'admin' for the admin API)")
    parser.add_argument("--hours", type=int, default=24, help="Validity in hours")

    args = parser.parse_args()

    service = TokenService(
        jwt_secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        audience=settings.jwt_audience,
    )
    token = service.create_token(
        user_id=args.sub,
        email=args.email,
        name=args.name,
        role=args.role,
        expires_in=timedelta(hours=args.hours),
    )
    logger.info("token_minted", sub=args.sub, role=args.role, hours=args.hours)
    print(token)


if __name__ == "__main__":
    main()
