#!/usr/bin/env python3
"""
Issue a session token for local development.

Production tokens are minted by the web frontend with the same
SESSION_JWT_SECRET.

Usage:
    python3 scripts/issue_session_token.py alice@example.com --name Alice
    curl -H "Authorization: Bearer $(python3 scripts/issue_session_token.py alice@example.com)" \
        http://localhost:8000/v1/user
"""

import argparse
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import settings
from app.services.session_auth import SessionTokenService


def main():
    parser = argparse.ArgumentParser(description="Mint a Conflux session token")
    parser.add_argument("email", help="Identity the token authenticates")
    parser.add_argument("--name", help="Display name claim")
    parser.add_argument(
        "--hours",
        type=int,
        default=settings.session_jwt_expire_hours,
        help="Lifetime in hours",
    )
    args = parser.parse_args()

    service = SessionTokenService(settings.session_jwt_secret, expire_hours=args.hours)
    print(service.issue(args.email, name=args.name))


if __name__ == "__main__":
    main()
