#!/usr/bin/env python3
# =============================================================================
# scripts/create_session_token.py - Development Session Token
# =============================================================================
# Signs a session cookie value with SECRET_KEY for local testing.
#
# Usage:
#   python scripts/create_session_token.py 7 alice
# =============================================================================

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from app.auth import create_session_token


def main():
    if len(sys.argv) < 2:
        print("Usage: create_session_token.py USER_ID [USERNAME]")
        sys.exit(1)

    user_id = int(sys.argv[1])
    username = sys.argv[2] if len(sys.argv) > 2 else None
    print(create_session_token(user_id, username))


if __name__ == "__main__":
    main()
