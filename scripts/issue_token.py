"""Print a signed development JWT for the evaluation API.

Usage:
    python scripts/issue_token.py [user-id] [minutes]
"""

import os
import sys
from datetime import timedelta
from uuid import uuid4

# Add project root to path so we can import drill_eval
sys.path.append(os.getcwd())

from drill_eval.config.settings import settings
from drill_eval.utils import create_access_token


def main():
    user_id = sys.argv[1] if len(sys.argv) > 1 else f"dev-{uuid4().hex[:8]}"
    minutes = int(sys.argv[2]) if len(sys.argv) > 2 else settings.security.access_token_expires_minutes
    token = create_access_token(
        user_id,
        settings.security,
        name="Development User",
        expires_delta=timedelta(minutes=minutes),
    )
    print(f"user: {user_id}")
    print(f"expires in: {minutes} minutes")
    print(token)


if __name__ == "__main__":
    main()
