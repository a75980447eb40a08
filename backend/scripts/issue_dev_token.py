"""Mint a bearer token for local development.

In production tokens come from the identity provider. Locally, sign one with
the same secret the API verifies against, optionally promoting the profile
to admin.

Usage:
    cd backend
    uv run python scripts/issue_dev_token.py alice --email alice@example.com --admin
"""

import argparse
from datetime import datetime, timedelta, timezone

from jose import jwt
from sqlmodel import Session

from inkpress.core.config import settings
from inkpress.core.database import engine, init_db
from inkpress.models.profile import ROLE_ADMIN, ROLE_USER, Profile

parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
parser.add_argument("subject", help="Profile id to put in the `sub` claim")
parser.add_argument("--email", default="")
parser.add_argument("--admin", action="store_true", help="Create or promote the profile as admin")
parser.add_argument("--hours", type=int, default=24)
args = parser.parse_args()

token = jwt.encode(
    {
        "sub": args.subject,
        "email": args.email,
        "aud": settings.jwt_audience,
        "exp": datetime.now(timezone.utc) + timedelta(hours=args.hours),
    },
    settings.jwt_secret,
    algorithm=settings.jwt_algorithm,
)

if args.admin:
    init_db()
    with Session(engine) as session:
        profile = session.get(Profile, args.subject) or Profile(id=args.subject, email=args.email, role=ROLE_USER)
        profile.role = ROLE_ADMIN
        session.add(profile)
        session.commit()
    print(f"Profile {args.subject} is now an admin.")

print(token)
