"""Bearer-token authentication and role guards.

Tokens are issued by the external identity provider; this service only
verifies them. The `sub` claim is the profile id, and a profile row is
created the first time a subject is seen.
"""

import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from inkpress.core.config import settings
from inkpress.core.database import get_session
from inkpress.core.errors import Forbidden, Unauthorized
from inkpress.models.profile import ROLE_USER, Profile

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Verify signature, expiry and audience. Raises Unauthorized on any failure."""
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except JWTError as e:
        logger.debug(f"Rejected token: {e}")
        raise Unauthorized()

    if not claims.get("sub"):
        raise Unauthorized()
    return claims


def _load_or_create_profile(session: Session, claims: dict) -> Profile:
    profile = session.get(Profile, claims["sub"])
    if profile is not None:
        return profile

    profile = Profile(id=claims["sub"], email=claims.get("email", ""), role=ROLE_USER)
    try:
        session.add(profile)
        session.commit()
    except IntegrityError:
        # A concurrent first request created the row
        session.rollback()
        logger.debug(f"Profile {claims['sub']} already created")
        profile = session.get(Profile, claims["sub"])
        if profile is None:
            raise Unauthorized()
        return profile
    session.refresh(profile)
    logger.info(f"Created profile for {profile.id}")
    return profile


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> Profile | None:
    if credentials is None:
        return None
    try:
        claims = decode_token(credentials.credentials)
    except Unauthorized:
        return None
    return _load_or_create_profile(session, claims)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> Profile:
    if credentials is None:
        raise Unauthorized()
    claims = decode_token(credentials.credentials)
    return _load_or_create_profile(session, claims)


async def require_admin(user: Profile = Depends(get_current_user)) -> Profile:
    if not user.is_admin:
        logger.info(f"Admin access denied for {user.id}")
        raise Forbidden("Access denied. Required role: admin")
    return user
