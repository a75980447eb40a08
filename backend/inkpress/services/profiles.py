"""Profile management for the current user and for admins."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel
from sqlalchemy import or_
from sqlmodel import Session, col, func, select

from inkpress.core.errors import NotFound, ValidationError
from inkpress.models.blog import Blog
from inkpress.models.conversation import Chat
from inkpress.models.profile import ROLE_ADMIN, ROLE_USER, ROLES, Profile

logger = logging.getLogger(__name__)


class ProfileUpdate(BaseModel):
    full_name: str | None = None
    email: str | None = None
    role: str | None = None


@dataclass
class ProfilePage:
    profiles: list[Profile]
    total_count: int
    has_more: bool


def _apply(session: Session, profile: Profile, data: ProfileUpdate) -> Profile:
    if data.role is not None and data.role not in ROLES:
        raise ValidationError(f"Unknown role: {data.role}")

    if data.full_name is not None:
        profile.full_name = data.full_name
    if data.email is not None:
        profile.email = data.email
    if data.role is not None:
        profile.role = data.role

    profile.updated_at = datetime.now(timezone.utc)
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile


def update_profile(session: Session, user: Profile, data: ProfileUpdate) -> Profile:
    """Users edit their own profile. Only admins may change a role."""
    if not user.is_admin and data.role is not None:
        data = data.model_copy(update={"role": None})
    return _apply(session, user, data)


def _paginate(session: Session, query, page: int, limit: int) -> ProfilePage:
    page = max(page, 1)
    total = session.exec(select(func.count()).select_from(query.subquery())).one()
    profiles = session.exec(
        query.order_by(col(Profile.created_at).desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return ProfilePage(profiles=list(profiles), total_count=total, has_more=total > page * limit)


def list_profiles(session: Session, page: int = 1, limit: int = 20) -> ProfilePage:
    return _paginate(session, select(Profile), page, limit)


def search_profiles(session: Session, query: str, page: int = 1, limit: int = 20) -> ProfilePage:
    pattern = f"%{query}%"
    return _paginate(
        session,
        select(Profile).where(
            or_(col(Profile.full_name).ilike(pattern), col(Profile.email).ilike(pattern))
        ),
        page,
        limit,
    )


def get_profile_by_id(session: Session, profile_id: str) -> Profile | None:
    return session.get(Profile, profile_id)


def update_profile_as_admin(session: Session, profile_id: str, data: ProfileUpdate) -> Profile:
    profile = session.get(Profile, profile_id)
    if profile is None:
        raise NotFound("Profile not found")
    return _apply(session, profile, data)


def update_user_role(session: Session, profile_id: str, role: str) -> Profile:
    profile = session.get(Profile, profile_id)
    if profile is None:
        raise NotFound("User not found")
    profile = _apply(session, profile, ProfileUpdate(role=role))
    logger.info(f"Role of {profile_id} set to {role}")
    return profile


def delete_profile_as_admin(session: Session, admin: Profile, profile_id: str) -> None:
    """Remove a profile together with everything it owns."""
    if admin.id == profile_id:
        raise ValidationError("Cannot delete your own profile")

    profile = session.get(Profile, profile_id)
    if profile is None:
        raise NotFound("Profile not found")

    # Chats go through the ORM so their messages cascade
    for chat in session.exec(select(Chat).where(Chat.owner_id == profile_id)).all():
        session.delete(chat)
    for blog in session.exec(select(Blog).where(Blog.user_id == profile_id)).all():
        session.delete(blog)
    session.flush()
    session.delete(profile)
    session.commit()
    logger.info(f"Admin {admin.id} deleted profile {profile_id}")


def user_statistics(session: Session) -> dict:
    def count(*where) -> int:
        query = select(func.count()).select_from(Profile)
        if where:
            query = query.where(*where)
        return session.exec(query).one()

    since = datetime.now(timezone.utc) - timedelta(days=30)
    return {
        "total_users": count(),
        "admin_users": count(Profile.role == ROLE_ADMIN),
        "regular_users": count(Profile.role == ROLE_USER),
        "recent_users": count(Profile.created_at >= since),
    }
