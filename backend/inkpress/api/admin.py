"""Admin-only management of all blogs and user profiles."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from inkpress.api.blogs import blog_dict
from inkpress.api.profiles import profile_dict
from inkpress.core.auth import require_admin
from inkpress.core.database import get_session
from inkpress.models.profile import Profile
from inkpress.services import blogs, profiles
from inkpress.services.profiles import ProfilePage, ProfileUpdate

router = APIRouter(dependencies=[Depends(require_admin)])
logger = logging.getLogger(__name__)


class RoleUpdate(BaseModel):
    role: str


def _profiles_page(page: ProfilePage) -> dict:
    return {
        "profiles": [profile_dict(p) for p in page.profiles],
        "total_count": page.total_count,
        "has_more": page.has_more,
    }


@router.get("/blogs")
async def list_all_blogs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    result = blogs.list_blogs(session, page, limit)
    owners = {b.user_id: profiles.get_profile_by_id(session, b.user_id) for b in result.blogs}
    items = []
    for b in result.blogs:
        owner = owners.get(b.user_id)
        item = blog_dict(b)
        item["profiles"] = {"full_name": owner.full_name, "email": owner.email} if owner else None
        items.append(item)
    return {"blogs": items, "total_count": result.total_count, "has_more": result.has_more}


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    q: str | None = None,
    session: Session = Depends(get_session),
):
    if q:
        return _profiles_page(profiles.search_profiles(session, q, page, limit))
    return _profiles_page(profiles.list_profiles(session, page, limit))


@router.get("/users/stats")
async def user_statistics(session: Session = Depends(get_session)):
    return profiles.user_statistics(session)


@router.get("/users/{profile_id}")
async def get_user(profile_id: str, session: Session = Depends(get_session)):
    profile = profiles.get_profile_by_id(session, profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile_dict(profile)


@router.patch("/users/{profile_id}")
async def update_user(
    profile_id: str, body: ProfileUpdate, session: Session = Depends(get_session)
):
    return profile_dict(profiles.update_profile_as_admin(session, profile_id, body))


@router.put("/users/{profile_id}/role")
async def update_user_role(
    profile_id: str, body: RoleUpdate, session: Session = Depends(get_session)
):
    return profile_dict(profiles.update_user_role(session, profile_id, body.role))


@router.delete("/users/{profile_id}")
async def delete_user(
    profile_id: str,
    admin: Profile = Depends(require_admin),
    session: Session = Depends(get_session),
):
    profiles.delete_profile_as_admin(session, admin, profile_id)
    return {"status": "deleted"}
