"""Current user's profile."""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from inkpress.core.auth import get_current_user
from inkpress.core.database import get_session
from inkpress.models.profile import Profile
from inkpress.services import profiles
from inkpress.services.profiles import ProfileUpdate

router = APIRouter()


def profile_dict(p: Profile) -> dict:
    return {
        "id": p.id,
        "email": p.email,
        "full_name": p.full_name,
        "role": p.role,
        "created_at": p.created_at.isoformat(),
        "updated_at": p.updated_at.isoformat(),
    }


@router.get("")
async def get_profile(user: Profile = Depends(get_current_user)):
    return profile_dict(user)


@router.patch("")
async def update_profile(
    body: ProfileUpdate,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return profile_dict(profiles.update_profile(session, user, body))
