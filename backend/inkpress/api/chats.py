"""REST API for chat session management."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from inkpress.core.auth import get_current_user
from inkpress.core.database import get_session
from inkpress.models.conversation import Chat
from inkpress.models.profile import Profile
from inkpress.services import chats

router = APIRouter()
logger = logging.getLogger(__name__)


class ChatRename(BaseModel):
    title: str


def _chat_dict(c: Chat) -> dict:
    return {
        "id": c.id,
        "title": c.title,
        "created_at": c.created_at.isoformat(),
        "updated_at": c.updated_at.isoformat(),
    }


@router.get("/")
async def list_chats(
    user: Profile = Depends(get_current_user), session: Session = Depends(get_session)
):
    return [_chat_dict(c) for c in chats.list_user_chats(session, user)]


@router.post("/")
async def create_chat(
    user: Profile = Depends(get_current_user), session: Session = Depends(get_session)
):
    chat = chats.create_chat(session, user)
    return {"chatId": chat.id}


@router.get("/{chat_id}/messages")
async def get_chat_messages(
    chat_id: str,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if chats.get_owned_chat(session, user, chat_id) is None:
        raise HTTPException(status_code=404, detail="Chat not found")

    return [
        {
            "id": m.id,
            "role": m.role,
            "content": m.content,
            "created_at": m.created_at.isoformat(),
        }
        for m in chats.get_chat_messages(session, user, chat_id)
    ]


@router.patch("/{chat_id}")
async def rename_chat(
    chat_id: str,
    body: ChatRename,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return _chat_dict(chats.update_chat_title(session, user, chat_id, body.title))


@router.delete("/{chat_id}")
async def delete_chat(
    chat_id: str,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if chats.delete_chat(session, user, chat_id):
        return {"status": "deleted"}
    return {"status": "noop"}
