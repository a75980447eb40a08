"""Streaming chat endpoint: one request per user turn, reply relayed as Server-Sent Events."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlmodel import Session

from inkpress.core.auth import get_optional_user
from inkpress.core.database import get_session
from inkpress.models.profile import Profile
from inkpress.services.exchange import STREAM_HEADERS, Turn, start_exchange

router = APIRouter()
logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    messages: list[Turn] = []
    chat_id: str | None = Field(default=None, alias="chatId")

    model_config = {"populate_by_name": True}


@router.post("")
async def chat(
    body: ChatRequest,
    user: Profile | None = Depends(get_optional_user),
    session: Session = Depends(get_session),
):
    frames = await start_exchange(session, user, body.messages, body.chat_id)
    return StreamingResponse(frames, media_type="text/event-stream", headers=STREAM_HEADERS)
