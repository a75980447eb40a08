"""Message exchange: persist the user turn, stream the provider reply, persist the answer.

Flow:
1. Ownership of the chat is checked and the latest user turn is saved before
   the provider is called, so a failed generation still leaves it recorded.
2. The first chunk is awaited inside the request; a provider that fails to
   start turns into a ProcessingError (HTTP 500).
3. The rest of the generation runs in a detached task that feeds a queue.
   The response drains the queue as Server-Sent Events. A client disconnect
   stops the draining, not the task, so the assistant reply is still saved.
4. Once the stream completes the reply is saved and, on the first round
   trip, the chat title is derived from the first user turn.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import AsyncIterator

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from inkpress.core.config import settings
from inkpress.core.database import engine
from inkpress.core.errors import NotFound, ProcessingError, Unauthorized
from inkpress.models.conversation import Chat, Message
from inkpress.models.profile import Profile
from inkpress.services.chats import count_messages, derive_title, get_owned_chat
from inkpress.services.llm import get_llm_provider
from inkpress.services.llm.base import BaseLLMProvider
from inkpress.services.llm.base import Message as LLMMessage

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_DONE = object()

# Strong references so detached generation tasks are not garbage collected mid-run
_background_tasks: set[asyncio.Task] = set()


class TurnPart(BaseModel):
    type: str = "text"
    text: str | None = None


class Turn(BaseModel):
    id: str | None = None
    role: str  # "user" | "assistant" | "system"
    parts: list[TurnPart] = []
    content: str | None = None

    def text(self) -> str:
        """Concatenate all text parts. A bare `content` string counts as one part."""
        if not self.parts and self.content is not None:
            return self.content
        return "".join(p.text or "" for p in self.parts if p.type == "text")


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def _next_chunk(stream: AsyncIterator[str]) -> str | None:
    return await anext(stream, None)


async def start_exchange(
    session: Session,
    user: Profile | None,
    turns: list[Turn],
    chat_id: str | None = None,
    provider: BaseLLMProvider | None = None,
) -> AsyncIterator[str]:
    """Validate, persist the user turn and open the provider stream.

    Returns an async iterator of SSE frames. Raises Unauthorized, NotFound or
    ProcessingError before anything has been streamed.
    """
    if user is None:
        raise Unauthorized()

    if chat_id is not None and get_owned_chat(session, user, chat_id) is None:
        logger.debug(f"Chat {chat_id} not found for {user.id}")
        raise NotFound("Chat not found")

    if chat_id is not None and turns and turns[-1].role == "user":
        _save_user_turn(session, chat_id, turns[-1].text())

    history = [LLMMessage(role=t.role, content=t.text()) for t in turns]
    loop = asyncio.get_running_loop()
    deadline = loop.time() + settings.llm_timeout_seconds

    try:
        provider = provider or get_llm_provider()
        stream = provider.chat_stream(history)
        first = await asyncio.wait_for(_next_chunk(stream), settings.llm_timeout_seconds)
    except Exception:
        logger.exception(f"Chat provider failed to start for chat {chat_id}")
        raise ProcessingError()

    first_user = next((t for t in turns if t.role == "user"), None)
    title_source = first_user.text() if first_user is not None else None

    queue: asyncio.Queue = asyncio.Queue()
    task = asyncio.create_task(
        _generate(stream, first, queue, chat_id, title_source, deadline)
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return _relay(queue)


def _save_user_turn(session: Session, chat_id: str, content: str) -> None:
    try:
        session.add(Message(chat_id=chat_id, role="user", content=content))
        chat = session.get(Chat, chat_id)
        if chat:
            chat.updated_at = datetime.now(timezone.utc)
            session.add(chat)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Failed to save user message for chat {chat_id}")
        raise ProcessingError()


async def _drain(stream: AsyncIterator[str], chunks: list[str], queue: asyncio.Queue) -> None:
    async for chunk in stream:
        chunks.append(chunk)
        queue.put_nowait(_sse({"type": "text-delta", "delta": chunk}))


async def _generate(
    stream: AsyncIterator[str],
    first: str | None,
    queue: asyncio.Queue,
    chat_id: str | None,
    title_source: str | None,
    deadline: float,
) -> None:
    chunks: list[str] = []
    try:
        if first is not None:
            chunks.append(first)
            queue.put_nowait(_sse({"type": "text-delta", "delta": first}))
            remaining = max(deadline - asyncio.get_running_loop().time(), 0)
            await asyncio.wait_for(_drain(stream, chunks, queue), remaining)

        if chat_id is not None:
            finish_exchange(chat_id, "".join(chunks), title_source)

        queue.put_nowait(_sse({"type": "finish"}))
    except Exception:
        logger.exception(f"Chat generation failed for chat {chat_id}")
        queue.put_nowait(_sse({"type": "error", "errorText": ProcessingError.detail}))
    finally:
        queue.put_nowait(_DONE)


def finish_exchange(chat_id: str, reply: str, title_source: str | None) -> None:
    """Persist the completed reply and derive the title after the first round trip."""
    with Session(engine) as session:
        session.add(Message(chat_id=chat_id, role="assistant", content=reply))
        chat = session.get(Chat, chat_id)
        if chat:
            chat.updated_at = datetime.now(timezone.utc)
            session.add(chat)
        session.commit()

        if chat is None or title_source is None:
            return
        if count_messages(session, chat_id) <= 2:
            chat.title = derive_title(title_source)
            session.add(chat)
            session.commit()
            logger.debug(f"Titled chat {chat_id}: {chat.title}")


async def _relay(queue: asyncio.Queue) -> AsyncIterator[str]:
    while True:
        item = await queue.get()
        if item is _DONE:
            yield "data: [DONE]\n\n"
            return
        yield item
