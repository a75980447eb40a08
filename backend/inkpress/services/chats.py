"""Chat session lifecycle, scoped to the owning profile.

Every query filters on owner_id; the store has no row-level policies of its own.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, func, select

from inkpress.core.errors import NotFound, PersistenceError, ValidationError
from inkpress.models.conversation import DEFAULT_CHAT_TITLE, Chat, Message
from inkpress.models.profile import Profile

logger = logging.getLogger(__name__)


def get_owned_chat(session: Session, user: Profile, chat_id: str) -> Chat | None:
    return session.exec(
        select(Chat).where(Chat.id == chat_id, Chat.owner_id == user.id)
    ).first()


def create_chat(session: Session, user: Profile) -> Chat:
    chat = Chat(owner_id=user.id, title=DEFAULT_CHAT_TITLE)
    try:
        session.add(chat)
        session.commit()
        session.refresh(chat)
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Error creating chat for {user.id}")
        raise PersistenceError("Failed to create chat")
    logger.debug(f"Created chat {chat.id} for {user.id}")
    return chat


def delete_chat(session: Session, user: Profile, chat_id: str) -> bool:
    """Delete an owned chat and its messages. Returns False when nothing matched."""
    chat = get_owned_chat(session, user, chat_id)
    if chat is None:
        logger.debug(f"Delete: chat {chat_id} not owned by {user.id}, nothing to do")
        return False
    try:
        session.delete(chat)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Error deleting chat {chat_id}")
        raise PersistenceError("Failed to delete chat")
    logger.debug(f"Deleted chat {chat_id}")
    return True


def list_user_chats(session: Session, user: Profile) -> list[Chat]:
    """Most recently updated first. Store errors are logged and yield an empty list."""
    try:
        return list(
            session.exec(
                select(Chat)
                .where(Chat.owner_id == user.id)
                .order_by(Chat.updated_at.desc())  # type: ignore
            ).all()
        )
    except SQLAlchemyError:
        logger.exception(f"Error fetching chats for {user.id}")
        return []


def get_chat_messages(session: Session, user: Profile, chat_id: str) -> list[Message]:
    try:
        return list(
            session.exec(
                select(Message)
                .join(Chat)
                .where(Message.chat_id == chat_id, Chat.owner_id == user.id)
                .order_by(Message.created_at)  # type: ignore
            ).all()
        )
    except SQLAlchemyError:
        logger.exception(f"Error fetching messages for chat {chat_id}")
        return []


def update_chat_title(session: Session, user: Profile, chat_id: str, title: str) -> Chat:
    title = title.strip()
    if not title:
        raise ValidationError("Title must not be empty")

    chat = get_owned_chat(session, user, chat_id)
    if chat is None:
        raise NotFound("Chat not found")

    chat.title = title
    chat.updated_at = datetime.now(timezone.utc)
    try:
        session.add(chat)
        session.commit()
        session.refresh(chat)
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Error updating title of chat {chat_id}")
        raise PersistenceError("Failed to update chat title")
    return chat


def count_messages(session: Session, chat_id: str) -> int:
    return session.exec(
        select(func.count()).select_from(Message).where(Message.chat_id == chat_id)
    ).one()


def derive_title(text: str) -> str:
    """First 50 characters, stripped, with an ellipsis when the text was cut."""
    title = text[:50].strip()
    return title + ("..." if len(text) > 50 else "")
