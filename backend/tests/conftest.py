"""Shared test fixtures for backend tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from inkpress.core.config import settings
from inkpress.core.database import get_session
from inkpress.models.conversation import Chat, Message
from inkpress.models.profile import ROLE_USER, Profile
from inkpress.services.llm.base import BaseLLMProvider

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def get_test_session():
    with Session(test_engine) as session:
        yield session


class FakeProvider(BaseLLMProvider):
    """Streams fixed chunks. `fail_at` raises before the chunk with that index."""

    def __init__(self, chunks=("Hello", " from", " assistant")):
        self.chunks = list(chunks)
        self.fail_at: int | None = None
        self.delay = 0.0
        self.draft = None
        self.calls: list[list] = []

    async def chat_stream(self, messages):
        self.calls.append(messages)
        for i, chunk in enumerate(self.chunks):
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_at == i:
                raise RuntimeError("provider exploded")
            yield chunk

    async def generate_structured(self, prompt, schema):
        self.calls.append([prompt])
        if self.draft is None:
            raise RuntimeError("provider exploded")
        return schema.model_validate(self.draft)


def auth_headers(sub: str = "user-1", email: str | None = None) -> dict:
    token = jwt.encode(
        {
            "sub": sub,
            "email": email or f"{sub}@example.com",
            "aud": settings.jwt_audience,
            "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        },
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    return {"Authorization": f"Bearer {token}"}


def seed_profile(profile_id: str = "user-1", role: str = ROLE_USER, full_name: str | None = None) -> str:
    with Session(test_engine) as session:
        session.add(Profile(id=profile_id, email=f"{profile_id}@example.com", role=role, full_name=full_name))
        session.commit()
    return profile_id


def seed_chat(owner_id: str = "user-1", title: str = "Test Chat", messages=None, updated_at=None) -> str:
    """Insert a chat + messages directly into the test DB."""
    with Session(test_engine) as session:
        if session.get(Profile, owner_id) is None:
            session.add(Profile(id=owner_id, email=f"{owner_id}@example.com"))
            session.flush()
        chat = Chat(owner_id=owner_id, title=title)
        if updated_at is not None:
            chat.updated_at = updated_at
        session.add(chat)
        session.commit()
        session.refresh(chat)

        for role, content in messages or []:
            session.add(Message(chat_id=chat.id, role=role, content=content))
        session.commit()
        return chat.id


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import inkpress.models  # noqa: F401 - register models
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def client(provider):
    """FastAPI TestClient with the database and LLM provider patched."""
    with (
        patch("inkpress.core.database.engine", test_engine),
        patch("inkpress.services.exchange.engine", test_engine),
        patch("inkpress.services.exchange.get_llm_provider", return_value=provider),
        patch("inkpress.services.blogs.get_llm_provider", return_value=provider),
    ):
        from inkpress.main import app

        # Use FastAPI's dependency override for get_session
        app.dependency_overrides[get_session] = get_test_session

        with TestClient(app) as c:
            yield c

        app.dependency_overrides.clear()
