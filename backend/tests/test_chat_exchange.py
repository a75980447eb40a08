"""Tests for the streaming chat exchange."""

import asyncio
import json
from unittest.mock import patch

from sqlmodel import Session, select

from tests.conftest import FakeProvider, auth_headers, seed_chat, seed_profile, test_engine
from inkpress.core.config import settings
from inkpress.models.conversation import Chat, Message
from inkpress.models.profile import Profile
from inkpress.services import exchange
from inkpress.services.chats import derive_title
from inkpress.services.exchange import Turn, start_exchange


def _turn(role, text):
    return {"role": role, "parts": [{"type": "text", "text": text}]}


def _events(response) -> list:
    """Decode SSE frames; the terminal [DONE] marker is kept as a string."""
    events = []
    for frame in response.text.split("\n\n"):
        if not frame.startswith("data: "):
            continue
        payload = frame[len("data: "):]
        events.append(payload if payload == "[DONE]" else json.loads(payload))
    return events


def _streamed_text(response) -> str:
    return "".join(e["delta"] for e in _events(response) if isinstance(e, dict) and e["type"] == "text-delta")


def _messages(chat_id):
    with Session(test_engine) as session:
        return session.exec(
            select(Message).where(Message.chat_id == chat_id).order_by(Message.created_at)
        ).all()


def _title(chat_id):
    with Session(test_engine) as session:
        return session.get(Chat, chat_id).title


def test_unauthenticated_exchange_writes_nothing(client, provider):
    response = client.post("/api/chat", json={"messages": [_turn("user", "hi")]})
    assert response.status_code == 401
    assert provider.calls == []

    with Session(test_engine) as session:
        assert session.exec(select(Message)).all() == []
        assert session.exec(select(Chat)).all() == []
        assert session.exec(select(Profile)).all() == []


def test_exchange_on_foreign_chat_is_not_found(client, provider):
    cid = seed_chat(owner_id="user-2")
    response = client.post(
        "/api/chat",
        json={"messages": [_turn("user", "let me in")], "chatId": cid},
        headers=auth_headers("user-1"),
    )
    assert response.status_code == 404
    assert provider.calls == []
    assert _messages(cid) == []


def test_exchange_on_missing_chat_is_not_found(client):
    response = client.post(
        "/api/chat",
        json={"messages": [_turn("user", "hello?")], "chatId": "does-not-exist"},
        headers=auth_headers(),
    )
    assert response.status_code == 404


def test_exchange_streams_reply(client):
    cid = seed_chat()
    response = client.post(
        "/api/chat", json={"messages": [_turn("user", "Hi")], "chatId": cid}, headers=auth_headers()
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert _streamed_text(response) == "Hello from assistant"

    events = _events(response)
    assert events[-2] == {"type": "finish"}
    assert events[-1] == "[DONE]"


def test_exchange_persists_user_and_assistant_messages(client):
    cid = seed_chat()
    client.post("/api/chat", json={"messages": [_turn("user", "save me")], "chatId": cid}, headers=auth_headers())

    messages = _messages(cid)
    assert [(m.role, m.content) for m in messages] == [
        ("user", "save me"),
        ("assistant", "Hello from assistant"),
    ]


def test_user_text_concatenates_text_parts_only(client, provider):
    cid = seed_chat()
    turn = {
        "role": "user",
        "parts": [
            {"type": "text", "text": "Hello "},
            {"type": "file"},
            {"type": "text", "text": "world"},
        ],
    }
    client.post("/api/chat", json={"messages": [turn], "chatId": cid}, headers=auth_headers())

    assert _messages(cid)[0].content == "Hello world"
    assert provider.calls[0][-1].content == "Hello world"


def test_full_history_forwarded_to_provider(client, provider):
    cid = seed_chat()
    history = [_turn("user", "one"), _turn("assistant", "two"), _turn("user", "three")]
    client.post("/api/chat", json={"messages": history, "chatId": cid}, headers=auth_headers())

    sent = provider.calls[0]
    assert [(m.role, m.content) for m in sent] == [("user", "one"), ("assistant", "two"), ("user", "three")]
    # Only the latest user turn is stored by this exchange
    assert [m.content for m in _messages(cid) if m.role == "user"] == ["three"]


def test_first_exchange_sets_title(client):
    cid = seed_chat(title="New Chat")
    client.post("/api/chat", json={"messages": [_turn("user", "Hello world")], "chatId": cid}, headers=auth_headers())
    assert _title(cid) == "Hello world"


def test_long_first_message_title_is_truncated(client):
    cid = seed_chat()
    text = "abcdefghij" * 8
    client.post("/api/chat", json={"messages": [_turn("user", text)], "chatId": cid}, headers=auth_headers())
    assert _title(cid) == text[:50] + "..."


def test_title_cut_at_whitespace_keeps_ellipsis(client):
    cid = seed_chat()
    text = "a" * 49 + " " + "b" * 30
    client.post("/api/chat", json={"messages": [_turn("user", text)], "chatId": cid}, headers=auth_headers())
    assert _title(cid) == "a" * 49 + "..."


def test_fifty_character_message_is_not_marked_cut(client):
    cid = seed_chat()
    client.post("/api/chat", json={"messages": [_turn("user", "z" * 50)], "chatId": cid}, headers=auth_headers())
    assert _title(cid) == "z" * 50


def test_title_derived_only_after_first_round_trip(client):
    cid = seed_chat()
    first = [_turn("user", "First question")]
    with patch("inkpress.services.exchange.derive_title", wraps=derive_title) as spy:
        client.post("/api/chat", json={"messages": first, "chatId": cid}, headers=auth_headers())
        assert _title(cid) == "First question"

        client.patch(f"/api/chats/{cid}", json={"title": "Renamed"}, headers=auth_headers())

        second = first + [_turn("assistant", "Hello from assistant"), _turn("user", "Second question")]
        client.post("/api/chat", json={"messages": second, "chatId": cid}, headers=auth_headers())

    assert spy.call_count == 1
    assert _title(cid) == "Renamed"
    assert len(_messages(cid)) == 4


def test_provider_failure_keeps_user_message(client, provider):
    cid = seed_chat()
    provider.fail_at = 0
    response = client.post(
        "/api/chat", json={"messages": [_turn("user", "doomed")], "chatId": cid}, headers=auth_headers()
    )
    assert response.status_code == 500
    assert "exploded" not in response.text

    assert [(m.role, m.content) for m in _messages(cid)] == [("user", "doomed")]

    listed = client.get(f"/api/chats/{cid}/messages", headers=auth_headers()).json()
    assert [m["content"] for m in listed] == ["doomed"]


def test_provider_construction_failure_is_processing_error(client):
    cid = seed_chat()
    with patch("inkpress.services.exchange.get_llm_provider", side_effect=ValueError("Unknown LLM provider")):
        response = client.post(
            "/api/chat", json={"messages": [_turn("user", "hi")], "chatId": cid}, headers=auth_headers()
        )
    assert response.status_code == 500
    assert response.json()["detail"] == "An error occurred while processing your request."


def test_mid_stream_failure_reports_error_without_partial_reply(client, provider):
    cid = seed_chat()
    provider.fail_at = 2
    response = client.post(
        "/api/chat", json={"messages": [_turn("user", "half way")], "chatId": cid}, headers=auth_headers()
    )
    assert response.status_code == 200

    events = _events(response)
    assert {"type": "error", "errorText": "An error occurred while processing your request."} in events
    assert events[-1] == "[DONE]"
    assert _streamed_text(response) == "Hello from"

    assert [m.role for m in _messages(cid)] == ["user"]
    assert _title(cid) == "Test Chat"


def test_slow_provider_times_out(client, provider):
    cid = seed_chat()
    provider.delay = 0.5
    with patch.object(settings, "llm_timeout_seconds", 0.05):
        response = client.post(
            "/api/chat", json={"messages": [_turn("user", "anyone?")], "chatId": cid}, headers=auth_headers()
        )
    assert response.status_code == 500
    assert [m.role for m in _messages(cid)] == ["user"]


def test_exchange_without_chat_id_is_stateless(client):
    response = client.post("/api/chat", json={"messages": [_turn("user", "quick one")]}, headers=auth_headers())
    assert response.status_code == 200
    assert _streamed_text(response) == "Hello from assistant"

    with Session(test_engine) as session:
        assert session.exec(select(Message)).all() == []


def test_exchange_accepts_plain_content_turns(client, provider):
    cid = seed_chat()
    client.post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "plain text"}], "chatId": cid},
        headers=auth_headers(),
    )
    assert _messages(cid)[0].content == "plain text"


def test_reply_persisted_when_nobody_reads_the_stream():
    seed_profile("user-1")
    cid = seed_chat()

    async def run():
        with Session(test_engine) as session:
            user = session.get(Profile, "user-1")
            await start_exchange(
                session, user, [Turn(role="user", content="walk away")], cid, provider=FakeProvider()
            )
        # The relay is never consumed, as when the client disconnects
        loop = asyncio.get_running_loop()
        await asyncio.gather(*[t for t in exchange._background_tasks if t.get_loop() is loop])

    with patch("inkpress.services.exchange.engine", test_engine):
        asyncio.run(run())

    assert [(m.role, m.content) for m in _messages(cid)] == [
        ("user", "walk away"),
        ("assistant", "Hello from assistant"),
    ]
    assert _title(cid) == "walk away"


def test_derive_title():
    assert derive_title("Hello world") == "Hello world"
    assert derive_title("  padded  ") == "padded"
    assert derive_title("x" * 50) == "x" * 50
    assert derive_title("a" * 49 + " " + "b" * 30) == "a" * 49 + "..."
    assert derive_title(" " + "c" * 60) == "c" * 49 + "..."
    assert derive_title("y" * 80) == "y" * 50 + "..."
