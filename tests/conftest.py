from __future__ import annotations

import hashlib
import hmac
import json
import os
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

# -----------------------------------------------------------------------------
# Environment defaults for tests (must be set before meetai is imported)
# -----------------------------------------------------------------------------

os.environ.setdefault("API_KEY", "dev-secret-123")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.abspath('.test.db')}")
os.environ.setdefault("STREAM_API_KEY", "stream-key")
os.environ.setdefault("STREAM_API_SECRET", "stream-secret")
# nothing listens here; health reports redis as "error"
os.environ.setdefault("REDIS_URL", "redis://127.0.0.1:6399/0")

from meetai.core.db import SessionLocal, engine  # noqa: E402
from meetai.deps import get_chat, get_enqueuer, get_llm, get_video  # noqa: E402
from meetai.main import app  # noqa: E402
from meetai.models import Agent, Base, Meeting  # noqa: E402
from meetai.services.chat import ChannelMessage, ChatGateway  # noqa: E402
from meetai.services.video import VideoGateway, signature_matches  # noqa: E402

STREAM_KEY = os.environ["STREAM_API_KEY"]
STREAM_SECRET = os.environ["STREAM_API_SECRET"]


def sign_body(secret: str, body: bytes) -> str:
    """Compute the x-signature header Stream sends with a webhook body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


# -----------------------------------------------------------------------------
# DB schema setup/teardown
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _fresh_schema():
    """Every test starts from empty tables built from the SQLAlchemy models."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


# -----------------------------------------------------------------------------
# In-memory stand-ins for Stream / OpenAI / RQ
# -----------------------------------------------------------------------------


class FakeVideo(VideoGateway):
    def __init__(self, secret: str = STREAM_SECRET) -> None:
        self.secret = secret
        self.connected: list[tuple[str, str, str, str]] = []
        self.ended: list[tuple[str, str]] = []
        self.disconnected: list[tuple[str, str]] = []
        self.connect_error: Optional[Exception] = None
        self.end_error: Optional[Exception] = None

    def verify_webhook(self, body: bytes, signature: str) -> bool:
        return signature_matches(self.secret, body, signature)

    async def connect_agent(self, call_type, call_id, agent_user_id, instructions) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected.append((call_type, call_id, agent_user_id, instructions))

    async def end_call(self, call_type, call_id) -> None:
        if self.end_error is not None:
            raise self.end_error
        self.ended.append((call_type, call_id))

    async def disconnect_agent(self, call_type, call_id) -> None:
        self.disconnected.append((call_type, call_id))


class FakeChat(ChatGateway):
    def __init__(self) -> None:
        self.messages: list[ChannelMessage] = []
        self.users: list[tuple[str, str, Optional[str]]] = []
        self.sent: list[tuple[str, str, str]] = []
        self.history_limits: list[int] = []

    def recent_messages(self, channel_id, limit=25):
        self.history_limits.append(limit)
        return list(self.messages)

    def upsert_user(self, user_id, name, image=None) -> None:
        self.users.append((user_id, name, image))

    def send_message(self, channel_id, text, user_id) -> None:
        self.sent.append((channel_id, text, user_id))


class FakeLLM:
    def __init__(self, reply: str = "Sure, here is what was decided.") -> None:
        self.reply = reply
        self.error: Optional[Exception] = None
        self.calls: list[dict[str, Any]] = []

    def complete(self, messages, *, max_tokens=None, temperature=None) -> str:
        self.calls.append(
            {"messages": list(messages), "max_tokens": max_tokens, "temperature": temperature}
        )
        if self.error is not None:
            raise self.error
        return self.reply


class FakeEnqueuer:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.error: Optional[Exception] = None

    def __call__(self, meeting_id: str, transcript_url: str) -> None:
        if self.error is not None:
            raise self.error
        self.calls.append((meeting_id, transcript_url))


class Fakes:
    def __init__(self) -> None:
        self.video = FakeVideo()
        self.chat = FakeChat()
        self.llm = FakeLLM()
        self.enqueue = FakeEnqueuer()


@pytest.fixture()
def fakes():
    f = Fakes()
    app.dependency_overrides[get_video] = lambda: (lambda: f.video)
    app.dependency_overrides[get_chat] = lambda: (lambda: f.chat)
    app.dependency_overrides[get_llm] = lambda: (lambda: f.llm)
    app.dependency_overrides[get_enqueuer] = lambda: f.enqueue
    yield f
    app.dependency_overrides.clear()


# -----------------------------------------------------------------------------
# Test client + helpers
# -----------------------------------------------------------------------------


@pytest.fixture()
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def api_headers():
    return {"X-API-Key": os.getenv("API_KEY", "dev-secret-123")}


@pytest.fixture()
def send_event(client):
    """POST a signed webhook body; signature/api_key can be overridden per call."""

    def _send(
        payload: Any,
        *,
        signature: Optional[str | bytes] = None,
        api_key: Optional[str] = STREAM_KEY,
        raw: Optional[bytes] = None,
    ):
        body = raw if raw is not None else json.dumps(payload).encode("utf-8")
        headers = {"content-type": "application/json"}
        sig = signature if signature is not None else sign_body(STREAM_SECRET, body)
        if sig:
            headers["x-signature"] = sig
        if api_key:
            headers["x-api-key"] = api_key
        return client.post("/api/webhook", content=body, headers=headers)

    return _send


@pytest.fixture()
def db():
    with SessionLocal() as session:
        yield session


def make_agent(name: str = "Tutor", instructions: str = "Be concise.") -> Agent:
    with SessionLocal() as session:
        agent = Agent(name=name, instructions=instructions)
        session.add(agent)
        session.commit()
        session.refresh(agent)
        return agent


def make_meeting(agent_id: str, status: str = "upcoming", **fields: Any) -> Meeting:
    with SessionLocal() as session:
        meeting = Meeting(name="Weekly sync", agent_id=agent_id, status=status, **fields)
        session.add(meeting)
        session.commit()
        session.refresh(meeting)
        return meeting


def load_meeting(meeting_id: str) -> Optional[Meeting]:
    with SessionLocal() as session:
        return session.get(Meeting, meeting_id)
