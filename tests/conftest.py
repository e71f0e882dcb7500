import json
from typing import Any, Dict, Iterator, List, Optional
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from skillpath import auth
from skillpath.ai import AIClient
from skillpath.auth import create_access_token
from skillpath.config import load_settings
from skillpath.database import create_db_engine, create_session_factory, init_db
from skillpath.main import create_app
from skillpath.models import User
from skillpath.store import DocumentStore


def fenced(payload: Any) -> str:
    """Wrap a payload the way the model does: prose around a ```json block."""
    return "Sure! Here is the result you asked for:\n```json\n" + json.dumps(payload, indent=2) + "\n```\nGood luck!"


class FakeAIClient(AIClient):
    """Canned upstream replies, consumed in order; records every prompt."""

    def __init__(self, responses: Optional[List[Any]] = None) -> None:
        self.responses = list(responses or [])
        self.prompts: List[str] = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError(f"unexpected upstream call: {prompt[:80]}")
        reply = self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(auth, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def session_factory() -> Iterator[sessionmaker]:
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db: Session) -> DocumentStore:
    return DocumentStore(db)


@pytest.fixture
def ai() -> FakeAIClient:
    return FakeAIClient()


@pytest.fixture
def client(session_factory: sessionmaker, ai: FakeAIClient) -> TestClient:
    app = create_app(settings=load_settings(), session_factory=session_factory, ai_client=ai)
    return TestClient(app)


@pytest.fixture
def make_user(store: DocumentStore):
    def _make(email: Optional[str] = None, **profile: Any) -> User:
        user = store.create_user(str(uuid4()), email or f"{uuid4().hex[:8]}@example.com", "Ada", None)
        if profile:
            user, _ = store.update_profile(user.id, **profile)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> Dict[str, str]:
        token = create_access_token({"sub": user.email, "user_id": user.id})
        return {"Authorization": f"Bearer {token}"}

    return _headers


def reload_user(store: DocumentStore, user_id: str) -> Optional[User]:
    """Re-read a user after another session (the app) has written it."""
    store.db.expire_all()
    return store.get_user(user_id)
