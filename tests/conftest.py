"""
Test configuration and fixtures
"""

import itertools
import os
from typing import Dict, List, Optional

# Must be set before chatcoach.core.database builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chatcoach.main import app
from chatcoach.core.database import Base, get_db
from chatcoach.deps.exceptions import LLMServiceError
from chatcoach.deps.idgen import get_id_generator
from chatcoach.deps.llm_client import get_llm_client
from chatcoach.deps.object_storage import ObjectStorageError, get_object_storage
from chatcoach.models.app_config import Config
from chatcoach.models.chat_history import ChatMessage, ChatSession
from chatcoach.models.user import Profile, User
from chatcoach.services.auth import AuthService

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeLLMClient:
    """Records every transcript it is sent and answers with canned text"""

    def __init__(self, reply: str = "fake reply"):
        self.reply = reply
        self.fail = False
        self.transcripts: List[List[Dict[str, str]]] = []

    def chat(self, messages, temperature=None, max_tokens=None) -> str:
        self.transcripts.append([dict(m) for m in messages])
        if self.fail:
            raise LLMServiceError("LLM API error: upstream unavailable")
        return self.reply

    def complete(self, prompt: str) -> str:
        return self.chat([{"role": "user", "content": prompt}])

    @property
    def last_prompt(self) -> Optional[str]:
        if not self.transcripts:
            return None
        return self.transcripts[-1][-1]["content"]


class FakeObjectStorage:
    """In-memory stand-in for the S3 wrapper"""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.signed: List[str] = []
        self.fail = False

    def put_object(self, key: str, content: bytes, content_type: Optional[str] = None) -> None:
        if self.fail:
            raise ObjectStorageError(f"upload failed for {key}")
        self.objects[key] = content

    def signed_url(self, key: str, expires: int = 3600) -> str:
        self.signed.append(key)
        return f"https://storage.test/{key}?expires={expires}&n={len(self.signed)}"


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def id_factory():
    """Deterministic increasing ids"""
    return itertools.count(1000).__next__


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def fake_storage():
    return FakeObjectStorage()


@pytest.fixture(scope="function")
def client(db_session, fake_llm, fake_storage, id_factory):
    """Create a test client with database, LLM, storage and id overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    app.dependency_overrides[get_object_storage] = lambda: fake_storage
    app.dependency_overrides[get_id_generator] = lambda: id_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user(db_session, id_factory):
    """A registered user with a root profile"""
    account = User(id=id_factory(), name="Alice", im_name="alice", phone="13800000000")
    profile = Profile(id=id_factory(), user_id=account.id, name="Alice", gender="female", age=28)
    account.profile_id = profile.id
    db_session.add_all([account, profile])
    db_session.commit()
    return account


@pytest.fixture
def other_user(db_session, id_factory):
    account = User(id=id_factory(), name="Mallory", phone="13900000000")
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture
def chat_session(db_session, user, id_factory):
    """A session between ``user`` and a friend profile"""
    friend = Profile(id=id_factory(), user_id=user.id, name="Bob", gender="male", intro="Likes hiking")
    session = ChatSession(id=id_factory(), user_id=user.id, profile_id=friend.id, name="Bob")
    db_session.add_all([friend, session])
    db_session.commit()
    return session


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {AuthService.issue_token(user)}"}


@pytest.fixture
def add_messages(db_session, user, chat_session, id_factory):
    """Insert messages into ``chat_session``; each argument is a dict of column values"""
    def _add(*rows_fields):
        rows = []
        for fields in rows_fields:
            values = {
                "id": id_factory(),
                "user_id": user.id,
                "session_id": chat_session.id,
                "parent_id": 0,
                "profile_id": 0,
                "content": "",
                "tags": [],
            }
            values.update(fields)
            rows.append(ChatMessage(**values))
        db_session.add_all(rows)
        db_session.commit()
        return rows
    return _add


@pytest.fixture
def add_config(db_session, id_factory):
    def _add(key: str, value: str, version: str = "", env: str = "", app: str = "", platform: str = ""):
        row = Config(id=id_factory(), key=key, value=value, version=version, env=env, app=app, platform=platform)
        db_session.add(row)
        db_session.commit()
        return row
    return _add
