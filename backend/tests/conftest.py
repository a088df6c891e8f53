"""
Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite schema. The environment is set
before anything from ``lxp`` is imported so the settings singleton and the
engine pick it up.
"""
import os
from dataclasses import replace

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient

from lxp.db import Base, SessionLocal, engine
from lxp.gemini_client import Generation
from lxp.main import app
from lxp.models import User
from lxp.routers.auth import User as AuthenticatedUser, get_current_user
from lxp.routers.gemini import get_gemini_client


@pytest.fixture
def db():
    """A session on a freshly created schema."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def make_user(db, username="alice", **kwargs):
    user = User(username=username, password_hash="not-a-real-hash", **kwargs)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def other_user(db):
    return make_user(db, username="bob")


class FakeGeminiClient:
    """Stands in for GeminiClient; records prompts and returns a canned result."""

    def __init__(self, result=None, error=None):
        self.result = result or Generation(text="hello", model="gemini-test", input_tokens=12, output_tokens=34)
        self.error = error
        self.prompts = []
        self.calls = []

    async def generate(self, prompt, **kwargs):
        self.prompts.append(prompt)
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if kwargs.get("model"):
            return replace(self.result, model=kwargs["model"])
        return self.result

    async def aclose(self):
        pass


@pytest.fixture
def fake_gemini():
    return FakeGeminiClient()


@pytest.fixture
def client(db, user, fake_gemini):
    """API client authenticated as ``user`` with the Gemini client faked."""
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(id=user.id, username=user.username)
    app.dependency_overrides[get_gemini_client] = lambda: fake_gemini
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def user_factory(db):
    """Create additional users: ``user_factory("carol", requests_limit=1)``."""
    return lambda username, **kwargs: make_user(db, username=username, **kwargs)
