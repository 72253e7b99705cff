"""
Shared pytest fixtures for the Janseva Tracker test suite.

Provides an in-process httpx AsyncClient wired to a throwaway mongomock
database and to swappable AI providers, plus a logged-in client.
"""

import os
import uuid
import hashlib
import tempfile
from datetime import timedelta

# Settings are read at import time
os.environ["JWT_SECRET"] = "test-secret-for-janseva-tracker-suite-0123456789"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="janseva-uploads-")
os.environ["AI_BACKEND"] = "fallback"

import httpx
import mongomock
import pytest
import pytest_asyncio

from janseva.config import new_id, now_utc
from janseva.providers import fallback_providers
from janseva.storage import ensure_indexes
from janseva.tracker import app, get_db, get_providers, limiter


class FakeEmbedder:
    """Deterministic bag-of-words embedding: identical text, identical vector."""

    dims = 64

    def __init__(self):
        self.calls = []

    async def embed(self, text):
        self.calls.append(text)
        vec = [0.0] * self.dims
        for word in text.lower().split():
            vec[int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dims] += 1.0
        return vec


@pytest.fixture
def db():
    database = mongomock.MongoClient()[f"janseva_test_{uuid.uuid4().hex}"]
    ensure_indexes(database)
    return database


@pytest.fixture
def ai():
    return fallback_providers()


@pytest.fixture
def fake_embedder(ai):
    ai.embedder = FakeEmbedder()
    return ai.embedder


@pytest_asyncio.fixture
async def client(db, ai):
    """In-process httpx AsyncClient against the test database."""
    # Disable rate limiting during tests so repeated posts aren't throttled
    limiter.enabled = False
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_providers] = lambda: ai

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


async def _register(client: httpx.AsyncClient, email: str, name: str, password: str = "secret123") -> dict:
    resp = await client.post("/api/auth/register", json={"email": email, "name": name, "password": password})
    assert resp.status_code == 201, f"Register failed for {email}: {resp.text}"
    return resp.json()


@pytest_asyncio.fixture
async def citizen(client):
    """Registers a citizen; the client now carries their auth cookie."""
    return (await _register(client, "priya@example.com", "Priya Das"))["user"]


@pytest_asyncio.fixture
async def bearer_headers(client):
    """Auth headers for a second account, used without cookies."""
    data = await _register(client, "officer@example.com", "Ward Officer")
    client.cookies.clear()
    return {"Authorization": f"Bearer {data['token']}"}


def make_complaint(db, **overrides) -> dict:
    """Insert a complaint document directly, bypassing intake."""
    created = overrides.pop("created_at", None) or now_utc()
    doc = {
        "_id": new_id(), "image": None, "category": "Garbage",
        "description": "Garbage piled up near the park gate", "location": "Park Street",
        "status": "Assigned", "created_by": "Anonymous", "created_by_id": None,
        "embedding": None, "priority_score": 50, "ai_severity_level": "medium",
        "ai_reasoning": "", "created_at": created, "updated_at": created,
    }
    doc.update(overrides)
    db.complaints.insert_one(doc)
    return doc


def days_ago(days: float):
    return now_utc() - timedelta(days=days)
