"""
Shared fixtures.

Environment variables are set before any project module is imported,
because config.settings is built at import time.
"""

import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="postcraft-tests-")

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP}/import.db")
os.environ.setdefault("SESSION_SECRET", "test-session-secret-0123456789abcdef")
os.environ.setdefault("SESSION_COOKIE_SECURE", "false")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("OPENAI_MOCK_MODE", "true")
os.environ.setdefault("STORAGE_BACKEND", "remote")
os.environ.setdefault("STORAGE_DIR", f"{_TMP}/images")
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

import database
import storage
from main import app


@pytest.fixture
def client(tmp_path, monkeypatch):
    """TestClient backed by a fresh SQLite file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "AsyncSessionLocal", async_sessionmaker(engine, expire_on_commit=False))
    monkeypatch.setattr(storage, "_storage_instance", storage.RemoteStorage())
    with TestClient(app) as c:
        yield c


def signup(client, email="ana@example.com", password="correct-horse", first_name="Ana", last_name="Lopez"):
    return client.post("/api/signup", json={
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "password": password,
    })


@pytest.fixture
def onboarding_payload():
    return {
        "niche": "fitness",
        "content_type": "educational",
        "style_preference": "minimalist",
        "business_type": "B2C",
        "target_audience": "busy parents",
        "audience_age": "25-40",
        "primary_goal": "brand awareness",
        "posting_frequency": "daily",
        "content_themes": ["workouts", "nutrition"],
        "brand_personality": "energetic",
        "color_preferences": ["teal", "orange"],
        "brand_keywords": "strong, simple",
        "primary_platforms": ["instagram"],
        "content_formats": ["single image"],
        "special_requirements": "no text overlays",
    }


@pytest.fixture
def user_client(client):
    """Client logged in as a freshly signed-up user."""
    resp = signup(client)
    assert resp.status_code == 201
    return client


@pytest.fixture
def onboarded_client(user_client, onboarding_payload):
    resp = user_client.post("/api/onboarding", json=onboarding_payload)
    assert resp.status_code == 200
    return user_client


@pytest.fixture
def local_store(monkeypatch, mocker, tmp_path):
    """Real provider path with generated images copied into a LocalStorage under tmp_path."""
    from PIL import Image
    from image_engine import GenerationResult

    store = storage.LocalStorage(directory=str(tmp_path / "images"), base_url="http://testserver/api/image")
    monkeypatch.setattr(storage, "_storage_instance", store)
    mocker.patch(
        "image_router.request_image",
        return_value=GenerationResult(url="https://provider.example/generated.png"),
    )
    mocker.patch("image_router.fetch_image", return_value=Image.new("RGB", (1792, 1024), "teal"))
    return store
