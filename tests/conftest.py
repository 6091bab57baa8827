"""Shared pytest fixtures for the SEO Suggest tests."""

import json
import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Settings are read at import time, so they must be in place before main is imported.
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

# Ensure project root is on sys.path so the top-level modules are importable.
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import AnalysisStore, init_db

EXAMPLE_HTML = "<title>Ex</title><h1>Hi</h1>"

CLEAN_SUGGESTIONS = {
    "overallAssessment": "Solid basics, but the description is missing.",
    "missingTags": ["meta description", "canonical"],
    "improvementSuggestions": [
        {"tag": "title", "suggestion": "Make the title longer and more descriptive."},
    ],
}


@pytest.fixture()
def session_factory():
    """In-memory SQLite shared across threads, with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture()
def store(session_factory):
    return AnalysisStore(session_factory)


@pytest.fixture()
def model_caller():
    """Fake language-model backend returning a clean JSON reply."""
    return AsyncMock(return_value=json.dumps(CLEAN_SUGGESTIONS))


@pytest.fixture()
def fetch_page_fn():
    """Fake page fetcher returning a tiny HTML document."""
    return AsyncMock(return_value=EXAMPLE_HTML)


@pytest.fixture()
def client(session_factory, store, fetch_page_fn, model_caller):
    """TestClient with every service handle swapped for a test double.

    Not entered as a context manager, so the startup hook (real DB file,
    real HTTP and Anthropic clients) never runs.
    """
    from fastapi.testclient import TestClient

    import main

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[main.get_db] = _get_db
    main.app.dependency_overrides[main.get_store] = lambda: store
    main.app.dependency_overrides[main.get_fetch_page] = lambda: fetch_page_fn
    main.app.dependency_overrides[main.get_model_caller] = lambda: model_caller
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    """Build a bearer header for an arbitrary user id."""
    import main

    def _headers(user_id: int, email: str = None) -> dict:
        token = main._create_token(user_id, email or f"user{user_id}@example.com")
        return {"Authorization": f"Bearer {token}"}

    return _headers
