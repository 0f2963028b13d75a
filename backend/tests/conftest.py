"""
Pytest configuration and fixtures for preview host tests.
"""

from __future__ import annotations

import os

# Set test environment variables before importing config
os.environ["TESTING"] = "true"
os.environ.setdefault("RENDER_DEBOUNCE_MS", "10")
os.environ.setdefault("SYNC_DEBOUNCE_MS", "10")
os.environ.setdefault("SCROLL_ACK_TIMEOUT_MS", "50")
os.environ.pop("INTENT_EXEC_URL", None)
os.environ.pop("RESEARCH_URL", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from backend import main  # noqa: E402
from backend.main import app  # noqa: E402
from backend.routes import preview as preview_routes  # noqa: E402
from backend.routes import ws as ws_routes  # noqa: E402
from backend.services import preview_session  # noqa: E402
from backend.services.preview_session import SessionRegistry  # noqa: E402


@pytest.fixture
def registry(monkeypatch) -> SessionRegistry:
    """Fresh session registry for each test; sessions never leak between event loops."""
    fresh = SessionRegistry()
    monkeypatch.setattr(preview_session, "session_registry", fresh)
    monkeypatch.setattr(main, "session_registry", fresh)
    monkeypatch.setattr(ws_routes, "session_registry", fresh)
    monkeypatch.setattr(preview_routes, "session_registry", fresh)
    return fresh


@pytest.fixture
def client(registry):
    """Return a synchronous TestClient for HTTP and WS testing."""
    return TestClient(app)
