"""Shared fixtures for API integration tests.

This module provides a TestClient wired to a test Workspace through FastAPI's
dependency override system, so no real Gemini backend is ever contacted.
"""

import pytest
from fastapi.testclient import TestClient

from api.dependencies import Workspace, get_workspace
from client.session import ChatSession, SessionSettings
from main import app
from tests.fixtures.backend import FakeBackend


@pytest.fixture
def workspace(filesystem, recording_sleep):
    """Provide a Workspace over the sample project with a scripted backend.

    Tests append responses to ``workspace.session.backend.script``.
    """
    session = ChatSession(filesystem, FakeBackend(), SessionSettings(), sleep=recording_sleep)
    return Workspace(filesystem=filesystem, session=session)


@pytest.fixture
def api_client(workspace):
    """Provide a TestClient with the test workspace injected.

    Yields:
        A tuple of (TestClient, Workspace) for testing.

    Example:
        def test_something(api_client):
            client, workspace = api_client
            response = client.get("/project")
            assert response.status_code == 200
    """
    app.dependency_overrides[get_workspace] = lambda: workspace
    client = TestClient(app, raise_server_exceptions=False)

    yield client, workspace

    app.dependency_overrides.clear()
