"""
Shared test fixtures for the Family Connect backend.

This module provides reusable fixtures for:
- A fresh, seeded repository per test
- A session manager with an in-memory backend
- An API app wired to both, and a TestClient for it
- Logging a TestClient in as one of the sample users
"""

from typing import Callable

import pytest
from fastapi.testclient import TestClient

from common.auth.session import InMemorySessionBackend, SessionManager
from common.storage import MemStorage
from libs.config import Config
from services.family_connect.main import create_app

# Sample users created by MemStorage.seed_sample_data()
SAMPLE_PASSWORDS = {
    "martha": "SafetyFirst2025!",
    "john": "JohnGPS2025#",
    "sarah": "Sarah$Family2025",
    "robert": "Care@Robert2025",
}


class TestConfig(Config):
    """Settings for tests: no implicit seeding, demo endpoints on."""

    __test__ = False

    SESSION_BACKEND = "memory"
    SESSION_COOKIE_SECURE = False
    SEED_SAMPLE_DATA = False
    ENABLE_DEMO_ENDPOINTS = True
    CORS_ALLOW_ORIGINS = ["*"]


@pytest.fixture
def settings():
    return TestConfig


@pytest.fixture
def storage() -> MemStorage:
    """Repository loaded with martha, john, sarah and robert."""
    store = MemStorage()
    store.seed_sample_data()
    return store


@pytest.fixture
def sessions() -> SessionManager:
    return SessionManager(backend=InMemorySessionBackend())


@pytest.fixture
def app(storage, sessions, settings):
    return create_app(storage=storage, sessions=sessions, settings=settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def login(client) -> Callable[[str], dict]:
    """
    Log the shared client in as a sample user.

    Returns:
        Function taking a username and returning the login response body
    """

    def _login(username: str = "martha") -> dict:
        response = client.post(
            "/api/auth/login",
            json={"username": username, "password": SAMPLE_PASSWORDS[username]},
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _login


@pytest.fixture
def user_id(storage) -> Callable[[str], int]:
    """Look up a sample user's id by username."""

    def _user_id(username: str) -> int:
        return storage.get_user_by_username(username).id

    return _user_id
