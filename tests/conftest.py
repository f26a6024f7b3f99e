"""Shared fixtures for the session-flow tests."""

from unittest.mock import MagicMock

import pytest

from authflow.config import AppConfig
from authflow.session_store import SessionStore
from tests.fakes import FakeIdentityProvider, FakeProfileStore, fast_config


@pytest.fixture
def config() -> AppConfig:
    return fast_config()


@pytest.fixture
def logger() -> MagicMock:
    return MagicMock()


@pytest.fixture
def store(logger: MagicMock) -> SessionStore:
    return SessionStore(logger=logger)


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def profiles() -> FakeProfileStore:
    return FakeProfileStore()
