from __future__ import annotations

import pytest

from marketplace_client.config import AppSettings
from marketplace_client.errors import AuthFailure
from marketplace_client.storage import MemoryStorageBackend, SecureKeyValueStore
from tests.fakes import FailingBackend, FakeProfileFetcher


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        base_url="http://api.test",
        retry_attempts=1,
        probe_timeout_seconds=0.2,
        check_interval_seconds=0.05,
        storage_backend="memory",
    )


@pytest.fixture
def backend() -> MemoryStorageBackend:
    return MemoryStorageBackend()


@pytest.fixture
def store(backend) -> SecureKeyValueStore:
    return SecureKeyValueStore(backend)


@pytest.fixture
def failing_store() -> SecureKeyValueStore:
    return SecureKeyValueStore(FailingBackend())


@pytest.fixture
def profile_fetcher() -> FakeProfileFetcher:
    return FakeProfileFetcher()


@pytest.fixture
def auth_failure() -> AuthFailure:
    return AuthFailure("Token expired", status=401)
