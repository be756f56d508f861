from __future__ import annotations

import json

import pytest

from marketplace_client.config import AppSettings
from marketplace_client.storage import (
    FileStorageBackend,
    MemoryStorageBackend,
    SecureKeyValueStore,
    select_backend,
)


@pytest.mark.asyncio
async def test_save_get_delete_round_trip(store):
    assert await store.save("auth_token", "abc") is True
    assert await store.get("auth_token") == "abc"

    assert await store.delete("auth_token") is True
    assert await store.get("auth_token") is None


@pytest.mark.asyncio
async def test_missing_key_reads_as_none(store):
    assert await store.get("app_lang") is None


@pytest.mark.asyncio
async def test_deleting_missing_key_succeeds(store):
    assert await store.delete("refresh_token") is True


@pytest.mark.asyncio
async def test_backend_failures_never_escape(failing_store):
    assert await failing_store.save("auth_token", "abc") is False
    assert await failing_store.get("auth_token") is None
    assert await failing_store.delete("auth_token") is False


@pytest.mark.asyncio
async def test_non_string_values_are_rejected_softly(store, backend):
    assert await store.save("app_theme", {"mode": "dark"}) is False
    assert backend.read("app_theme") is None


@pytest.mark.asyncio
async def test_file_backend_persists_across_instances(tmp_path):
    location = str(tmp_path / "session.json")
    first = SecureKeyValueStore(FileStorageBackend(location))
    await first.save("auth_token", "abc")
    await first.save("app_lang", "fa")

    second = SecureKeyValueStore(FileStorageBackend(location))
    assert await second.get("auth_token") == "abc"
    assert await second.get("app_lang") == "fa"

    with open(location, encoding="utf-8") as handle:
        assert json.load(handle) == {"auth_token": "abc", "app_lang": "fa"}


@pytest.mark.asyncio
async def test_file_backend_delete_keeps_other_keys(tmp_path):
    store = SecureKeyValueStore(FileStorageBackend(str(tmp_path / "session.json")))
    await store.save("auth_token", "abc")
    await store.save("app_theme", "dark")

    await store.delete("auth_token")

    assert await store.get("auth_token") is None
    assert await store.get("app_theme") == "dark"


@pytest.mark.asyncio
async def test_corrupted_file_reads_as_missing(tmp_path):
    location = tmp_path / "session.json"
    location.write_text("{not json", encoding="utf-8")
    store = SecureKeyValueStore(FileStorageBackend(str(location)))

    assert await store.get("auth_token") is None
    assert await store.save("auth_token", "abc") is False


def test_select_memory_backend():
    backend = select_backend(AppSettings(storage_backend="memory"))

    assert isinstance(backend, MemoryStorageBackend)


def test_select_file_backend(tmp_path):
    location = str(tmp_path / "nested" / "session.json")

    backend = select_backend(AppSettings(storage_backend="file", storage_path=location))

    assert isinstance(backend, FileStorageBackend)
    assert (tmp_path / "nested").is_dir()


def test_auto_selection_picks_a_persistent_backend(tmp_path):
    backend = select_backend(
        AppSettings(storage_backend="auto", storage_path=str(tmp_path / "session.json"))
    )

    assert backend.name in ("secure", "file")


def test_unusable_location_falls_back_to_memory(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    backend = select_backend(
        AppSettings(storage_backend="file", storage_path=str(blocker / "session.json"))
    )

    assert isinstance(backend, MemoryStorageBackend)
