"""LanguageStore / SettingsStore against a real SQLite file (aiosqlite)."""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from notelog.database import create_engine_for_url, language_database_url, sanitize_language_name
from notelog.exceptions import StoreError
from notelog.pipeline import store as store_module
from notelog.pipeline.store import LanguageStore, SettingsStore, dispose_all_stores, get_settings_store


@pytest_asyncio.fixture
async def sqlite_store(tmp_path):
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path}/db/japanese.sqlite")
    store = LanguageStore("Japanese", engine=engine)
    yield store
    await engine.dispose()


def test_sanitize_language_name():
    assert sanitize_language_name("Japanese") == "japanese"
    assert sanitize_language_name("Old Norse (runic)") == "old_norse__runic_"
    assert sanitize_language_name("zh-Hant") == "zh-hant"


def test_language_database_url_uses_sanitized_name(tmp_path):
    url = language_database_url(
        "Brazilian Portuguese",
        template="sqlite+aiosqlite:///{data_dir}/languages/{language}/{language}.sqlite",
        data_dir=tmp_path,
    )
    assert url == f"sqlite+aiosqlite:///{tmp_path}/languages/brazilian_portuguese/brazilian_portuguese.sqlite"


@pytest.mark.asyncio
async def test_insert_find_update_roundtrip(sqlite_store):
    entry_id = await sqlite_store.insert({
        "target_text": "  食べ物 ",
        "native_text": "food",
        "category": "Noun",
        "script_annotations": [{"base_char": "食", "annotation": "た", "annotation_type": "reading"}],
        "not_a_column": "ignored",
    })

    found = await sqlite_store.find_by_target_text("食べ物")
    assert found.id == entry_id
    assert found.native_text == "food"
    assert found.script_annotations[0]["annotation"] == "た"

    assert await sqlite_store.update(entry_id, {"romanization": "tabemono"}) is True
    found = await sqlite_store.find_by_target_text("食べ物")
    assert found.romanization == "tabemono"
    assert found.updated_at >= found.created_at


@pytest.mark.asyncio
async def test_find_is_exact_match(sqlite_store):
    await sqlite_store.insert({"target_text": "Hund"})
    assert await sqlite_store.find_by_target_text("hund") is None
    assert await sqlite_store.find_by_target_text("Hund ") is None


@pytest.mark.asyncio
async def test_find_returns_oldest_duplicate(sqlite_store):
    first = await sqlite_store.insert({"target_text": "犬", "native_text": "dog"})
    await sqlite_store.insert({"target_text": "犬", "native_text": "hound"})
    found = await sqlite_store.find_by_target_text("犬")
    assert found.id == first


@pytest.mark.asyncio
async def test_insert_rejects_empty_target(sqlite_store):
    with pytest.raises(StoreError):
        await sqlite_store.insert({"target_text": "   "})
    assert await sqlite_store.list_log_entries() == []


@pytest.mark.asyncio
async def test_update_missing_row_or_no_fields(sqlite_store):
    assert await sqlite_store.update(999, {"notes": "x"}) is False
    entry_id = await sqlite_store.insert({"target_text": "猫"})
    assert await sqlite_store.update(entry_id, {"unknown": "x"}) is False


@pytest.mark.asyncio
async def test_review_items_and_source_notes(sqlite_store):
    note_id = await sqlite_store.add_source_note({"source_file": "/n/a.md", "original_snippet": "- 犬 - dog"})
    entry_id = await sqlite_store.insert({"target_text": "犬"})
    review_id = await sqlite_store.add_review_item({
        "review_type": "duplicate",
        "target_text": "犬",
        "ai_suggestion": "Potential homonym",
        "source_note_processed_id": note_id,
        "related_log_entry_id": entry_id,
    })

    [review] = await sqlite_store.list_review_items()
    assert review.id == review_id
    assert review.status == "pending"
    assert review.related_log_entry_id == entry_id
    [note] = await sqlite_store.list_source_notes()
    assert note.source_file == "/n/a.md"


@pytest.mark.asyncio
async def test_review_item_rejects_unknown_type(sqlite_store):
    with pytest.raises(StoreError):
        await sqlite_store.add_review_item({"review_type": "bogus"})
    with pytest.raises(StoreError):
        await sqlite_store.add_review_item({"review_type": "duplicate", "status": "archived"})


@pytest.mark.asyncio
async def test_settings_store_get_set(tmp_path):
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path}/settings.sqlite")
    settings = SettingsStore(engine=engine)
    try:
        assert await settings.get_setting("geminiApiKey") is None
        await settings.set_setting("geminiApiKey", "abc")
        await settings.set_setting("geminiApiKey", "def")
        assert await settings.get_setting("geminiApiKey") == "def"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_settings_store_is_cached_and_disposed(tmp_path):
    with patch("notelog.config.SETTINGS_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path}/settings.sqlite"):
        settings = get_settings_store()
        assert get_settings_store() is settings
        await settings.set_setting("geminiApiKey", "abc")
        await dispose_all_stores()
        assert store_module._settings_store is None


@pytest.mark.asyncio
async def test_dispose_all_stores_disposes_settings_engine():
    engine = SimpleNamespace(dispose=AsyncMock())
    store_module._settings_store = SimpleNamespace(engine=engine)

    await dispose_all_stores()

    engine.dispose.assert_awaited_once()
    assert store_module._settings_store is None
