"""
Per-language store accessor.

All pipeline persistence goes through :class:`LanguageStore`: lookups, inserts and
updates of ``LogEntry`` rows, plus the provenance log and the review queue.
Every operation opens its own short-lived session, so concurrent file tasks never
share one. SQLAlchemy failures are rolled back, logged and re-raised as
:class:`StoreError`.

The reconciler and file processor never touch sessions or ORM classes directly.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from notelog.database import (
    Base,
    SettingsBase,
    create_engine_for_url,
    get_engine,
    make_sessionmaker,
    sanitize_language_name,
)
from notelog.exceptions import StoreError
from notelog.models import LogEntry, ReviewItem, Setting, SourceNoteProcessed, _utc_now_naive

logger = logging.getLogger(__name__)

REVIEW_TYPES = ("duplicate", "uncategorized", "parsing_assist")
REVIEW_STATUSES = ("pending", "resolved", "ignored")

LOG_ENTRY_FIELDS = (
    "target_text",
    "native_text",
    "category",
    "notes",
    "example_sentence",
    "character_form",
    "reading_form",
    "romanization",
    "writing_system_note",
    "script_annotations",
)

_REVIEW_FIELDS = (
    "review_type",
    "status",
    "target_text",
    "native_text",
    "original_snippet",
    "ai_suggestion",
    "category_guess",
    "ai_extracted_character_form",
    "ai_extracted_reading_form",
    "ai_extracted_romanization",
    "ai_extracted_writing_system_note",
    "source_note_processed_id",
    "related_log_entry_id",
)

_SOURCE_NOTE_FIELDS = (
    "source_file",
    "source_line_ref",
    "date_context",
    "original_snippet",
    "log_entry_id",
)


def _pick(fields: dict[str, Any], allowed: tuple[str, ...]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if k in allowed}


class LanguageStore:
    """CRUD over one language's log, provenance and review tables."""

    def __init__(self, language_name: str, engine: AsyncEngine | None = None):
        self.language_name = language_name
        self.engine = engine or get_engine(language_name)
        self._sessionmaker = make_sessionmaker(self.engine)
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    # ------------------------------------------------------------ plumbing
    async def init_schema(self) -> None:
        """Create tables if missing. Safe to call repeatedly and concurrently."""
        if self._schema_ready:
            return
        async with self._schema_lock:
            if self._schema_ready:
                return
            try:
                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
            except SQLAlchemyError as exc:
                logger.error("[store:%s] schema init failed: %s", self.language_name, exc, exc_info=True)
                raise StoreError(f"Schema initialisation failed for {self.language_name}: {exc}") from exc
            self._schema_ready = True
            logger.debug("[store:%s] schema ready", self.language_name)

    @asynccontextmanager
    async def _session(self, op: str) -> AsyncIterator[AsyncSession]:
        await self.init_schema()
        async with self._sessionmaker() as session:
            try:
                yield session
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("[store:%s] %s failed: %s", self.language_name, op, exc, exc_info=True)
                raise StoreError(f"{op} failed: {exc}") from exc

    # ------------------------------------------------------------ log entries
    async def find_by_target_text(self, text: str) -> LogEntry | None:
        """Exact match on target_text. Oldest row wins if duplicates slipped in."""
        async with self._session("find_by_target_text") as session:
            result = await session.execute(
                select(LogEntry).where(LogEntry.target_text == text).order_by(LogEntry.id).limit(1)
            )
            return result.scalar_one_or_none()

    async def insert(self, fields: dict[str, Any]) -> int:
        """Insert a LogEntry and return its id. Empty target_text is rejected."""
        data = _pick(fields, LOG_ENTRY_FIELDS)
        target = (data.get("target_text") or "").strip()
        if not target:
            raise StoreError("Cannot insert a log entry with empty target_text")
        data["target_text"] = target
        now = _utc_now_naive()
        async with self._session("insert") as session:
            entry = LogEntry(**data, created_at=now, updated_at=now)
            session.add(entry)
            await session.commit()
            return entry.id

    async def update(self, entry_id: int, fields: dict[str, Any]) -> bool:
        """Apply whitelisted field updates. Returns True when a row changed."""
        data = _pick(fields, LOG_ENTRY_FIELDS)
        if not data:
            return False
        if "target_text" in data and not (data["target_text"] or "").strip():
            raise StoreError("Cannot update a log entry to empty target_text")
        async with self._session("update") as session:
            result = await session.execute(
                update(LogEntry)
                .where(LogEntry.id == entry_id)
                .values(**data, updated_at=_utc_now_naive())
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def list_log_entries(self) -> list[LogEntry]:
        async with self._session("list_log_entries") as session:
            result = await session.execute(select(LogEntry).order_by(LogEntry.id))
            return list(result.scalars().all())

    # ------------------------------------------------------------ review queue
    async def add_review_item(self, fields: dict[str, Any]) -> int:
        data = _pick(fields, _REVIEW_FIELDS)
        review_type = data.get("review_type")
        if review_type not in REVIEW_TYPES:
            raise StoreError(f"Unknown review_type: {review_type!r}")
        data.setdefault("status", "pending")
        if data["status"] not in REVIEW_STATUSES:
            raise StoreError(f"Unknown review status: {data['status']!r}")
        async with self._session("add_review_item") as session:
            item = ReviewItem(**data, created_at=_utc_now_naive())
            session.add(item)
            await session.commit()
            return item.id

    async def list_review_items(self, status: str | None = "pending") -> list[ReviewItem]:
        async with self._session("list_review_items") as session:
            stmt = select(ReviewItem).order_by(ReviewItem.id)
            if status is not None:
                stmt = stmt.where(ReviewItem.status == status)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ------------------------------------------------------------ provenance
    async def add_source_note(self, fields: dict[str, Any]) -> int:
        data = _pick(fields, _SOURCE_NOTE_FIELDS)
        async with self._session("add_source_note") as session:
            note = SourceNoteProcessed(**data, created_at=_utc_now_naive())
            session.add(note)
            await session.commit()
            return note.id

    async def list_source_notes(self) -> list[SourceNoteProcessed]:
        async with self._session("list_source_notes") as session:
            result = await session.execute(select(SourceNoteProcessed).order_by(SourceNoteProcessed.id))
            return list(result.scalars().all())


class SettingsStore:
    """Global key/value settings (the classifier API key lives here when not in the env)."""

    def __init__(self, url: str | None = None, engine: AsyncEngine | None = None):
        if engine is None:
            from notelog.config import SETTINGS_DATABASE_URL
            engine = create_engine_for_url(url or SETTINGS_DATABASE_URL)
        self.engine = engine
        self._sessionmaker = make_sessionmaker(engine)
        self._schema_ready = False

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(SettingsBase.metadata.create_all)
        self._schema_ready = True

    async def get_setting(self, key: str) -> str | None:
        try:
            await self._ensure_schema()
            async with self._sessionmaker() as session:
                row = await session.get(Setting, key)
                return row.value if row else None
        except SQLAlchemyError as exc:
            logger.error("[settings] get_setting(%s) failed: %s", key, exc, exc_info=True)
            raise StoreError(f"get_setting failed: {exc}") from exc

    async def set_setting(self, key: str, value: str | None) -> None:
        try:
            await self._ensure_schema()
            async with self._sessionmaker() as session:
                await session.merge(Setting(key=key, value=value))
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("[settings] set_setting(%s) failed: %s", key, exc, exc_info=True)
            raise StoreError(f"set_setting failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Store cache (one per sanitized language name, plus the global settings store)
# ---------------------------------------------------------------------------

_stores: dict[str, LanguageStore] = {}
_settings_store: SettingsStore | None = None


def get_language_store(language_name: str) -> LanguageStore:
    key = sanitize_language_name(language_name)
    store = _stores.get(key)
    if store is None:
        store = LanguageStore(language_name)
        _stores[key] = store
    return store


def get_settings_store() -> SettingsStore:
    global _settings_store
    if _settings_store is None:
        _settings_store = SettingsStore()
    return _settings_store


async def dispose_all_stores() -> None:
    """Close every cached engine: the language stores' and the settings store's."""
    from notelog.database import dispose_engines

    global _settings_store
    _stores.clear()
    await dispose_engines()
    if _settings_store is not None:
        settings, _settings_store = _settings_store, None
        await settings.engine.dispose()
