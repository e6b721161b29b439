"""
Async engines and session factories for the per-language stores.

Each language gets its own database (by default one SQLite file per language under
``DATA_DIR/languages/<name>/``). Engines are created lazily and cached by the
sanitized language name; one session = one unit of work, closed right after.
"""
import re
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from notelog.config import DATA_DIR, DATABASE_URL_TEMPLATE

Base = declarative_base()
SettingsBase = declarative_base()

_engines: dict[str, AsyncEngine] = {}


def sanitize_language_name(language_name: str) -> str:
    """Lowercase and replace anything outside [a-z0-9-] with '_'."""
    return re.sub(r"[^a-z0-9-]", "_", (language_name or "").lower())


def language_database_url(language_name: str, *, template: str | None = None, data_dir: Path | None = None) -> str:
    tpl = template or DATABASE_URL_TEMPLATE
    return tpl.format(
        data_dir=str(data_dir or DATA_DIR),
        language=sanitize_language_name(language_name),
    )


def _ensure_sqlite_dir(url: str) -> None:
    """SQLite won't create parent directories for the DB file."""
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database and parsed.database != ":memory:":
        Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def create_engine_for_url(url: str) -> AsyncEngine:
    _ensure_sqlite_dir(url)
    connect_args = {"timeout": 15}
    if "asyncpg" in url:
        return create_async_engine(
            url,
            echo=False,
            connect_args=connect_args,
            pool_size=2,
            max_overflow=4,
            pool_pre_ping=True,
            pool_recycle=300,
        )
    engine = create_async_engine(url, echo=False, connect_args=connect_args)
    if url.startswith("sqlite"):
        # SQLite ignores ON DELETE SET NULL unless foreign keys are switched on per connection
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    return engine


def get_engine(language_name: str) -> AsyncEngine:
    key = sanitize_language_name(language_name)
    engine = _engines.get(key)
    if engine is None:
        engine = create_engine_for_url(language_database_url(language_name))
        _engines[key] = engine
    return engine


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def dispose_engines() -> None:
    for engine in list(_engines.values()):
        await engine.dispose()
    _engines.clear()
