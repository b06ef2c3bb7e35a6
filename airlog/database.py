"""AIRLOG — Database Engine & Session Factory.

SQLite is the local fallback and is used by the tests; it only enforces the
stations → connections → events foreign keys when the pragma is switched on
per connection, so every SQLite engine built here does that.
"""

from typing import Any, Iterator

from sqlalchemy import event, text
from sqlalchemy.engine import Engine, make_url
from sqlmodel import Session, SQLModel, create_engine

from airlog.config import settings
from airlog.core.logging import get_logger

# Table classes register on SQLModel.metadata at import
from airlog.models import raw_models, station_models  # noqa: F401

logger = get_logger("database")

POSTGRES_POOL = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
}


def _mask_url(url: str) -> str:
    """Render a DB URL with its password hidden, for logs and /debug/db."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except Exception:
        return "<unparseable database url>"


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(url: str, **overrides: Any) -> Engine:
    """Engine for ``url`` with backend-specific options.

    ``overrides`` go straight to ``create_engine`` (tests pass a StaticPool).
    """
    is_sqlite = url.startswith("sqlite")
    options: dict = {"echo": False}
    if is_sqlite:
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(POSTGRES_POOL)
    options.update(overrides)

    db_engine = create_engine(url, **options)
    if is_sqlite:
        event.listen(db_engine, "connect", _enable_sqlite_foreign_keys)
    return db_engine


db_url = settings.effective_database_url
backend = "sqlite" if db_url.startswith("sqlite") else "postgresql"
engine = create_db_engine(db_url)
logger.info(f"📦 Database engine ready ({backend}): {_mask_url(db_url)}")


def ping_database() -> bool:
    """SELECT 1 against the configured engine."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✅ Database reachable")
        return True
    except Exception as e:
        logger.error(f"❌ Database unreachable: {e}")
        return False


def init_db() -> None:
    logger.info("🔨 Creating tables for stations, mappings, connections, events")
    SQLModel.metadata.create_all(engine)


def get_session() -> Iterator[Session]:
    """FastAPI dependency yielding a session on the shared engine."""
    with Session(engine) as session:
        yield session
