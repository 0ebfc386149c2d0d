"""Database engine and session management.

The store holds Xero client secrets and OAuth tokens, so a database key is
always required and SQLCipher URLs (``sqlite+pysqlcipher://``) are supported.
"""
from collections.abc import Generator
import importlib
import logging
from urllib.parse import quote, urlencode

from sqlalchemy import create_engine, event
from sqlalchemy.dialects.sqlite import pysqlite as sqlite_pysqlite
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ledgerlink.config import Settings, get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

if not settings.database_key:
    raise ValueError("DATABASE_KEY must be set.")


def _uses_sqlcipher(raw_url: str) -> bool:
    return "pysqlcipher" in raw_url


def _build_sqlcipher_url(raw_url: str, database_key: str) -> str:
    """Inject the database key as the URL password unless one is already present."""
    parsed_url = make_url(raw_url)
    if parsed_url.password:
        return raw_url

    encoded_key = quote(database_key, safe="")
    database_path = parsed_url.database or ""
    query = f"?{urlencode(parsed_url.query)}" if parsed_url.query else ""
    return f"{parsed_url.drivername}://:{encoded_key}@/{database_path}{query}"


def build_engine(config: Settings) -> Engine:
    """Create the SQLAlchemy engine for the configured database."""
    raw_url = config.database_url
    sqlcipher = _uses_sqlcipher(raw_url)

    if sqlcipher:
        try:
            importlib.import_module("pysqlcipher3")
        except ImportError as exc:
            raise RuntimeError("pysqlcipher3 is required but failed to import.") from exc

    # Sync routes run in FastAPI's threadpool
    connect_args = {"check_same_thread": False} if "sqlite" in raw_url else {}
    url = _build_sqlcipher_url(raw_url, config.database_key) if sqlcipher else raw_url

    # pysqlcipher3 does not accept sqlite3's deterministic create_function kwarg,
    # which older SQLAlchemy releases enable through sqlite_pysqlite.util.py38.
    original_py38 = getattr(sqlite_pysqlite.util, "py38", None)
    patch_py38 = sqlcipher and original_py38 is not None
    if patch_py38:
        sqlite_pysqlite.util.py38 = False
    try:
        new_engine = create_engine(url, connect_args=connect_args, echo=config.debug)
    finally:
        if patch_py38:
            sqlite_pysqlite.util.py38 = original_py38

    if sqlcipher:
        @event.listens_for(new_engine, "connect")
        def set_cipher_memory_security(dbapi_connection, connection_record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA cipher_memory_security = ON;")
            cursor.close()

        logger.info("Using SQLCipher encrypted database")

    return new_engine


engine = build_engine(settings)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

