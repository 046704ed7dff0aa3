"""SQLAlchemy database setup for the carelog backend store."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, cast

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

if TYPE_CHECKING:
    import sqlite3

#: The default database name.
DEFAULT_DB_NAME: Final[str] = "logbook.db"

#: The application directory name.
APP_DIR_NAME: Final[str] = "Carelog"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


def get_logbook_db_path() -> Path:
    """
    Get the path to the logbook database.

    - On Windows, the database is created in the user's
        ``AppData/Local/Carelog`` directory.
    - On macOS, the database is created in the user's
        ``~/Library/Application Support/Carelog`` directory.
    - On Linux, the database is created in the user's
        ``~/.config/Carelog`` directory.
    - If the platform is not supported, raise a ValueError.

    Returns:
        Path to the database file

    """
    if sys.platform not in ["win32", "darwin", "linux"]:
        msg = f"Unsupported platform: {sys.platform}"
        raise ValueError(msg)
    if sys.platform == "win32":
        db_path = Path.home() / "AppData" / "Local" / APP_DIR_NAME
    elif sys.platform == "darwin":
        db_path = Path.home() / "Library" / "Application Support" / APP_DIR_NAME
    else:
        db_path = Path.home() / ".config" / APP_DIR_NAME
    db_path.mkdir(parents=True, exist_ok=True)
    return db_path / DEFAULT_DB_NAME


def create_engine_with_path(db_path: Path | None = None) -> Engine:
    """
    Create SQLAlchemy engine with proper SQLite settings.

    Args:
        db_path: Optional path to database file. If None, uses default path.

    Returns:
        SQLAlchemy engine

    """
    if db_path is None:
        db_path = get_logbook_db_path()

    db_path.touch(exist_ok=True)

    # Requests are served from worker threads, one session per request
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
        echo=False,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(
        dbapi_conn: sqlite3.Connection | Any, _connection_record: Any
    ) -> None:
        """Set SQLite pragmas on connection."""
        cursor = cast("sqlite3.Cursor", dbapi_conn.cursor())
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


def create_session_factory(db_path: Path | None = None) -> sessionmaker[Session]:
    """
    Create the tables if needed and return a session factory bound to them.

    Args:
        db_path: Optional path to database file. If None, uses default path.

    Returns:
        Session factory

    """
    engine = create_engine_with_path(db_path)
    Base.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
