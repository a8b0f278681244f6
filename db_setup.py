import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone

from config import get_settings


def utc_now():
    """Timestamp in the fixed-width form stored in the Contact table."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def init_db(db_path=None):
    conn = get_db_connection(db_path)
    cursor = conn.cursor()

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS Contact (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            phoneNumber TEXT,
            email TEXT,
            linkedId INTEGER,
            linkPrecedence TEXT CHECK(linkPrecedence IN ('secondary', 'primary')),
            createdAt DATETIME NOT NULL,
            updatedAt DATETIME NOT NULL,
            deletedAt DATETIME,
            FOREIGN KEY (linkedId) REFERENCES Contact (id)
        )
    ''')
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_contact_email ON Contact (email)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_contact_phone ON Contact (phoneNumber)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_contact_linked ON Contact (linkedId)")

    conn.close()


def get_db_connection(db_path=None):
    settings = get_settings()
    # isolation_level=None: transactions are opened explicitly by transaction()
    conn = sqlite3.connect(
        db_path or settings.database_path,
        timeout=settings.busy_timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(db_path=None):
    """Yield a connection holding SQLite's single write lock until commit.

    BEGIN IMMEDIATE takes the reserved lock before the first read, so every
    read made inside the block sees state no other writer can change before
    the block commits. Any exception rolls the whole block back.
    """
    conn = get_db_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()
    finally:
        conn.close()


def is_lock_conflict(exc):
    message = str(exc).lower()
    return isinstance(exc, sqlite3.OperationalError) and ("locked" in message or "busy" in message)
