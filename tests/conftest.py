import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import get_settings  # noqa: E402
from contact_repository import ContactRepository  # noqa: E402
from db_setup import get_db_connection, init_db  # noqa: E402


class FakeClock:
    """Hands out timestamps one second apart, or a fixed one while frozen."""

    def __init__(self, start=datetime(2023, 4, 1, tzinfo=timezone.utc)):
        self.current = start
        self.frozen = False

    def __call__(self):
        value = self.current.isoformat(timespec="microseconds")
        if not self.frozen:
            self.current += timedelta(seconds=1)
        return value


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "contacts.db"
    monkeypatch.setenv("CONTACTS_DB_PATH", str(path))
    monkeypatch.setenv("IDENTIFY_RETRY_BACKOFF", "0")
    get_settings.cache_clear()
    init_db()
    yield str(path)
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def conn(db_path):
    connection = get_db_connection()
    yield connection
    connection.close()


@pytest.fixture
def repo(conn, clock):
    return ContactRepository(conn, clock=clock)
