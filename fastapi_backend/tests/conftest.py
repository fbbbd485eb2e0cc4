import itertools
import os
import sys
import threading
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_USER", "test")
os.environ.setdefault("DATABASE_PASSWORD", "test")

from fastapi.testclient import TestClient  # noqa: E402

from src.api import db  # noqa: E402
from src.api.main import app  # noqa: E402


class FakeUsersTable:
    """In-memory stand-in for the users table, shaped like the db helpers."""

    def __init__(self):
        self.rows = []
        self.calls = 0
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def fetch_all(self, query, params=None):
        assert query == "SELECT id, name, email FROM users"
        with self._lock:
            self.calls += 1
            return [dict(r) for r in self.rows]

    def execute_returning_one(self, query, params=None):
        assert query == "INSERT INTO users (name, email) VALUES (%s, %s) RETURNING id"
        name, email = params
        with self._lock:
            self.calls += 1
            row = {"id": next(self._ids), "name": name, "email": email}
            self.rows.append(row)
        return {"id": row["id"]}


@pytest.fixture
def users_table(monkeypatch):
    table = FakeUsersTable()
    monkeypatch.setattr(db, "fetch_all", table.fetch_all)
    monkeypatch.setattr(db, "execute_returning_one", table.execute_returning_one)
    return table


@pytest.fixture
def client(users_table):
    # Not used as a context manager, so startup does not try to reach Postgres.
    return TestClient(app)
