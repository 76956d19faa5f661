"""
Shared fixtures: a throwaway SQLite store, a loaded roster cache, and a
store wrapper that fails chosen calls on demand.
"""

import pytest

import auth
from db import SqliteStore
from errors import RemoteStoreError
from roster import RosterCache


class FlakyStore:
    """
    Wraps a store; `fail("insert", "members", times=1)` makes the next
    matching call raise RemoteStoreError. `times=None` fails every call.
    `error` swaps in another exception class.
    """

    def __init__(self, inner):
        self.inner = inner
        self.failures = {}
        self.calls = []

    def fail(self, operation, table, times=None, error=RemoteStoreError):
        self.failures[(operation, table)] = (times, error)

    def heal(self):
        self.failures.clear()

    def _guard(self, operation, table):
        self.calls.append((operation, table))
        key = (operation, table)
        if key not in self.failures:
            return
        remaining, error = self.failures[key]
        if remaining is not None:
            if remaining <= 1:
                del self.failures[key]
            else:
                self.failures[key] = (remaining - 1, error)
        raise error(f"simulated {operation} failure on {table}")

    def select(self, table, order_by=None, **equals):
        self._guard("select", table)
        return self.inner.select(table, order_by=order_by, **equals)

    def insert(self, table, row):
        self._guard("insert", table)
        return self.inner.insert(table, row)

    def update(self, table, row_id, values):
        self._guard("update", table)
        return self.inner.update(table, row_id, values)

    def upsert(self, table, row):
        self._guard("upsert", table)
        return self.inner.upsert(table, row)

    def delete(self, table, row_id):
        self._guard("delete", table)
        return self.inner.delete(table, row_id)

    def __getattr__(self, name):
        return getattr(self.inner, name)


@pytest.fixture(scope="session")
def admin_hash():
    return auth.hash_password("admin123")


@pytest.fixture
def sqlite_store(tmp_path, admin_hash):
    store = SqliteStore(tmp_path / "consulados-test.db")
    store.init_db(admin_hash)
    return store


@pytest.fixture
def store(sqlite_store):
    return FlakyStore(sqlite_store)


@pytest.fixture
def cache(store):
    roster = RosterCache(store, central_chapter_name="SEDE CENTRAL")
    roster.init()
    yield roster
    roster.shutdown()
