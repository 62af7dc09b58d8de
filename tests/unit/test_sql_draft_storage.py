from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError

from chat_sync.infrastructure.drafts.sql_storage import SqlDraftStorage


@pytest.fixture
def storage() -> SqlDraftStorage:
    return SqlDraftStorage(create_engine("sqlite://"))


def test_round_trip(storage):
    assert storage.get("message-draft:u:c") is None

    storage.set("message-draft:u:c", "first")
    storage.set("message-draft:u:c", "second")
    assert storage.get("message-draft:u:c") == "second"

    storage.clear("message-draft:u:c")
    assert storage.get("message-draft:u:c") is None


def test_clear_missing_key_is_noop(storage):
    storage.clear("nothing-here")
    assert storage.get("nothing-here") is None


class _BrokenEngine:
    def connect(self):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    def begin(self):
        raise OperationalError("UPDATE", {}, Exception("disk I/O error"))


def test_storage_failures_are_swallowed(storage, monkeypatch):
    monkeypatch.setattr(storage, "_engine", _BrokenEngine())

    storage.set("k", "text")
    storage.clear("k")
    assert storage.get("k") is None
