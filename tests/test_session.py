"""Tests for participant session create/read/update/clear."""

import json
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from companion_backend.session import ParticipantSession, ParticipantSessionManager, session_key
from companion_backend.storage import FileStore, MemoryStore


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def manager(store):
    return ParticipantSessionManager("wxyz", store)


class TestSetAndGet:
    def test_set_then_get(self, manager):
        created = manager.set("Alice")
        loaded = manager.get()

        assert loaded == created
        assert loaded.workshop_code == "WXYZ"
        assert loaded.name == "Alice"
        assert loaded.email is None
        assert loaded.id

    def test_each_set_generates_a_new_token(self, manager):
        first = manager.set("Alice")
        second = manager.set("Alice")
        assert first.id != second.id
        assert manager.get().id == second.id

    def test_joined_at_is_iso8601(self, store):
        fixed = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
        manager = ParticipantSessionManager("WXYZ", store, now=lambda: fixed)
        session = manager.set("Alice", "alice@example.com")
        assert session.joined_at == "2026-03-01T09:30:00Z"
        assert session.email == "alice@example.com"

    def test_stored_under_workshop_key(self, manager, store):
        manager.set("Alice")
        payload = json.loads(store.read("workshop_WXYZ"))
        assert payload["workshopCode"] == "WXYZ"
        assert set(payload) == {"id", "workshopCode", "name", "email", "joinedAt"}

    def test_sessions_for_different_workshops_are_independent(self, store):
        a = ParticipantSessionManager("AAAA", store)
        b = ParticipantSessionManager("BBBB", store)
        a.set("Alice")
        b.set("Bob")
        a.clear()
        assert a.get() is None
        assert b.get().name == "Bob"

    def test_invalid_code_rejected(self, store):
        with pytest.raises(ValueError):
            ParticipantSessionManager("AB1$", store)

    def test_invalid_name_rejected_without_write(self, manager, store):
        with pytest.raises(ValueError):
            manager.set("")
        assert store.read(manager.key) is None


class TestUpdate:
    def test_update_changes_only_name(self, manager):
        created = manager.set("Alice", "alice@example.com")
        updated = manager.update(name="X")

        assert updated.name == "X"
        assert updated.email == "alice@example.com"
        assert updated.id == created.id
        assert updated.joined_at == created.joined_at
        assert manager.get() == updated

    def test_update_email_only(self, manager):
        created = manager.set("Alice")
        updated = manager.update(email="a@b.io")
        assert updated.name == "Alice"
        assert updated.email == "a@b.io"
        assert updated.id == created.id

    def test_update_without_session_returns_none_and_does_not_write(self):
        store = MagicMock()
        store.read.return_value = None
        manager = ParticipantSessionManager("WXYZ", store)

        assert manager.update(name="X") is None
        store.write.assert_not_called()

    def test_update_slides_expiry(self, manager, clock):
        manager.set("Alice")
        clock.advance(timedelta(hours=20).total_seconds())
        manager.update(name="Alicia")
        clock.advance(timedelta(hours=20).total_seconds())

        # 40h after creation but only 20h after the update.
        assert manager.get().name == "Alicia"


class TestClearAndExpiry:
    def test_clear_then_get(self, manager):
        manager.set("Alice")
        manager.clear()
        assert manager.get() is None

    def test_clear_is_idempotent(self, manager):
        manager.clear()
        manager.clear()
        assert manager.get() is None

    def test_session_expires_after_ttl(self, manager, clock):
        manager.set("Alice")
        clock.advance(timedelta(hours=23, minutes=59).total_seconds())
        assert manager.get() is not None
        clock.advance(timedelta(minutes=2).total_seconds())
        assert manager.get() is None

    def test_custom_ttl(self, store, clock):
        manager = ParticipantSessionManager("WXYZ", store, ttl=timedelta(minutes=5))
        manager.set("Alice")
        clock.advance(301)
        assert manager.get() is None


class TestFailSoftReads:
    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            "[]",
            json.dumps({"id": "x", "workshopCode": "WXYZ"}),
            json.dumps({"id": "x", "workshopCode": "WXYZ", "name": "A", "joinedAt": "t", "email": 5}),
        ],
    )
    def test_malformed_payload_is_absent(self, manager, store, raw, caplog):
        store.write(manager.key, raw, timedelta(hours=1))
        with caplog.at_level(logging.WARNING):
            assert manager.get() is None
        assert "workshop_WXYZ" in caplog.text

    def test_record_for_other_workshop_is_absent(self, manager, store):
        other = ParticipantSession(id="x", workshop_code="ABCD", name="A", joined_at="t")
        store.write(manager.key, other.to_json(), timedelta(hours=1))
        assert manager.get() is None

    def test_store_read_error_is_absent(self):
        store = MagicMock()
        store.read.side_effect = OSError("disk gone")
        assert ParticipantSessionManager("WXYZ", store).get() is None


def test_session_key_normalizes_code():
    assert session_key("ab12") == "workshop_AB12"


def test_join_reload_scenario(tmp_path):
    """Join as Alice, then 'reload' with a fresh manager over the same storage."""
    first = ParticipantSessionManager("WXYZ", FileStore(tmp_path))
    created = first.set("Alice")

    reloaded = ParticipantSessionManager("wxyz", FileStore(tmp_path)).get()
    assert reloaded.id == created.id
    assert reloaded.workshop_code == "WXYZ"
    assert reloaded.name == "Alice"
