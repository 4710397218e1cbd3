"""Session store and lifecycle tests. A fake clock keeps timestamps predictable."""

from datetime import datetime

import pytest

from nexuschat.session_manager import (
    DEFAULT_TITLE,
    SessionManager,
    SessionStore,
    format_timestamp,
    generate_id,
)
from nexuschat.storage import Storage


class FakeClock:
    """Advances one millisecond per reading"""

    def __init__(self, start: int = 1_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


@pytest.fixture
def storage(tmp_path):
    return Storage(str(tmp_path))


@pytest.fixture
def store(storage):
    return SessionStore(storage, clock=FakeClock())


@pytest.fixture
def manager(store):
    return SessionManager(store)


# 1. Store


def test_round_trip_preserves_messages_and_created(storage, manager):
    session_id = manager.create_session()
    for role, text in (("user", "hi"), ("assistant", "hello"), ("user", "bye")):
        manager.store.append_message(session_id, role, text)
    original = manager.store.get(session_id)

    reloaded = SessionStore(storage).get(session_id)
    assert reloaded["messages"] == original["messages"]
    assert [m["content"] for m in reloaded["messages"]] == ["hi", "hello", "bye"]
    assert reloaded["created"] == original["created"]


def test_append_refreshes_updated(manager):
    session_id = manager.create_session()
    session = manager.store.get(session_id)
    before = session["updated"]
    manager.store.append_message(session_id, "user", "hi")
    assert session["updated"] > before
    assert session["updated"] >= session["created"]


def test_image_is_only_stored_when_present(manager):
    session_id = manager.create_session()
    plain = manager.store.append_message(session_id, "user", "hi")
    pictured = manager.store.append_message(
        session_id, "user", "look", image="data:image/png;base64,AAAA"
    )
    assert "image" not in plain
    assert pictured["image"] == "data:image/png;base64,AAAA"


def test_append_to_missing_session_returns_none(store):
    assert store.append_message("missing", "user", "hi") is None
    assert store.ids() == []


def test_title_freezes_after_first_message(manager):
    session_id = manager.create_session()
    manager.store.append_message(session_id, "user", "Explain entropy", title="Explain entropy")
    manager.store.append_message(session_id, "assistant", "Sure", title="ignored")
    manager.store.append_message(session_id, "user", "And enthalpy?", title="ignored too")
    assert manager.store.get(session_id)["title"] == "Explain entropy"


def test_clear_resets_title_and_keeps_id(manager):
    session_id = manager.create_session()
    manager.store.append_message(session_id, "user", "Explain entropy", title="Explain entropy")
    session = manager.store.get(session_id)
    before = session["updated"]

    manager.clear_session(session_id)

    session = manager.store.get(session_id)
    assert session["id"] == session_id
    assert session["messages"] == []
    assert session["title"] == DEFAULT_TITLE
    assert session["updated"] > before

    manager.store.append_message(session_id, "user", "New topic", title="New topic")
    assert manager.store.get(session_id)["title"] == "New topic"


def test_clear_missing_session_is_noop(manager):
    manager.create_session()
    assert manager.store.clear("missing") is False


def test_corrupt_store_loads_empty(tmp_path):
    (tmp_path / "chat-store.json").write_text("{not json", encoding="utf-8")
    assert SessionStore(Storage(str(tmp_path))).ids() == []


# 2. Lifecycle


def test_create_session_becomes_active(manager):
    session_id = manager.create_session()
    assert manager.active_id == session_id
    assert manager.active["title"] == DEFAULT_TITLE
    assert manager.active["messages"] == []


def test_switch_to_unknown_id_is_noop(manager):
    session_id = manager.create_session()
    manager.switch_to("does-not-exist")
    assert manager.active_id == session_id


def test_switch_to_known_id(manager):
    first = manager.create_session()
    manager.create_session()
    manager.switch_to(first)
    assert manager.active_id == first


def test_delete_active_promotes_most_recently_updated(manager):
    a = manager.create_session()
    b = manager.create_session()
    c = manager.create_session()
    manager.store.get(a)["updated"] = 1
    manager.store.get(b)["updated"] = 3
    manager.store.get(c)["updated"] = 2
    manager.switch_to(a)

    manager.delete_session(a)

    assert manager.active_id == b
    assert manager.store.get(a) is None


def test_delete_last_session_creates_a_fresh_one(manager):
    only = manager.create_session()
    manager.delete_session(only)
    assert manager.active_id is not None
    assert manager.active_id != only
    assert manager.store.ids() == [manager.active_id]


def test_delete_inactive_session_keeps_pointer(manager):
    a = manager.create_session()
    b = manager.create_session()
    manager.delete_session(a)
    assert manager.active_id == b


def test_list_is_most_recent_first(manager):
    a = manager.create_session()
    b = manager.create_session()
    manager.store.append_message(a, "user", "bump")
    assert [s["id"] for s in manager.list()] == [a, b]


def test_load_picks_latest_or_creates(storage):
    store = SessionStore(storage, clock=FakeClock())
    manager = SessionManager(store)
    first = manager.load()
    assert store.ids() == [first]

    second = manager.create_session()
    store.append_message(first, "user", "bump")

    restarted = SessionManager(SessionStore(storage))
    assert restarted.load() == first
    assert second in restarted.store.ids()


def test_ensure_active_creates_when_missing(manager):
    assert manager.active_id is None
    session_id = manager.ensure_active()
    assert manager.ensure_active() == session_id


# 3. Helpers


def test_generate_id_is_time_prefixed():
    assert generate_id(lambda: 36).startswith("10")
    assert len(generate_id(lambda: 36)) == 7


def test_format_timestamp():
    noon = int(datetime(2024, 3, 5, 12, 0).timestamp() * 1000)
    assert format_timestamp(noon - 30_000, noon) == "just now"
    assert format_timestamp(noon - 5 * 60_000, noon) == "5m ago"
    assert format_timestamp(noon - 2 * 3_600_000, noon) == "10:00"
    assert format_timestamp(noon - 3 * 86_400_000, noon) == "Mar 2"
