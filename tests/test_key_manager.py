"""
Key pool tests.

- Round-robin rotation over active keys
- Deactivation after repeated failures, recovery on success
- Persistence of the pool between instances
"""

import pytest

from nexuschat.errors import NoActiveCredential
from nexuschat.key_manager import MAX_FAILURES, KeyManager, mask
from nexuschat.storage import Storage


@pytest.fixture
def storage(tmp_path):
    return Storage(str(tmp_path))


@pytest.fixture
def keys(storage):
    manager = KeyManager(storage)
    for secret in ("key-a", "key-b", "key-c"):
        manager.add(secret)
    return manager


# 1. Pool membership


def test_add_is_idempotent(keys):
    assert keys.add("key-a") is False
    assert [k["secret"] for k in keys.all()] == ["key-a", "key-b", "key-c"]


def test_add_ignores_blank_input(storage):
    manager = KeyManager(storage)
    assert manager.add("   ") is False
    assert manager.all() == []


def test_new_keys_start_healthy(keys):
    for k in keys.all():
        assert k["active"] is True
        assert k["failureCount"] == 0


def test_remove_missing_key_is_noop(keys):
    assert keys.remove("nope") is False
    assert len(keys.all()) == 3


def test_remove_missing_key_writes_nothing(storage, tmp_path):
    manager = KeyManager(storage)
    assert manager.remove("nope") is False
    assert not (tmp_path / "api-keys.json").exists()


def test_pool_survives_reload(keys, storage):
    keys.report_failure("key-b")
    keys.remove("key-c")

    reloaded = KeyManager(storage)
    assert reloaded.all() == [
        {"secret": "key-a", "active": True, "failureCount": 0},
        {"secret": "key-b", "active": True, "failureCount": 1},
    ]


def test_all_returns_copies(keys):
    keys.all()[0]["active"] = False
    assert keys.all()[0]["active"] is True


# 2. Rotation


def test_rotation_visits_each_key_once_in_order(keys):
    assert [keys.acquire() for _ in range(3)] == ["key-a", "key-b", "key-c"]
    assert [keys.acquire() for _ in range(3)] == ["key-a", "key-b", "key-c"]


def test_rotation_starts_from_current_cursor(keys):
    keys.acquire()
    assert [keys.acquire() for _ in range(3)] == ["key-b", "key-c", "key-a"]


def test_cursor_is_not_reset_by_pool_changes(keys):
    keys.acquire()
    keys.acquire()
    keys.add("key-d")
    # cursor is 2, four active keys
    assert keys.acquire() == "key-c"
    assert keys.cursor == 3


# 3. Health


def test_deactivation_after_three_failures(keys):
    for _ in range(MAX_FAILURES - 1):
        keys.report_failure("key-b")
    assert keys.all()[1]["active"] is True

    keys.report_failure("key-b")
    assert keys.all()[1] == {"secret": "key-b", "active": False, "failureCount": 3}
    assert "key-b" not in {keys.acquire() for _ in range(10)}


def test_success_resets_failures(keys):
    keys.report_failure("key-a")
    keys.report_failure("key-a")
    keys.report_success("key-a")
    assert keys.all()[0]["failureCount"] == 0


def test_success_reactivates_a_benched_key(keys):
    for _ in range(5):
        keys.report_failure("key-a")
    keys.report_success("key-a")
    assert keys.all()[0] == {"secret": "key-a", "active": True, "failureCount": 0}


def test_reports_for_unknown_keys_are_ignored(keys, storage):
    keys.report_failure("ghost")
    keys.report_success("ghost")
    assert [k["secret"] for k in KeyManager(storage).all()] == [
        "key-a",
        "key-b",
        "key-c",
    ]


def test_acquire_without_active_keys_raises_and_mutates_nothing(keys):
    for secret in ("key-a", "key-b", "key-c"):
        for _ in range(MAX_FAILURES):
            keys.report_failure(secret)
    before = keys.all()

    with pytest.raises(NoActiveCredential):
        keys.acquire()

    assert keys.cursor == 0
    assert keys.all() == before


def test_acquire_on_empty_pool_raises(storage):
    with pytest.raises(NoActiveCredential):
        KeyManager(storage).acquire()


# 4. Seeding and display


def test_import_key_only_seeds_an_empty_pool(storage, keys):
    assert keys.import_key("from-env") is False

    fresh = KeyManager(Storage(str(storage.directory) + "-fresh"))
    assert fresh.import_key("from-env") is True
    assert fresh.import_key("") is False
    assert [k["secret"] for k in fresh.all()] == ["from-env"]


def test_mask_hides_the_middle():
    assert mask("gsk_1234567890abcd") == "gsk_…abcd"
    assert mask("short") == "*****"
