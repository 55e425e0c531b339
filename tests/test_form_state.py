"""Tests for FormStateStore."""
import logging

from formstate import FormStateStore


def _mounted_store(**values):
    store = FormStateStore()
    for field_id, value in values.items():
        store.set(field_id, value, notify=False)
        store.set_mounted(field_id, True)
    return store


def test_only_user_changes_mark_dirty():
    store = _mounted_store(name="seed")
    assert store.is_dirty() is False

    store.set("name", "typed", dirty=True)
    assert store.is_dirty() is True
    assert store.dirty_fields() == ["name"]

    # A later programmatic update does not clear the flag
    store.set("name", "computed")
    assert store.get_slot("name").is_dirty is True


def test_listeners_are_notified_synchronously():
    store = _mounted_store(name=None)
    seen = []
    unsubscribe = store.subscribe(lambda field_id, value: seen.append((field_id, value)))

    store.set("name", "a", dirty=True)
    store.set("name", "b", notify=False)
    unsubscribe()
    store.set("name", "c")

    assert seen == [("name", "a")]


def test_listener_errors_do_not_stop_other_listeners(caplog):
    store = _mounted_store(name=None)
    seen = []

    def broken(field_id, value):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(lambda field_id, value: seen.append(value))

    with caplog.at_level(logging.WARNING, logger="formstate.form_state"):
        store.set("name", "x")

    assert seen == ["x"]
    assert "boom" in caplog.text


def test_visible_values_exclude_unmounted_slots():
    store = _mounted_store(a=1, b=2)
    store.clear("b", keep_value=True)

    assert store.get_all_visible_values() == {"a": 1}
    assert store.get("b") == 2
    assert store.has_value("b") is True


def test_clear_removes_value_and_error():
    store = _mounted_store(a=1)
    store.set_error("a", "bad")
    store.clear("a")

    assert "a" not in store
    assert store.get("a") is None
    assert store.get_error("a") is None


def test_reset_all_restores_defaults_and_drops_preserved_values():
    store = _mounted_store(a="typed", b="typed")
    store.set("a", "typed again", dirty=True)
    store.set_error("b", "bad")
    store.set("hidden", "kept", notify=False)

    store.reset_all({"a": "default"})

    assert store.get_all_visible_values() == {"a": "default", "b": None}
    assert store.is_dirty() is False
    assert store.get_errors() == {}
    assert "hidden" not in store


def test_seed_updates_existing_slots_only():
    store = _mounted_store(a=None)
    store.seed({"a": 1, "unknown": 2})

    assert store.get_all_visible_values() == {"a": 1}
    assert "unknown" not in store
    assert store.is_dirty() is False


def test_token_changes_on_every_mutation():
    store = _mounted_store(a=None)
    tokens = [store.token]
    store.set("a", 1)
    tokens.append(store.token)
    store.set_error("a", "bad")
    tokens.append(store.token)
    store.set_error("a", "bad")
    tokens.append(store.token)

    assert tokens[0] < tokens[1] < tokens[2]
    # Setting the same error again is not a mutation
    assert tokens[2] == tokens[3]


def test_clear_keeping_value_keeps_dirty_flag():
    store = _mounted_store(a=None)
    store.set("a", "typed", dirty=True)
    store.set_error("a", "bad")

    store.clear("a", keep_value=True)

    slot = store.get_slot("a")
    assert slot.error is None
    assert slot.mounted is False
    assert slot.is_dirty is True
    # Unmounted slots do not count towards the form's dirty state
    assert store.is_dirty() is False

    store.set_mounted("a", True)
    assert store.is_dirty() is True
