"""Tests for FieldLifecycleManager."""
from formstate import (
    EngineConfig, FieldLifecycleManager, FieldPhase, FormSchema, FormStateStore, HiddenValuePolicy,
    RegistrationDelta, ValidationRegistry, build_schema_index,
)


def _manager(document, config=None):
    schema = FormSchema.from_dict(document)
    index = build_schema_index(schema.root_nodes, config=config)
    store = FormStateStore()
    registry = ValidationRegistry(config)
    manager = FieldLifecycleManager(store, registry, index, config, schema.default_values)
    return manager, store, registry


DOCUMENT = {
    "defaultValues": {"email": "ada@example.com"},
    "fields": {
        "email": {"uiType": "email-field", "validation": [{"email": True}]},
        "nickname": {"uiType": "text-field", "defaultValue": "ada"},
        "notes": {"uiType": "textarea", "hiddenValuePolicy": "preserve"},
    },
}


def test_mount_seeds_defaults_and_registers():
    manager, store, registry = _manager(DOCUMENT)

    manager.apply_delta(RegistrationDelta(to_mount=("email", "nickname")))

    assert manager.phase("email") is FieldPhase.MOUNTED
    assert store.get_all_visible_values() == {"email": "ada@example.com", "nickname": "ada"}
    assert store.is_dirty() is False
    assert registry.registered_fields() == ["email", "nickname"]


def test_unmount_clears_value_error_and_registration():
    manager, store, registry = _manager(DOCUMENT)
    manager.apply_delta(RegistrationDelta(to_mount=("nickname",)))
    store.set("nickname", "typed", dirty=True)
    store.set_error("nickname", "bad")

    manager.apply_delta(RegistrationDelta(to_unmount=("nickname",)))

    assert manager.phase("nickname") is FieldPhase.UNMOUNTED
    assert "nickname" not in store.get_all_visible_values()
    assert store.get("nickname") is None
    assert "nickname" not in registry


def test_remount_under_clear_policy_reseeds_default():
    manager, store, _ = _manager(DOCUMENT)
    manager.apply_delta(RegistrationDelta(to_mount=("nickname",)))
    store.set("nickname", "typed", dirty=True)
    manager.apply_delta(RegistrationDelta(to_unmount=("nickname",)))

    manager.apply_delta(RegistrationDelta(to_mount=("nickname",)))

    assert store.get("nickname") == "ada"
    assert store.is_dirty() is False


def test_engine_wide_preserve_policy():
    config = EngineConfig(hidden_value_policy=HiddenValuePolicy.PRESERVE)
    manager, store, registry = _manager(DOCUMENT, config)
    manager.apply_delta(RegistrationDelta(to_mount=("nickname",)))
    store.set("nickname", "typed", dirty=True)
    store.set_error("nickname", "bad")

    manager.apply_delta(RegistrationDelta(to_unmount=("nickname",)))
    assert store.get_all_visible_values() == {}
    assert store.get_error("nickname") is None
    assert "nickname" not in registry

    manager.apply_delta(RegistrationDelta(to_mount=("nickname",)))
    assert store.get("nickname") == "typed"


def test_node_policy_overrides_engine_policy():
    manager, store, _ = _manager(DOCUMENT)
    manager.apply_delta(RegistrationDelta(to_mount=("notes", "nickname")))
    store.set("notes", "keep me", dirty=True)
    store.set("nickname", "drop me", dirty=True)

    manager.apply_delta(RegistrationDelta(to_unmount=("notes", "nickname")))
    manager.apply_delta(RegistrationDelta(to_mount=("notes", "nickname")))

    assert store.get("notes") == "keep me"
    assert store.get("nickname") == "ada"


def test_generation_advances_on_every_transition():
    manager, _, _ = _manager(DOCUMENT)
    assert manager.generation("email") == 0

    manager.apply_delta(RegistrationDelta(to_mount=("email",)))
    mounted_generation = manager.generation("email")
    manager.apply_delta(RegistrationDelta(to_unmount=("email",)))
    manager.apply_delta(RegistrationDelta(to_mount=("email",)))

    assert mounted_generation == 1
    assert manager.generation("email") == 3


def test_repeated_deltas_are_no_ops():
    manager, _, registry = _manager(DOCUMENT)
    manager.apply_delta(RegistrationDelta(to_mount=("email",)))
    manager.apply_delta(RegistrationDelta(to_mount=("email",)))

    assert registry.compile_count == 1
    assert manager.generation("email") == 1
    assert manager.mounted_fields() == ["email"]
