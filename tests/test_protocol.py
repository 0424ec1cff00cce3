import json

import pytest

from conftest import ARABIC
from rtlflow.dom import Element, Text
from rtlflow.engine import Engine
from rtlflow.errors import ConfigurationError, ErrorCategory
from rtlflow.protocol import CommandHandler, EngineController, SettingsSync
from rtlflow.settings import (
    ENABLED_KEY,
    JsonSettingsStore,
    SettingsStore,
    read_enabled,
)
from rtlflow.styling import is_styled

PAGE = f"<body><p id='a'>{ARABIC}</p><span id='b'>{ARABIC}</span></body>"


@pytest.fixture
def document(make_document):
    return make_document(PAGE)


@pytest.fixture
def controller(document, host):
    return EngineController(lambda: Engine(document, host))


@pytest.fixture
def handler(controller):
    return CommandHandler(controller)


def styled_count(document):
    return sum(1 for element in document.iter_elements() if is_styled(element))


def test_enable_creates_the_engine_and_reports_stats(handler, controller, host, document):
    response = handler.handle({"action": "enable"})
    assert response == {
        "success": True,
        "stats": {"total_processed": 0, "average_ratio": 0.0, "categories": {}},
    }
    assert controller.engine is not None

    host.run_until_idle()
    stats = handler.handle({"action": "getStats"})["stats"]
    assert stats["total_processed"] == 2
    assert stats["categories"] == {"paragraph": 1, "span": 1}
    assert stats["average_ratio"] == 1.0


def test_disable_removes_styling(handler, host, document):
    handler.handle({"action": "enable"})
    host.run_until_idle()
    assert handler.handle({"action": "disable"}) == {"success": True}
    assert styled_count(document) == 0


def test_rescan_requires_an_enabled_engine(handler, host):
    expected = {"success": False, "error": "RTL corrector not initialized or disabled"}
    assert handler.handle({"action": "rescan"}) == expected

    handler.handle({"action": "enable"})
    host.run_until_idle()
    handler.handle({"action": "disable"})
    assert handler.handle({"action": "rescan"}) == expected


def test_rescan_picks_up_content_missed_during_a_batch(handler, host, document):
    handler.handle({"action": "enable"})
    late = Element("p")
    late.append_child(Text(ARABIC))
    document.body.append_child(late)
    host.run_until_idle()
    assert styled_count(document) == 2

    response = handler.handle({"action": "rescan"})
    assert response["success"]
    host.run_until_idle()
    assert styled_count(document) == 3


def test_get_stats_without_engine(handler):
    assert handler.handle({"action": "getStats"}) == {
        "success": True,
        "stats": {"total_processed": 0, "average_ratio": 0.0, "categories": {}},
    }


@pytest.mark.parametrize("message", [{"action": "explode"}, {}, {"action": 3}, "enable"])
def test_unknown_actions_are_rejected(handler, message):
    assert handler.handle(message) == {"success": False, "error": "Unknown action"}


def test_failing_commands_are_reported_not_raised(document, host):
    def factory():
        raise RuntimeError("no document")

    handler = CommandHandler(EngineController(factory))
    response = handler.handle({"action": "enable"})
    assert response == {"success": False, "error": "no document"}
    assert handler.policy.count(ErrorCategory.COMMAND) == 1


def test_reenabling_after_destroy_builds_a_new_engine(controller):
    first = controller.enable()
    controller.shutdown()
    assert controller.engine is None
    second = controller.enable()
    assert second is not first
    assert first.destroyed


def test_initialise_replaces_the_previous_engine(controller):
    first = controller.initialise()
    second = controller.initialise()
    assert first.destroyed
    assert controller.engine is second


def test_read_enabled_defaults_to_true():
    assert read_enabled(SettingsStore())
    assert read_enabled(SettingsStore({ENABLED_KEY: None}))
    assert not read_enabled(SettingsStore({ENABLED_KEY: False}))


def test_legacy_key_is_migrated():
    store = SettingsStore({"muhaThinEnabled": False})
    assert not read_enabled(store)
    assert store.get([ENABLED_KEY, "muhaThinEnabled"]) == {ENABLED_KEY: False}


def test_legacy_key_is_discarded_when_current_key_exists():
    store = SettingsStore({ENABLED_KEY: True, "muhaThinEnabled": False})
    assert read_enabled(store)
    assert store.get([ENABLED_KEY, "muhaThinEnabled"]) == {ENABLED_KEY: True}


def test_store_notifies_only_on_changes():
    store = SettingsStore({ENABLED_KEY: True})
    changes = []
    store.add_listener(changes.append)

    store.set({ENABLED_KEY: True})
    assert changes == []

    store.set({ENABLED_KEY: False})
    assert changes[0][ENABLED_KEY].old_value is True
    assert changes[0][ENABLED_KEY].new_value is False


def test_settings_sync_follows_the_shared_flag(controller, host, document):
    store = SettingsStore({ENABLED_KEY: False})
    sync = SettingsSync(store, controller)
    sync.start()
    assert controller.engine is None

    store.set({ENABLED_KEY: True})
    host.run_until_idle()
    assert styled_count(document) == 2

    store.set({ENABLED_KEY: False})
    assert styled_count(document) == 0
    assert not controller.engine.enabled

    sync.stop()
    store.set({ENABLED_KEY: True})
    host.run_until_idle()
    assert styled_count(document) == 0


def test_settings_sync_enables_by_default(controller, host, document):
    SettingsSync(SettingsStore(), controller).start()
    host.run_until_idle()
    assert styled_count(document) == 2


def test_json_store_persists_values(tmp_path):
    path = tmp_path / "state" / "settings.json"
    store = JsonSettingsStore(path)
    store.set({ENABLED_KEY: False})

    assert json.loads(path.read_text(encoding="utf-8")) == {ENABLED_KEY: False}
    assert JsonSettingsStore(path).get([ENABLED_KEY]) == {ENABLED_KEY: False}


@pytest.mark.parametrize("content", ["[1, 2]", "{not json"])
def test_json_store_rejects_bad_files(tmp_path, content):
    path = tmp_path / "settings.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigurationError):
        JsonSettingsStore(path)
