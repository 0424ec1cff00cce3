"""Shared persistent settings holding the desired enabled state."""

from __future__ import annotations

import json
import logging
import pathlib
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

ENABLED_KEY = "arabicRTLEnabled"
DEPRECATED_ENABLED_KEYS = ("muhaThinEnabled",)


@dataclass
class SettingChange:
    """Old and new value of a key touched by a single write."""

    old_value: Any
    new_value: Any


ChangeListener = Callable[[Dict[str, SettingChange]], None]


class SettingsStore:
    """In-memory key/value store that notifies listeners about changes."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = dict(initial or {})
        self._listeners: List[ChangeListener] = []

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {key: self._values[key] for key in keys if key in self._values}

    def set(self, values: Mapping[str, Any]) -> None:
        changes: Dict[str, SettingChange] = {}
        for key, value in values.items():
            old_value = self._values.get(key)
            if key in self._values and old_value == value:
                continue
            self._values[key] = value
            changes[key] = SettingChange(old_value=old_value, new_value=value)
        if changes:
            self._persist()
            self._notify(changes)

    def remove(self, keys: Iterable[str]) -> None:
        changes: Dict[str, SettingChange] = {}
        for key in keys:
            if key in self._values:
                changes[key] = SettingChange(old_value=self._values.pop(key), new_value=None)
        if changes:
            self._persist()
            self._notify(changes)

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _persist(self) -> None:
        """Hook for subclasses that keep values on disk."""

    def _notify(self, changes: Dict[str, SettingChange]) -> None:
        for listener in list(self._listeners):
            try:
                listener(changes)
            except Exception:
                logger.exception("Settings listener failed.")


class JsonSettingsStore(SettingsStore):
    """Settings store persisted as a JSON object on disk."""

    def __init__(self, path: pathlib.Path) -> None:
        self.path = path
        super().__init__(self._load(path))

    @staticmethod
    def _load(path: pathlib.Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Settings file {path} could not be read: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid settings file {path}: expected a JSON object at the root."
            )
        return data

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(self._values, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )


def read_enabled(store: SettingsStore) -> bool:
    """Read the enabled flag, moving a value stored under an old key first."""

    values = store.get((ENABLED_KEY, *DEPRECATED_ENABLED_KEYS))
    if ENABLED_KEY not in values:
        for legacy_key in DEPRECATED_ENABLED_KEYS:
            if legacy_key in values:
                logger.info("Migrating setting %s to %s.", legacy_key, ENABLED_KEY)
                store.set({ENABLED_KEY: values[legacy_key]})
                values[ENABLED_KEY] = values[legacy_key]
                break
    stale = [key for key in DEPRECATED_ENABLED_KEYS if key in values]
    if stale:
        store.remove(stale)
    # Anything but an explicit False means enabled.
    return values.get(ENABLED_KEY) is not False
