"""Command protocol and shared-setting reconciliation for one document context."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from .engine import Engine
from .errors import ErrorCategory, UnknownCommandError
from .policy import ErrorPolicy
from .settings import ENABLED_KEY, SettingChange, SettingsStore, read_enabled
from .structures import CommandResponse, Stats

logger = logging.getLogger(__name__)

EngineFactory = Callable[[], Engine]

NOT_READY_MESSAGE = "RTL corrector not initialized or disabled"
UNKNOWN_ACTION_MESSAGE = "Unknown action"


class EngineController:
    """Owns the engine of one document context and creates it lazily."""

    def __init__(self, factory: EngineFactory) -> None:
        self.factory = factory
        self.engine: Optional[Engine] = None

    def initialise(self) -> Engine:
        if self.engine is not None:
            self.engine.destroy()
        self.engine = self.factory()
        self.engine.start()
        return self.engine

    def enable(self) -> Engine:
        if self.engine is None or self.engine.destroyed:
            return self.initialise()
        self.engine.enable()
        return self.engine

    def disable(self) -> None:
        if self.engine is not None:
            self.engine.disable()

    def shutdown(self) -> None:
        if self.engine is not None:
            self.engine.destroy()
            self.engine = None


class CommandHandler:
    """Answers enable/disable/getStats/rescan requests with structured replies."""

    def __init__(
        self,
        controller: EngineController,
        *,
        policy: Optional[ErrorPolicy] = None,
    ) -> None:
        self.controller = controller
        self.policy = policy or ErrorPolicy()
        self._actions: Dict[str, Callable[[], CommandResponse]] = {
            "enable": self._enable,
            "disable": self._disable,
            "getStats": self._get_stats,
            "rescan": self._rescan,
        }

    def handle(self, message: Mapping[str, Any]) -> Dict[str, Any]:
        """Dispatch a message; never raises."""

        try:
            action = message.get("action") if isinstance(message, Mapping) else None
            handler = self._actions.get(action) if isinstance(action, str) else None
            if handler is None:
                raise UnknownCommandError(UNKNOWN_ACTION_MESSAGE)
            response = handler()
        except UnknownCommandError as exc:
            response = CommandResponse(success=False, error=str(exc))
        except Exception as exc:
            self.policy.handle_error(
                ErrorCategory.COMMAND,
                f"Command {message!r} failed.",
                str(exc),
            )
            response = CommandResponse(success=False, error=str(exc))
        return response.to_dict()

    def _enable(self) -> CommandResponse:
        engine = self.controller.enable()
        return CommandResponse(success=True, stats=engine.get_stats())

    def _disable(self) -> CommandResponse:
        self.controller.disable()
        return CommandResponse(success=True)

    def _get_stats(self) -> CommandResponse:
        engine = self.controller.engine
        stats = engine.get_stats() if engine is not None else Stats()
        return CommandResponse(success=True, stats=stats)

    def _rescan(self) -> CommandResponse:
        engine = self.controller.engine
        if engine is None or not engine.enabled or engine.destroyed:
            return CommandResponse(success=False, error=NOT_READY_MESSAGE)
        engine.scan()
        return CommandResponse(success=True, stats=engine.get_stats())


class SettingsSync:
    """Keeps the engine in line with the shared enabled flag."""

    def __init__(
        self,
        store: SettingsStore,
        controller: EngineController,
        *,
        policy: Optional[ErrorPolicy] = None,
    ) -> None:
        self.store = store
        self.controller = controller
        self.policy = policy or ErrorPolicy()
        self._listening = False

    def start(self) -> None:
        try:
            if read_enabled(self.store):
                self.controller.enable()
            else:
                self.controller.disable()
        except Exception as exc:
            self.policy.handle_error(
                ErrorCategory.SETUP,
                "Could not apply the stored enabled state.",
                str(exc),
            )
        if not self._listening:
            self.store.add_listener(self._on_changed)
            self._listening = True

    def stop(self) -> None:
        if self._listening:
            self.store.remove_listener(self._on_changed)
            self._listening = False

    def _on_changed(self, changes: Dict[str, SettingChange]) -> None:
        change = changes.get(ENABLED_KEY)
        if change is None:
            return
        try:
            if change.new_value:
                self.controller.enable()
            else:
                self.controller.disable()
        except Exception as exc:
            self.policy.handle_error(
                ErrorCategory.SETUP,
                "Could not apply a changed enabled state.",
                str(exc),
            )
