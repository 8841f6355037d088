"""Action registry: maps action-type names to handlers."""

import logging
import threading
from collections.abc import Iterator

from cadence.scheduling.types import ActionFunc

logger = logging.getLogger(__name__)


class ActionRegistry:
    """Lock-protected mapping of action-type name to handler.

    Registration normally happens during setup, before the scheduler starts,
    but lookups are safe while handlers are still being registered.

    Example:
        registry = ActionRegistry()

        @registry.action("send_digest")
        async def send_digest(ctx, definition):
            return "sent"
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._actions: dict[str, ActionFunc] = {}

    def register(self, name: str, handler: ActionFunc) -> None:
        """Register a handler, replacing any previous one with the same name."""
        name = name.strip()
        if not name:
            raise ValueError("Action name must not be empty")
        with self._lock:
            replaced = name in self._actions
            self._actions[name] = handler
        if replaced:
            logger.warning("action_replaced", extra={"action.type": name})
        else:
            logger.debug(f"Registered action: {name}")

    def action(self, name: str):
        """Decorator form of register()."""

        def decorator(handler: ActionFunc) -> ActionFunc:
            self.register(name, handler)
            return handler

        return decorator

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._actions.pop(name, None) is not None

    def get(self, name: str) -> ActionFunc | None:
        with self._lock:
            return self._actions.get(name)

    @property
    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._actions)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._actions

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def __len__(self) -> int:
        with self._lock:
            return len(self._actions)
