from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

FilterHandler = Callable[..., Any]
ActionHandler = Callable[..., None]


class HookBus:
    """Plugin extension points.

    Filters receive the current value plus the hook arguments and return the
    new value; every registered filter runs in order, so any one of them can
    flip an ``*_allow`` value to False. Actions are notifications whose return
    value is ignored.
    """

    def __init__(self) -> None:
        self._filters: dict[str, list[FilterHandler]] = defaultdict(list)
        self._actions: dict[str, list[ActionHandler]] = defaultdict(list)

    def add_filter(self, hook: str, handler: FilterHandler) -> None:
        self._filters[hook].append(handler)

    def remove_filter(self, hook: str, handler: FilterHandler) -> None:
        if hook in self._filters and handler in self._filters[hook]:
            self._filters[hook].remove(handler)

    def add_action(self, hook: str, handler: ActionHandler) -> None:
        self._actions[hook].append(handler)

    def remove_action(self, hook: str, handler: ActionHandler) -> None:
        if hook in self._actions and handler in self._actions[hook]:
            self._actions[hook].remove(handler)

    def filter(self, hook: str, value: Any, *args: Any) -> Any:
        for handler in list(self._filters.get(hook, [])):
            value = handler(value, *args)
        return value

    def allow(self, hook: str, *args: Any) -> bool:
        return bool(self.filter(hook, True, *args))

    def act(self, hook: str, *args: Any) -> None:
        for handler in list(self._actions.get(hook, [])):
            handler(*args)
        # Wildcard listeners also receive the hook name.
        for handler in list(self._actions.get("*", [])):
            handler(hook, *args)

    def clear(self) -> None:
        self._filters.clear()
        self._actions.clear()


hooks = HookBus()
