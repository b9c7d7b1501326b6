from __future__ import annotations

"""Tiny pub/sub event bus for presentation-layer signals."""

from typing import Any, Callable, Dict, List

from .explain import trace


class EventBus:
    def __init__(self) -> None:
        self._subs: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        """Register a handler; returns a callable that removes it again."""
        self._subs.setdefault(event, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._subs.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def emit(self, event: str, payload: Any) -> None:
        for h in list(self._subs.get(event, [])):
            try:
                h(payload)
            except Exception as e:
                # A failing subscriber must not break the session
                trace("subscriber_failed", {"event": event, "error": repr(e)})
