"""Per-instance event emitter.

Each client and transport owns its own emitter, so several clients can live
in one process without sharing subscribers. Keys may be plain strings or str
enums (RpcEvent, ClientSignal, TransportEvent); enums are normalized to their
value.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


def _key(event: str | Enum) -> str:
    return event.value if isinstance(event, Enum) else event


class EventEmitter:
    """Synchronous emitter with optional coroutine handlers.

    Handlers run in registration order. A handler that returns an awaitable
    is scheduled as a task on the running loop. Handler errors are logged and
    never interrupt delivery to the remaining handlers.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[tuple[Handler, bool]]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, event: str | Enum, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns an unsubscribe function."""
        self._handlers.setdefault(_key(event), []).append((handler, False))
        return lambda: self.off(event, handler)

    def once(self, event: str | Enum, handler: Handler) -> Callable[[], None]:
        """Register a handler that is removed after its first call."""
        self._handlers.setdefault(_key(event), []).append((handler, True))
        return lambda: self.off(event, handler)

    def off(self, event: str | Enum, handler: Handler) -> None:
        """Remove a handler (no-op if not registered)."""
        key = _key(event)
        entries = self._handlers.get(key)
        if not entries:
            return
        self._handlers[key] = [entry for entry in entries if entry[0] != handler]
        if not self._handlers[key]:
            del self._handlers[key]

    def listener_count(self, event: str | Enum) -> int:
        return len(self._handlers.get(_key(event), []))

    def emit(self, event: str | Enum, *args: Any) -> bool:
        """Call every handler for ``event``. Returns True if any were called."""
        key = _key(event)
        entries = list(self._handlers.get(key, []))
        if not entries:
            return False

        # Drop one-shot handlers before calling, so re-entrant emits skip them
        if any(once for _, once in entries):
            self._handlers[key] = [entry for entry in self._handlers[key] if not entry[1]]
            if not self._handlers[key]:
                del self._handlers[key]

        for handler, _ in entries:
            try:
                result = handler(*args)
            except Exception:
                logger.exception(f"Error in handler for {key}")
                continue
            if inspect.isawaitable(result):
                self._schedule(key, result)
        return True

    def _schedule(self, key: str, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(f"Error in async handler for {key}", exc_info=t.exception())

        task.add_done_callback(_done)
