"""Notification channel for the router.

Listeners subscribe to named events with ``on``/``add_listener``. The router
emits ``error`` with a ``RouterErrorEvent`` whenever an unhandled error
reaches the dispatch boundary, and ``reload`` with a ``RouteReloadEvent``
whenever the hot reload cache swaps a module.

Observers are a class-based alternative. Handlers are defined as methods on
the class with names following the format '[optional_]on_{event_name}', so
'log_on_error' and 'count_on_reload' are both picked up.
"""

import inspect
import logging
import re
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from hotroutes.descriptors import RouteDescriptor

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]
ObserverMapping = dict[str, list[str]]


@dataclass(frozen=True)
class RouterErrorEvent:
    message: str
    err: BaseException
    req: Any


@dataclass(frozen=True)
class RouteReloadEvent:
    file: Path
    descriptor: RouteDescriptor


class Observer:
    __observers__: ObserverMapping

    def __init_subclass__(cls, **kwargs) -> None:
        super().__init_subclass__(**kwargs)
        cls.__observers__ = defaultdict(list)

        for name in dir(cls):
            if name.startswith("_"):
                continue

            event = re.match(r"^(?:.+_)?on_(.*)$", name)
            if not event:
                continue

            if not callable(getattr(cls, name)):
                continue

            cls.__observers__[event.group(1)].append(name)


class EventEmitter:
    """Explicit observer list with sync or async listeners.

    Examples:
        ```python
        router = Router()

        @router.on("error")
        def log_error(event: RouterErrorEvent):
            logger.error(event.message, exc_info=event.err)
        ```
    """

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def add_listener(self, event: str, listener: Listener) -> Listener:
        self._listeners[event].append(listener)
        return listener

    def on(self, event: str, listener: Listener | None = None):
        if listener is None:
            return lambda func: self.add_listener(event, func)

        return self.add_listener(event, listener)

    def remove_listener(self, event: str, listener: Listener) -> None:
        if listener in self._listeners[event]:
            self._listeners[event].remove(listener)

    def listeners(self, event: str) -> list[Listener]:
        return list(self._listeners[event])

    def add_observer(self, observer: Observer) -> None:
        for event, names in observer.__observers__.items():
            for name in names:
                self.add_listener(event, getattr(observer, name))

    async def emit(self, event: str, payload: Any = None) -> bool:
        """Call every listener of an event in subscription order.

        A listener that raises is logged and skipped; the remaining listeners
        still run.

        Returns:
            True if the event had any listeners.
        """
        listeners = self.listeners(event)
        for listener in listeners:
            try:
                result = listener(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Listener {listener!r} failed while handling {event!r}")

        return bool(listeners)
