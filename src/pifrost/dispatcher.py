"""Run one ordered event loop per resource kind."""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterator, Mapping
from typing import Any, Protocol

import structlog

from .errors import AnnotationMissing
from .handlers import ResourceHandler
from .resources import ResourceEvent, ResourceKind, Updated


class EventSource(Protocol):
    def events(self, kind: ResourceKind) -> Iterator[ResourceEvent]: ...

    def stop(self) -> None: ...


_STOP = object()


def _resource_of(event: ResourceEvent) -> Any:
    return event.new if isinstance(event, Updated) else event.resource


class WatchDispatcher:
    """Feeds each kind's events through a queue into a single consumer thread.

    Events of one kind are handled strictly in delivery order. The two kinds
    run independently and share only the handlers' DNS client.
    """

    def __init__(
        self,
        source: EventSource,
        handlers: Mapping[ResourceKind, ResourceHandler],
        logger: Any = None,
    ) -> None:
        self.source = source
        self.handlers = dict(handlers)
        self._log = logger or structlog.get_logger(__name__)
        self._queues: dict[ResourceKind, queue.Queue[Any]] = {
            kind: queue.Queue() for kind in self.handlers
        }
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        for kind in self.handlers:
            for target, role in ((self._produce, "producer"), (self._consume, "consumer")):
                thread = threading.Thread(
                    target=target,
                    args=(kind,),
                    name=f"{kind.value}-{role}",
                    daemon=True,
                )
                thread.start()
                self._threads.append(thread)
            self._log.info("Started watcher", kind=kind.value)

    def stop(self) -> None:
        self.source.stop()
        for q in self._queues.values():
            q.put(_STOP)

    def join(self, timeout: float | None = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    def is_alive(self) -> bool:
        return bool(self._threads) and all(t.is_alive() for t in self._threads)

    def _produce(self, kind: ResourceKind) -> None:
        q = self._queues[kind]
        try:
            for event in self.source.events(kind):
                q.put(event)
        except Exception as e:
            self._log.error("Event stream failed", kind=kind.value, error=str(e))
        finally:
            q.put(_STOP)

    def _consume(self, kind: ResourceKind) -> None:
        q = self._queues[kind]
        while True:
            event = q.get()
            if event is _STOP:
                self._log.info("Watcher stopped", kind=kind.value)
                return
            self.process(kind, event)

    def process(self, kind: ResourceKind, event: ResourceEvent) -> None:
        """Handle one event; failures are logged and never escape."""
        resource = _resource_of(event)
        log = self._log.bind(
            kind=kind.value,
            namespace=resource.namespace,
            name=resource.name,
            event=type(event).__name__,
        )
        try:
            self.handlers[kind].handle(event)
        except AnnotationMissing:
            log.debug("Resource not managed, skipped")
        except Exception as e:
            log.error("Failed to handle event", error=str(e), error_type=type(e).__name__)
