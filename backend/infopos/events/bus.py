"""
In-process message bus with named channels.

WHY: Producers mirror state changes onto channels (sales, inventory, payment,
sync) for consumers to replay. The bus is a secondary, best-effort
notification path, not a write-ahead log: a failed publish is reported
through the returned future and never undoes the committed change.

DELIVERY:
- One FIFO queue per channel; messages are JSON-serialized on publish so a
  consumer can never mutate the producer's objects.
- "queued" mode holds messages until dispatch_pending() (or `flask events
  drain`) delivers them; "inline" mode delivers right after publish.
- A message is removed from its queue once every subscriber has returned
  (acknowledged). At-least-once: subscribers must tolerate redelivery.

Registered as a Flask extension: app.extensions["event_bus"].
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Optional

from .envelope import Channel, EventEnvelope

logger = logging.getLogger(__name__)

DISPATCH_MODES = ("queued", "inline")


class PublishError(RuntimeError):
    """The channel could not accept the message."""


@dataclass(frozen=True)
class DeliveryOutcome:
    channel: str
    key: str
    event_id: str
    offset: int


@dataclass(frozen=True)
class Message:
    channel: str
    key: str
    offset: int
    body: str

    def envelope(self) -> EventEnvelope:
        return EventEnvelope.from_dict(json.loads(self.body))


class EventBus:
    def __init__(self, app=None):
        self._lock = threading.RLock()
        self._queues: dict[str, deque[Message]] = {c.value: deque() for c in Channel}
        self._history: dict[str, list[Message]] = {c.value: [] for c in Channel}
        self._subscribers: dict[str, list[Callable[[EventEnvelope], object]]] = {c.value: [] for c in Channel}
        self._offsets: dict[str, int] = {c.value: 0 for c in Channel}
        self._available = True
        self.dispatch_mode = "queued"
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        mode = app.config.get("EVENT_DISPATCH_MODE", "queued")
        if mode not in DISPATCH_MODES:
            raise ValueError(f"EVENT_DISPATCH_MODE must be one of {', '.join(DISPATCH_MODES)}")
        self.dispatch_mode = mode
        self._available = bool(app.config.get("EVENT_BUS_ENABLED", True))
        app.extensions["event_bus"] = self

    @property
    def available(self) -> bool:
        return self._available

    def set_available(self, available: bool) -> None:
        self._available = available

    def subscribe(self, channel, handler: Callable[[EventEnvelope], object]) -> None:
        name = Channel(channel).value
        with self._lock:
            if handler not in self._subscribers[name]:
                self._subscribers[name].append(handler)

    def unsubscribe_all(self) -> None:
        with self._lock:
            for handlers in self._subscribers.values():
                handlers.clear()

    def publish(self, channel, event: EventEnvelope) -> Future:
        """
        Enqueue event on channel, keyed by the entity id.

        Never raises: failures are set on the returned future.
        """
        future: Future = Future()
        try:
            name = Channel(channel).value
            if not self._available:
                raise PublishError(f"Channel {name!r} unavailable")
            body = json.dumps(event.to_dict())
            with self._lock:
                offset = self._offsets[name]
                self._offsets[name] = offset + 1
                message = Message(channel=name, key=event.key, offset=offset, body=body)
                self._queues[name].append(message)
                self._history[name].append(message)
            future.set_result(DeliveryOutcome(channel=name, key=event.key, event_id=event.id, offset=offset))
        except Exception as exc:
            future.set_exception(exc if isinstance(exc, PublishError) else PublishError(str(exc)))
            return future

        if self.dispatch_mode == "inline":
            self.dispatch_pending(name)
        return future

    def dispatch_pending(self, channel=None, limit: Optional[int] = None) -> int:
        """Deliver queued messages FIFO to subscribers. Returns messages delivered."""
        names = [Channel(channel).value] if channel is not None else [c.value for c in Channel]
        delivered = 0
        for name in names:
            while limit is None or delivered < limit:
                with self._lock:
                    if not self._queues[name]:
                        break
                    message = self._queues[name].popleft()
                    handlers = list(self._subscribers[name])
                envelope = message.envelope()
                for handler in handlers:
                    handler(envelope)
                delivered += 1
        return delivered

    def pending(self, channel=None) -> int:
        with self._lock:
            if channel is not None:
                return len(self._queues[Channel(channel).value])
            return sum(len(q) for q in self._queues.values())

    def published(self, channel) -> list[EventEnvelope]:
        """Every envelope ever accepted on channel, oldest first."""
        with self._lock:
            messages = list(self._history[Channel(channel).value])
        return [m.envelope() for m in messages]

    def reset(self) -> None:
        with self._lock:
            for name in self._queues:
                self._queues[name].clear()
                self._history[name].clear()
                self._offsets[name] = 0
        self._available = True
