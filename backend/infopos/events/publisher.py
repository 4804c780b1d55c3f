# Overview: Publishing helpers; every state change is mirrored onto its channel after commit.

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Iterable

from flask import current_app

from .envelope import Channel, EventEnvelope

logger = logging.getLogger(__name__)


def _bus():
    return current_app.extensions["event_bus"]


def _log_outcome(channel: str, event: EventEnvelope):
    def _done(future: Future) -> None:
        exc = future.exception()
        if exc is None:
            outcome = future.result()
            logger.info(
                "Event sent successfully to channel %s: %s (offset %s)",
                channel, event.id, outcome.offset,
            )
        else:
            logger.error(
                "Failed to send event to channel %s: %s (%s)",
                channel, event.id, exc,
            )
    return _done


def publish(channel, event: EventEnvelope) -> Future:
    """
    Publish event on channel. Fire-and-forget for the caller.

    The returned future reports delivery; a failure is logged and never
    raised, and never undoes state that was already committed.
    """
    name = Channel(channel).value
    logger.info(
        "Publishing %s event to channel %s: %s (tenant=%s key=%s)",
        event.event_type.value, name, event.id, event.tenant_id, event.key,
    )
    future = _bus().publish(name, event)
    future.add_done_callback(_log_outcome(name, event))
    return future


def publish_all(events: Iterable[EventEnvelope]) -> list[Future]:
    """Publish each event on its own channel, in order."""
    return [publish(event.channel, event) for event in events]
