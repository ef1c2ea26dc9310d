# quran_playback/playback/events.py
"""
Ordered event stream published by the playback engine.
"""
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional
import logging

from ..models import AyahRef, PlaybackState

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    STATE = "state"
    QUEUE = "queue"
    AYAH = "ayah"
    UNAVAILABLE = "unavailable"
    SPEED = "speed"


@dataclass(frozen=True)
class PlaybackEvent:
    """One engine transition. `sequence` is gapless and strictly increasing."""
    sequence: int
    kind: EventKind
    state: PlaybackState
    ayah: Optional[AyahRef] = None
    ayah_repetition: int = 0
    total_ayah_repetitions: int = 1
    range_repetition: int = 0
    total_range_repetitions: int = 1
    speed: float = 1.0
    detail: Optional[str] = None

    def __str__(self) -> str:
        parts = [f"#{self.sequence}", self.kind.value, self.state.value]
        if self.ayah is not None:
            parts.append(str(self.ayah))
        if self.kind == EventKind.AYAH:
            parts.append(f"rep {_count(self.ayah_repetition, self.total_ayah_repetitions)}")
            parts.append(f"range {_count(self.range_repetition, self.total_range_repetitions)}")
        if self.kind == EventKind.SPEED:
            parts.append(f"{self.speed}x")
        if self.detail:
            parts.append(self.detail)
        return " ".join(parts)


def _count(current: int, total: int) -> str:
    return f"{current}/{'∞' if total == -1 else total}"


class Subscription:
    """Unbounded FIFO of events; a slow reader never loses or reorders events."""

    def __init__(self, stream: "EventStream"):
        self._stream = stream
        self._queue: "asyncio.Queue[PlaybackEvent]" = asyncio.Queue()

    def _push(self, event: PlaybackEvent):
        self._queue.put_nowait(event)

    async def get(self) -> PlaybackEvent:
        return await self._queue.get()

    def drain(self) -> List[PlaybackEvent]:
        """Return every event received so far without waiting."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def close(self):
        self._stream.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> PlaybackEvent:
        return await self.get()


class EventStream:
    """
    Fan-out of engine events.

    Events are numbered and pushed to every subscription synchronously inside
    the engine's critical section, so all observers see the same total order.
    """

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._sequence = 0

    @property
    def last_sequence(self) -> int:
        return self._sequence

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, kind: EventKind, state: PlaybackState, **fields) -> PlaybackEvent:
        self._sequence += 1
        event = PlaybackEvent(sequence=self._sequence, kind=kind, state=state, **fields)
        logger.debug(f"Event {event}")
        for subscription in self._subscriptions:
            subscription._push(event)
        return event
