# quran_playback/playback/output.py
"""
Audio output interface consumed by the engine, and a simulated implementation.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Set
import logging

from ..models import AudioLocator
from ..exceptions import AudioOutputError

logger = logging.getLogger(__name__)


class AudioOutput(ABC):
    """
    Device-level playback of one locator at a time.

    `engage` starts audio and returns a future that resolves when the audio
    finishes on its own. It raises AudioOutputError when playback cannot start.
    """

    @abstractmethod
    async def engage(self, locator: AudioLocator, start_offset: float, speed: float) -> "asyncio.Future[None]":
        pass

    @abstractmethod
    def pause(self):
        pass

    @abstractmethod
    def resume(self):
        pass

    @abstractmethod
    def stop(self):
        pass

    @abstractmethod
    def set_speed(self, speed: float):
        pass

    @abstractmethod
    def current_position(self) -> float:
        """Seconds into the engaged file."""


class SimulatedAudioOutput(AudioOutput):
    """
    Plays nothing: each locator "lasts" its clip length (or a fixed duration)
    scaled by speed, timed on the event loop clock.

    Args:
        unit_seconds: Duration for locators without an explicit end offset
        durations: Per-uri duration overrides in seconds
        failing: Uris whose engagement raises AudioOutputError
    """

    def __init__(
        self,
        unit_seconds: float = 0.0,
        durations: Optional[Dict[str, float]] = None,
        failing: Optional[Set[str]] = None
    ):
        self.unit_seconds = max(0.0, unit_seconds)
        self.durations = dict(durations or {})
        self.failing = set(failing or ())
        self.engaged: List[AudioLocator] = []

        self._future: Optional[asyncio.Future] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._start_offset = 0.0
        self._duration = 0.0
        self._remaining = 0.0
        self._started_at: Optional[float] = None
        self._speed = 1.0

    def duration_of(self, locator: AudioLocator) -> float:
        if locator.uri in self.durations:
            return self.durations[locator.uri]
        if locator.end_offset is not None:
            return max(0.0, locator.end_offset - locator.start_offset)
        return self.unit_seconds

    async def engage(self, locator: AudioLocator, start_offset: float, speed: float) -> "asyncio.Future[None]":
        self.stop()
        if locator.uri in self.failing:
            raise AudioOutputError(f"Cannot open {locator.uri}")

        loop = asyncio.get_running_loop()
        self.engaged.append(locator)
        self._future = loop.create_future()
        self._start_offset = start_offset
        self._duration = self.duration_of(locator)
        self._remaining = self._duration
        self._speed = speed
        self._schedule()
        logger.debug(f"Simulated output engaged {locator.uri} ({self._duration:.2f}s)")
        return self._future

    def _schedule(self):
        loop = asyncio.get_running_loop()
        self._started_at = loop.time()
        self._timer = loop.call_later(self._remaining / self._speed, self._finish)

    def _finish(self):
        self._timer = None
        self._started_at = None
        self._remaining = 0.0
        if self._future is not None and not self._future.done():
            self._future.set_result(None)

    def _elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return (asyncio.get_running_loop().time() - self._started_at) * self._speed

    def _halt(self):
        self._remaining = max(0.0, self._remaining - self._elapsed())
        self._started_at = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def pause(self):
        if self._timer is not None:
            self._halt()

    def resume(self):
        if self._future is not None and not self._future.done() and self._timer is None:
            self._schedule()

    def stop(self):
        self._halt()
        if self._future is not None and not self._future.done():
            self._future.cancel()
        self._future = None

    def set_speed(self, speed: float):
        playing = self._timer is not None
        if playing:
            self._halt()
        self._speed = speed
        if playing:
            self._schedule()

    def current_position(self) -> float:
        if self._future is None:
            return 0.0
        return self._start_offset + (self._duration - self._remaining) + self._elapsed()
