# quran_playback/playback/engine.py
"""
Playback state machine: drives a PlaybackQueue unit by unit through an AudioOutput.
"""
import asyncio
from contextlib import suppress
from typing import List, Optional
import logging

from ..models import INFINITE, AyahRange, AyahRef, PlayableUnit, PlaybackState
from ..settings import MAX_SPEED, PlaybackSettingsSnapshot
from ..exceptions import AudioOutputError, InvalidRangeError, InvalidSettingsError
from ..utils.quran_index import QuranIndex
from ..utils.verse_parser import validate_range
from .events import EventKind, EventStream, Subscription
from .output import AudioOutput
from .queue import PlaybackQueue, QueueBuilder
from .resolver import ReciterResolver

logger = logging.getLogger(__name__)

TERMINAL_STATES = (PlaybackState.IDLE, PlaybackState.STOPPED, PlaybackState.COMPLETED)


class PlaybackEngine:
    """
    Single-session playback driver.

    Commands are serialized by one asyncio lock. Every session and every cursor
    relocation bumps a generation counter; background work compares its captured
    generation before touching state, so superseded builds, completions and gap
    waits are dropped instead of applied.

    A driver task plays the unit at the cursor, waits for the output's completion
    future, advances and waits the gap. The lock is not held while the output
    engages or plays, so pause/stop/seek/skip can cancel the driver at any point.
    """

    def __init__(
        self,
        index: QuranIndex,
        resolver: ReciterResolver,
        output: AudioOutput,
        min_unavailable_dwell_ms: int = 0
    ):
        self.index = index
        self.output = output
        self.builder = QueueBuilder(index, resolver)
        self.min_unavailable_dwell_ms = max(0, min_unavailable_dwell_ms)
        self.events = EventStream()

        self._lock = asyncio.Lock()
        self._finished = asyncio.Event()
        self._generation = 0
        self._driver: Optional[asyncio.Task] = None
        self._queue: Optional[PlaybackQueue] = None
        self._snapshot: Optional[PlaybackSettingsSnapshot] = None
        self._cursor = 0
        self._ayah_loop = 0
        self._range_pass = 1
        self._pass_played = False
        self._dwelling = False
        self._audio_engaged = False

        self.state = PlaybackState.IDLE
        self.current_speed = 1.0
        self.unavailable_ayahs: List[AyahRef] = []
        self._clear_position()
        self._finished.set()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    def _clear_position(self):
        self.current_ayah: Optional[AyahRef] = None
        self.current_ayah_end: Optional[AyahRef] = None
        self.current_reciter_name = ""
        self.current_is_personal_recording = False
        self.unavailable_ayah: Optional[AyahRef] = None
        self.current_ayah_repetition = 0
        self.total_ayah_repetitions = 1
        self.current_range_repetition = 0
        self.total_range_repetitions = 1

    @property
    def queue(self) -> Optional[PlaybackQueue]:
        return self._queue

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def snapshot(self) -> Optional[PlaybackSettingsSnapshot]:
        return self._snapshot

    def subscribe(self) -> Subscription:
        return self.events.subscribe()

    def position(self) -> float:
        """Seconds into the current file, 0 when no audio is engaged."""
        if not self._audio_engaged:
            return 0.0
        return self.output.current_position()

    async def wait_finished(self):
        """Wait until the session reaches completed, stopped or idle."""
        await self._finished.wait()

    def _publish(self, kind: EventKind, detail: Optional[str] = None):
        self.events.publish(
            kind,
            self.state,
            ayah=self.current_ayah,
            ayah_repetition=self.current_ayah_repetition,
            total_ayah_repetitions=self.total_ayah_repetitions,
            range_repetition=self.current_range_repetition,
            total_range_repetitions=self.total_range_repetitions,
            speed=self.current_speed,
            detail=detail
        )

    def _set_state(self, state: PlaybackState, detail: Optional[str] = None):
        if state == self.state:
            return
        self.state = state
        if not state.has_current_ayah:
            self._clear_position()
        self._publish(EventKind.STATE, detail)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def play(self, ayah_range: AyahRange, settings: PlaybackSettingsSnapshot):
        """
        Start a new session, replacing any current one.

        The queue is built off the event loop; if another play() or stop() lands
        meanwhile the built queue is discarded.

        Raises:
            InvalidRangeError: a range endpoint is not a real ayah
        """
        snapshot = settings.with_range(ayah_range)
        if not ayah_range.is_empty:
            ok, message = validate_range(ayah_range, self.index)
            if not ok:
                raise InvalidRangeError(message)

        async with self._lock:
            await self._halt_session()
            self._generation += 1
            generation = self._generation
            self._finished.clear()
            self._snapshot = snapshot
            self._queue = None
            self._range_pass = 1
            self._pass_played = False
            self.unavailable_ayahs = []
            self.current_speed = snapshot.speed
            self._clear_position()
            self._set_state(PlaybackState.LOADING)
            self.current_ayah = ayah_range.start
            self._publish(EventKind.AYAH)

        try:
            queue = await asyncio.to_thread(self.builder.build, snapshot)
        except Exception:
            async with self._lock:
                if generation == self._generation:
                    self._set_state(PlaybackState.IDLE)
                    self._finished.set()
            raise

        async with self._lock:
            if generation != self._generation:
                logger.debug(f"Discarding queue for {ayah_range}: superseded")
                return
            self._queue = queue
            self._publish(EventKind.QUEUE, f"{len(queue)} units")
            logger.info(
                f"Playing {ayah_range}: queue={len(queue)} units, "
                f"reciters={len(snapshot.reciter_priority)}, riwayah={snapshot.riwayah.value}"
            )

            if not queue.has_audio:
                for unit in queue:
                    if unit.ayah not in self.unavailable_ayahs:
                        self.unavailable_ayahs.append(unit.ayah)
                if not queue.is_empty:
                    logger.warning(f"No audio for any ayah in {ayah_range}")
                self._set_state(PlaybackState.COMPLETED, "nothing to play")
                self._finished.set()
                return

            self._move(0)
            self._start_driver()

    async def pause(self):
        async with self._lock:
            if self.state != PlaybackState.PLAYING:
                return
            if self._audio_engaged:
                self.output.pause()
            else:
                # Gap, dwell or pending engagement: resume restarts the driver at the cursor
                await self._cancel_driver()
            self._set_state(PlaybackState.PAUSED)

    async def resume(self):
        async with self._lock:
            if self.state != PlaybackState.PAUSED:
                return
            self._set_state(PlaybackState.PLAYING)
            if self._audio_engaged:
                self.output.resume()
            else:
                await self._cancel_driver()
                self._start_driver()

    async def stop(self):
        async with self._lock:
            if self.state in TERMINAL_STATES:
                return
            self._generation += 1
            await self._halt_session()
            self._queue = None
            self._snapshot = None
            logger.info("Playback stopped")
            self._set_state(PlaybackState.STOPPED)
            self._finished.set()

    async def seek(self, target: AyahRef):
        """Jump to the first unit for `target` (or the nearest one after it)."""
        async with self._lock:
            if self.state not in (PlaybackState.PLAYING, PlaybackState.PAUSED) or self._queue is None:
                return
            idx = self._queue.find(target)
            if idx is None:
                logger.debug(f"Seek target {target} is past the end of the queue")
                return
            await self._relocate(idx)

    async def skip_to_next_ayah(self):
        async with self._lock:
            if self.state not in (PlaybackState.PLAYING, PlaybackState.PAUSED) or self._queue is None:
                return
            nxt = self._queue.block_end(self._cursor)
            if self._queue.infinite_range_repeat and nxt == self._queue.range_end:
                self._range_pass += 1
                nxt = self._queue.range_start
            if nxt >= len(self._queue):
                self._generation += 1
                await self._halt_session()
                self._complete()
                return
            await self._relocate(nxt)

    async def skip_to_previous_ayah(self):
        """
        Go to the start of the previous ayah, or restart the first one.

        On a later pass of an endless range, stepping back from the range's first
        ayah lands on its last ayah in the previous pass.
        """
        async with self._lock:
            queue = self._queue
            if self.state not in (PlaybackState.PLAYING, PlaybackState.PAUSED) or queue is None:
                return
            start = queue.block_start(self._cursor)
            if queue.infinite_range_repeat and start == queue.range_start and self._range_pass > 1:
                self._range_pass -= 1
                target = queue.block_start(queue.range_end - 1)
            elif start > 0:
                target = queue.block_start(start - 1)
            else:
                target = start
            await self._relocate(target)

    async def set_speed(self, speed: float):
        if not (0 < speed <= MAX_SPEED):
            raise InvalidSettingsError("speed", speed, f"must be in (0, {MAX_SPEED}]")
        async with self._lock:
            self.current_speed = speed
            if self._audio_engaged:
                self.output.set_speed(speed)
            self._publish(EventKind.SPEED)

    # ------------------------------------------------------------------
    # Session internals (lock held)
    # ------------------------------------------------------------------

    async def _cancel_driver(self):
        driver, self._driver = self._driver, None
        if driver is not None and driver is not asyncio.current_task() and not driver.done():
            driver.cancel()
            with suppress(asyncio.CancelledError):
                await driver

    async def _halt_session(self):
        await self._cancel_driver()
        if self._audio_engaged:
            self.output.stop()
            self._audio_engaged = False

    async def _relocate(self, idx: int):
        self._generation += 1
        await self._halt_session()
        # A jump grants the range loop one more pass before it gives up
        self._pass_played = True
        self._move(idx)
        self._set_state(PlaybackState.PLAYING)
        self._start_driver()

    def _start_driver(self):
        self._driver = asyncio.create_task(self._drive(self._generation))

    def _move(self, idx: int):
        self._cursor = idx
        self._ayah_loop = 0
        self._dwelling = False
        self._show(self._queue[idx])

    def _show(self, unit: PlayableUnit):
        locator = unit.audio_locator
        self.current_ayah = unit.ayah
        self.current_ayah_end = locator.last_ayah if locator else unit.ayah
        self.current_reciter_name = locator.reciter_name if locator else ""
        self.current_is_personal_recording = bool(locator and locator.is_personal)
        self.unavailable_ayah = None

        self.total_ayah_repetitions = unit.repeat_count
        self.current_ayah_repetition = self._ayah_loop + 1 if unit.is_infinite_repeat else unit.repeat_index
        self.total_range_repetitions = unit.range_repeat_count
        if unit.range_repeat_count == INFINITE:
            self.current_range_repetition = self._range_pass
        else:
            self.current_range_repetition = unit.range_repeat_index

        logger.debug(
            f"Cursor {self._cursor}: {unit.ayah} rep {self.current_ayah_repetition} "
            f"range {self.current_range_repetition}"
        )
        self._publish(EventKind.AYAH)

    def _mark_unavailable(self, unit: PlayableUnit, reason: str):
        self.unavailable_ayah = unit.ayah
        if unit.ayah not in self.unavailable_ayahs:
            self.unavailable_ayahs.append(unit.ayah)
        self._dwelling = True
        logger.warning(f"Skipping {unit.ayah}: {reason}")
        self._publish(EventKind.UNAVAILABLE, reason)

    def _advance(self, played: bool) -> Optional[int]:
        """Move the cursor past the finished unit. Returns the gap to wait, or None at the end."""
        queue = self._queue
        unit = queue[self._cursor]

        if unit.is_infinite_repeat and played:
            self._ayah_loop += 1
            self._show(unit)
            return queue.loop_gap_ms

        nxt = self._cursor + 1
        if queue.infinite_range_repeat and nxt >= queue.range_end:
            if not queue.range_has_audio or not self._pass_played:
                logger.warning("No audio played during a full range pass, stopping the loop")
                return None
            self._range_pass += 1
            self._pass_played = False
            self._move(queue.range_start)
            return queue.loop_gap_ms

        if nxt >= len(queue):
            return None
        self._move(nxt)
        return unit.gap_after_ms

    def _complete(self):
        logger.info(f"Playback completed ({len(self.unavailable_ayahs)} ayaat unavailable)")
        self._set_state(PlaybackState.COMPLETED)
        self._finished.set()

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    async def _skip_unit(self, unit: PlayableUnit, generation: int, reason: str):
        async with self._lock:
            if generation != self._generation:
                return
            self._audio_engaged = False
            self._mark_unavailable(unit, reason)

    async def _play_unit(self, unit: PlayableUnit, generation: int) -> bool:
        """
        Engage the unit and wait for its audio to finish.

        Runs without the lock so commands can cancel a slow engagement.
        Returns False when the unit failed and was marked unavailable.
        """
        locator = unit.audio_locator
        speed = self.current_speed
        try:
            done = await self.output.engage(locator, locator.start_offset, speed)
            async with self._lock:
                if generation != self._generation:
                    self.output.stop()
                    return False
                self._audio_engaged = True
                self._pass_played = True
                if self.current_speed != speed:
                    self.output.set_speed(self.current_speed)
                logger.debug(f"Engaged {unit.ayah} from {locator.reciter_name}")
                if self.state == PlaybackState.LOADING:
                    self._set_state(PlaybackState.PLAYING)
        except asyncio.CancelledError:
            # Interrupted before the engine took ownership of the audio
            self.output.stop()
            raise
        except (AudioOutputError, OSError) as e:
            await self._skip_unit(unit, generation, f"audio output failed: {e}")
            return False

        try:
            await done
        except AudioOutputError as e:
            await self._skip_unit(unit, generation, f"playback failed midway: {e}")
            return False
        return True

    async def _drive(self, generation: int):
        while True:
            async with self._lock:
                if generation != self._generation:
                    return
                if self.state == PlaybackState.PAUSED:
                    # resume() starts a fresh driver
                    self._driver = None
                    return
                unit = self._queue[self._cursor]
                # A dwell interrupted by pause is not repeated on resume
                resumed_dwell = self._dwelling
                if not resumed_dwell and not unit.is_available:
                    self._mark_unavailable(unit, "no audio source")

            played = False
            if not self._dwelling:
                played = await self._play_unit(unit, generation)
            if self._dwelling and not resumed_dwell:
                await asyncio.sleep(self.min_unavailable_dwell_ms / 1000)

            async with self._lock:
                if generation != self._generation:
                    return
                self._audio_engaged = False
                self._dwelling = False
                gap = self._advance(played)
                if gap is None:
                    self._driver = None
                    self._complete()
                    return

            if gap > 0:
                await asyncio.sleep(gap / 1000)
