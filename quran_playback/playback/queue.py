# quran_playback/playback/queue.py
"""
Expands a settings snapshot into the ordered list of playable units.
"""
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Optional, Tuple
import logging

from ..models import INFINITE, AfterRepeatKind, AudioLocator, AyahRef, PlayableUnit
from ..settings import PlaybackSettingsSnapshot
from ..exceptions import InvalidRangeError
from ..utils.quran_index import TOTAL_PAGES, QuranIndex
from .resolver import ReciterResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaybackQueue:
    """
    Immutable, fully resolved unit list for one session.

    `range_start`/`range_end` delimit the first pass over the requested range
    (end exclusive). When `infinite_range_repeat` is set only one pass is
    materialized and the engine loops it live.
    """
    units: Tuple[PlayableUnit, ...] = ()
    range_start: int = 0
    range_end: int = 0
    infinite_ayah_repeat: bool = False
    infinite_range_repeat: bool = False
    loop_gap_ms: int = 0

    def __len__(self) -> int:
        return len(self.units)

    def __getitem__(self, idx: int) -> PlayableUnit:
        return self.units[idx]

    def __iter__(self) -> Iterator[PlayableUnit]:
        return iter(self.units)

    @property
    def is_empty(self) -> bool:
        return not self.units

    @property
    def ayahs(self) -> List[AyahRef]:
        return [u.ayah for u in self.units]

    @property
    def has_audio(self) -> bool:
        return any(u.is_available for u in self.units)

    @property
    def range_has_audio(self) -> bool:
        return any(u.is_available for u in self.units[self.range_start:self.range_end])

    def find(self, target: AyahRef) -> Optional[int]:
        """First unit playing `target`, else the first unit after it in quran order."""
        for idx, unit in enumerate(self.units):
            if unit.ayah == target:
                return idx
        for idx, unit in enumerate(self.units):
            if unit.ayah > target:
                return idx
        return None

    def block_start(self, idx: int) -> int:
        """Index of the first unit in the repeat block holding `idx`."""
        key = _block_key(self.units[idx])
        while idx > 0 and _block_key(self.units[idx - 1]) == key:
            idx -= 1
        return idx

    def block_end(self, idx: int) -> int:
        """Index just past the repeat block holding `idx`."""
        key = _block_key(self.units[idx])
        idx += 1
        while idx < len(self.units) and _block_key(self.units[idx]) == key:
            idx += 1
        return idx

    def summary(self) -> Dict[str, int]:
        return {
            "units": len(self.units),
            "unavailable": sum(1 for u in self.units if not u.is_available),
            "padding": sum(1 for u in self.units if u.is_connection_padding),
            "continuation": sum(1 for u in self.units if u.is_continuation)
        }


def _block_key(unit: PlayableUnit):
    return (unit.ayah, unit.range_repeat_index, unit.is_connection_padding, unit.is_continuation)


class QueueBuilder:
    """
    Builds a PlaybackQueue from a snapshot.

    Order of work:
      1. ayaat of the range (filtered by covered ayaat when present)
      2. connection padding before/after, played once
      3. per-ayah repeats, then whole-range repeats
      4. resolution through the resolver (padding uses the global list)
      5. gaps after every unit but the last
      6. continuation ayaat/pages once a finite range repeat is exhausted
    """

    def __init__(self, index: QuranIndex, resolver: ReciterResolver):
        self.index = index
        self.resolver = resolver

    def build(self, snapshot: PlaybackSettingsSnapshot) -> PlaybackQueue:
        ayah_range = snapshot.range
        if ayah_range.is_empty:
            logger.info(f"Empty range {ayah_range.start} > {ayah_range.end}, nothing to queue")
            return PlaybackQueue()
        for ref in (ayah_range.start, ayah_range.end):
            if not self.index.is_valid(ref):
                raise InvalidRangeError(f"Ayah {ref} does not exist")

        memo: Dict[Tuple[AyahRef, bool], Optional[AudioLocator]] = {}

        def resolve(ref: AyahRef, padding: bool = False) -> Optional[AudioLocator]:
            key = (ref, padding)
            if key not in memo:
                memo[key] = self.resolver.resolve_for(ref, snapshot, use_overrides=not padding)
            return memo[key]

        working = self._resolved_sequence(
            self._covered(snapshot, self.index.iter_range(ayah_range.start, ayah_range.end)),
            resolve
        )
        if not working:
            logger.info(f"No covered ayaat in {ayah_range}, nothing to queue")
            return PlaybackQueue()

        before = self._covered(snapshot, self._ayaat_before(ayah_range.start, snapshot.connection_ayah_before))
        after = self._covered(snapshot, self._ayaat_after(ayah_range.end, snapshot.connection_ayah_after))

        infinite_range = snapshot.infinite_range_repeat
        passes = 1 if infinite_range else snapshot.range_repeat_count
        gap = snapshot.gap_between_ayaat_ms

        units: List[PlayableUnit] = [
            self._padding_unit(ref, resolve(ref, padding=True), 1, snapshot) for ref in before
        ]

        range_start = len(units)
        range_end = range_start
        for range_index in range(1, passes + 1):
            units.extend(self._range_pass(working, range_index, snapshot))
            if range_index == 1:
                range_end = len(units)

        # Unreachable after an endless range loop
        if not infinite_range:
            units.extend(self._padding_unit(ref, resolve(ref, padding=True), passes, snapshot) for ref in after)
            units.extend(self._continuation(units, snapshot, resolve))

        units = [replace(u, gap_after_ms=gap) for u in units]
        if units:
            units[-1] = replace(units[-1], gap_after_ms=0)

        queue = PlaybackQueue(
            units=tuple(units),
            range_start=range_start,
            range_end=range_end,
            infinite_ayah_repeat=snapshot.infinite_ayah_repeat,
            infinite_range_repeat=infinite_range,
            loop_gap_ms=gap
        )
        logger.debug(f"Built queue for {ayah_range}: {queue.summary()}")
        return queue

    # ------------------------------------------------------------------
    # Sequences
    # ------------------------------------------------------------------

    def _covered(self, snapshot: PlaybackSettingsSnapshot, refs) -> List[AyahRef]:
        if snapshot.covered_ayahs is None:
            return list(refs)
        return [ref for ref in refs if ref in snapshot.covered_ayahs]

    def _ayaat_before(self, start: AyahRef, count: int) -> List[AyahRef]:
        found = []
        cursor = start
        for _ in range(count):
            cursor = self.index.ayah_before(cursor)
            if cursor is None:
                break
            found.append(cursor)
        found.reverse()
        return found

    def _ayaat_after(self, end: AyahRef, count: int) -> List[AyahRef]:
        found = []
        cursor = end
        for _ in range(count):
            cursor = self.index.ayah_after(cursor)
            if cursor is None:
                break
            found.append(cursor)
        return found

    def _resolved_sequence(self, refs: List[AyahRef], resolve) -> List[Tuple[AyahRef, Optional[AudioLocator]]]:
        """Resolve each ayah, dropping ayaat already covered by a multi-ayah locator."""
        sequence = []
        covered_until: Optional[AyahRef] = None
        for ref in refs:
            if covered_until is not None and ref <= covered_until:
                continue
            locator = resolve(ref)
            if locator is not None and locator.covers_range:
                covered_until = locator.last_ayah
            sequence.append((ref, locator))
        return sequence

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    def _range_pass(self, working, range_index: int, snapshot: PlaybackSettingsSnapshot) -> List[PlayableUnit]:
        repeat_count = snapshot.ayah_repeat_count
        materialized = 1 if repeat_count == INFINITE else repeat_count
        return [
            PlayableUnit(
                ayah=ref,
                repeat_index=repeat_index,
                range_repeat_index=range_index,
                audio_locator=locator,
                repeat_count=repeat_count,
                range_repeat_count=snapshot.range_repeat_count
            )
            for ref, locator in working
            for repeat_index in range(1, materialized + 1)
        ]

    def _padding_unit(self, ref, locator, range_index: int, snapshot: PlaybackSettingsSnapshot) -> PlayableUnit:
        return PlayableUnit(
            ayah=ref,
            repeat_index=1,
            range_repeat_index=range_index,
            audio_locator=locator,
            is_connection_padding=True,
            range_repeat_count=snapshot.range_repeat_count
        )

    # ------------------------------------------------------------------
    # Continuation
    # ------------------------------------------------------------------

    def _continuation(self, units: List[PlayableUnit], snapshot: PlaybackSettingsSnapshot, resolve) -> List[PlayableUnit]:
        action = snapshot.after_repeat_action
        if action.kind == AfterRepeatKind.STOP or action.count <= 0 or not units:
            return []

        last = max(u.audio_locator.last_ayah if u.audio_locator else u.ayah for u in units)
        if action.kind == AfterRepeatKind.CONTINUE_AYAAT:
            refs = self._ayaat_after(last, action.count)
        else:
            refs = self._page_continuation(last, action.count, action.extra_ayah)

        refs = self._covered(snapshot, refs)
        logger.debug(f"Continuation after {last}: {len(refs)} ayaat ({action})")
        return [
            PlayableUnit(
                ayah=ref,
                repeat_index=1,
                range_repeat_index=1,
                audio_locator=locator,
                is_continuation=True
            )
            for ref, locator in self._resolved_sequence(refs, resolve)
        ]

    def _page_continuation(self, last: AyahRef, pages: int, extra_ayah: bool) -> List[AyahRef]:
        """
        Rest of the page holding `last`, then `pages` more pages, then an optional extra ayah.

        The partial page does not count toward `pages`; when `last` ends its page
        the continuation starts on the next page.
        """
        page = self.index.page_of(last)
        refs: List[AyahRef] = []

        current = self.index.page_range(page)
        if current is not None:
            refs.extend(self.index.iter_range(last, current[1]))
            refs = refs[1:]

        for p in range(page + 1, min(page + pages, TOTAL_PAGES) + 1):
            bounds = self.index.page_range(p)
            if bounds is None:
                continue
            refs.extend(self.index.iter_range(*bounds))

        if extra_ayah:
            extra = self.index.ayah_after(refs[-1] if refs else last)
            if extra is not None:
                refs.append(extra)
        return refs
