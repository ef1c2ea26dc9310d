# quran_playback/settings.py
"""
Playback settings: the persisted (possibly partial) record and the immutable
snapshot captured when playback starts.
"""
from dataclasses import dataclass, field, replace
from typing import Callable, FrozenSet, List, Optional, Tuple
import logging

from .models import (
    INFINITE, AfterRepeatAction, AfterRepeatKind, AyahRange, AyahRef,
    ReciterSnapshot, Riwayah, SegmentOverride
)
from .exceptions import (
    InvalidSettingsError, ReciterNotFoundError, ResolverUnavailableError
)

logger = logging.getLogger(__name__)

MAX_SPEED = 4.0


@dataclass
class PriorityEntry:
    """One reciter in a persisted priority list."""
    reciter_id: str
    order: int = 0
    is_enabled: bool = True

    def to_dict(self) -> dict:
        return {"reciter_id": self.reciter_id, "order": self.order, "is_enabled": self.is_enabled}

    @classmethod
    def from_dict(cls, data: dict) -> "PriorityEntry":
        return cls(
            reciter_id=data["reciter_id"],
            order=int(data.get("order") or 0),
            is_enabled=data.get("is_enabled", True) is not False
        )


def _sorted_enabled(entries: List[PriorityEntry]) -> List[PriorityEntry]:
    return sorted((e for e in entries if e.is_enabled), key=lambda e: e.order)


@dataclass
class SegmentOverrideRecord:
    """Persisted per-range reciter priority."""
    start: AyahRef
    end: AyahRef
    order: int = 0
    reciter_priority: List[PriorityEntry] = field(default_factory=list)

    @property
    def range(self) -> AyahRange:
        return AyahRange(self.start, self.end)

    def to_dict(self) -> dict:
        return {
            "start": str(self.start),
            "end": str(self.end),
            "order": self.order,
            "reciter_priority": [e.to_dict() for e in self.reciter_priority]
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SegmentOverrideRecord":
        return cls(
            start=AyahRef.parse(data["start"]),
            end=AyahRef.parse(data["end"]),
            order=int(data.get("order") or 0),
            reciter_priority=[PriorityEntry.from_dict(e) for e in data.get("reciter_priority", [])]
        )


@dataclass
class PlaybackSettingsRecord:
    """
    User preferences as persisted. Any field may be missing (None); defaults are
    applied once, when a snapshot is built.
    """
    connection_ayah_before: Optional[int] = None
    connection_ayah_after: Optional[int] = None
    speed: Optional[float] = None
    gap_between_ayaat_ms: Optional[int] = None
    ayah_repeat_count: Optional[int] = None
    range_repeat_count: Optional[int] = None
    after_repeat_action: Optional[str] = None
    after_repeat_continue_ayaat_count: Optional[int] = None
    after_repeat_continue_pages_count: Optional[int] = None
    after_repeat_continue_pages_extra_ayah: Optional[bool] = None
    riwayah: Optional[str] = None
    selected_reciter_id: Optional[str] = None
    reciter_priority: List[PriorityEntry] = field(default_factory=list)
    segment_overrides: List[SegmentOverrideRecord] = field(default_factory=list)

    _SCALARS = (
        "connection_ayah_before", "connection_ayah_after", "speed", "gap_between_ayaat_ms",
        "ayah_repeat_count", "range_repeat_count", "after_repeat_action",
        "after_repeat_continue_ayaat_count", "after_repeat_continue_pages_count",
        "after_repeat_continue_pages_extra_ayah", "riwayah", "selected_reciter_id"
    )

    def to_dict(self) -> dict:
        data = {name: getattr(self, name) for name in self._SCALARS}
        data["reciter_priority"] = [e.to_dict() for e in self.reciter_priority]
        data["segment_overrides"] = [o.to_dict() for o in self.segment_overrides]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PlaybackSettingsRecord":
        return cls(
            **{name: data.get(name) for name in cls._SCALARS},
            reciter_priority=[PriorityEntry.from_dict(e) for e in data.get("reciter_priority", [])],
            segment_overrides=[SegmentOverrideRecord.from_dict(o) for o in data.get("segment_overrides", [])]
        )

    def merged(self, **overrides) -> "PlaybackSettingsRecord":
        """Copy with every non-None keyword applied on top."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def after_repeat(self) -> AfterRepeatAction:
        try:
            kind = AfterRepeatKind(self.after_repeat_action or AfterRepeatKind.STOP.value)
        except ValueError:
            raise InvalidSettingsError("after_repeat_action", self.after_repeat_action, "unknown action")
        if kind == AfterRepeatKind.CONTINUE_AYAAT:
            return AfterRepeatAction.continue_ayaat(_or(self.after_repeat_continue_ayaat_count, 0))
        if kind == AfterRepeatKind.CONTINUE_PAGES:
            return AfterRepeatAction.continue_pages(
                _or(self.after_repeat_continue_pages_count, 0),
                bool(self.after_repeat_continue_pages_extra_ayah)
            )
        return AfterRepeatAction.stop()


def _or(value, default):
    return default if value is None else value


@dataclass(frozen=True)
class PlaybackSettingsSnapshot:
    """
    Everything needed to build a playback queue, captured once at play time.
    Settings changes during a session never affect the running session.
    """
    range: AyahRange
    reciter_priority: Tuple[ReciterSnapshot, ...] = ()
    riwayah: Riwayah = Riwayah.HAFS
    connection_ayah_before: int = 0
    connection_ayah_after: int = 0
    speed: float = 1.0
    ayah_repeat_count: int = 1
    range_repeat_count: int = 1
    after_repeat_action: AfterRepeatAction = AfterRepeatAction()
    gap_between_ayaat_ms: int = 0
    segment_overrides: Tuple[SegmentOverride, ...] = ()
    covered_ayahs: Optional[FrozenSet[AyahRef]] = None

    def __post_init__(self):
        _validate(self)

    @property
    def infinite_ayah_repeat(self) -> bool:
        return self.ayah_repeat_count == INFINITE

    @property
    def infinite_range_repeat(self) -> bool:
        return self.range_repeat_count == INFINITE

    def priority_for(self, ref: AyahRef) -> Tuple[ReciterSnapshot, ...]:
        """First override whose range contains the ayah wins; else the global list."""
        for override in self.segment_overrides:
            if override.range.contains(ref):
                return override.reciter_priority
        return self.reciter_priority

    def with_range(self, ayah_range: AyahRange) -> "PlaybackSettingsSnapshot":
        if ayah_range == self.range:
            return self
        return replace(self, range=ayah_range)

    @classmethod
    def from_record(
        cls,
        ayah_range: AyahRange,
        record: PlaybackSettingsRecord,
        reciter_lookup: Callable[[str], ReciterSnapshot],
        auto_reciters: Optional[Callable[[Riwayah], List[ReciterSnapshot]]] = None,
        covered_ayahs: Optional[FrozenSet[AyahRef]] = None
    ) -> "PlaybackSettingsSnapshot":
        """
        Normalize a persisted record into a fully populated snapshot.

        Args:
            ayah_range: Range the user wants to play
            record: Persisted preferences (missing fields take defaults)
            reciter_lookup: Returns the ReciterSnapshot for an id (raises ReciterNotFoundError)
            auto_reciters: Reciters matching a riwayah, used when no priority is configured
            covered_ayahs: Restrict playback to these ayaat (stitched recordings)

        Raises:
            InvalidSettingsError: a field is outside its allowed domain
        """
        riwayah = Riwayah.from_value(record.riwayah)
        if riwayah is None:
            if record.riwayah is not None:
                raise InvalidSettingsError("riwayah", record.riwayah, "unknown riwayah")
            riwayah = Riwayah.HAFS

        try:
            priority = _resolve_priority(record, reciter_lookup)
            if not priority and auto_reciters is not None:
                priority = list(auto_reciters(riwayah))
                logger.debug(f"Auto-selected {len(priority)} reciters for {riwayah.value}")
            overrides = tuple(
                SegmentOverride(
                    range=o.range,
                    reciter_priority=tuple(_lookup_entries(o.reciter_priority, reciter_lookup))
                )
                for o in sorted(record.segment_overrides, key=lambda o: o.order)
            )
        except ResolverUnavailableError as e:
            # Degrade: no reciters means every ayah resolves as unavailable
            logger.warning(f"Reciter data unavailable, continuing without audio sources: {e}")
            priority, overrides = [], ()

        return cls(
            range=ayah_range,
            reciter_priority=tuple(priority),
            riwayah=riwayah,
            connection_ayah_before=_or(record.connection_ayah_before, 0),
            connection_ayah_after=_or(record.connection_ayah_after, 0),
            speed=float(_or(record.speed, 1.0)),
            ayah_repeat_count=_or(record.ayah_repeat_count, 1),
            range_repeat_count=_or(record.range_repeat_count, 1),
            after_repeat_action=record.after_repeat(),
            gap_between_ayaat_ms=_or(record.gap_between_ayaat_ms, 0),
            segment_overrides=overrides,
            covered_ayahs=frozenset(covered_ayahs) if covered_ayahs is not None else None
        )

    @classmethod
    def for_recording(
        cls,
        ayah_range: AyahRange,
        reciter: ReciterSnapshot,
        riwayah: Riwayah
    ) -> "PlaybackSettingsSnapshot":
        """Play a single reciter's audio once, with no repeats, then stop."""
        return cls(range=ayah_range, reciter_priority=(reciter,), riwayah=riwayah)


def _resolve_priority(
    record: PlaybackSettingsRecord,
    reciter_lookup: Callable[[str], ReciterSnapshot]
) -> List[ReciterSnapshot]:
    if record.selected_reciter_id:
        try:
            return [reciter_lookup(record.selected_reciter_id)]
        except ReciterNotFoundError:
            logger.warning(f"Pinned reciter {record.selected_reciter_id} not found, using priority list")
    return _lookup_entries(record.reciter_priority, reciter_lookup)


def _lookup_entries(
    entries: List[PriorityEntry],
    reciter_lookup: Callable[[str], ReciterSnapshot]
) -> List[ReciterSnapshot]:
    found = []
    for entry in _sorted_enabled(entries):
        try:
            found.append(reciter_lookup(entry.reciter_id))
        except ReciterNotFoundError:
            logger.warning(f"Reciter {entry.reciter_id} in priority list no longer exists, skipping")
    return found


def _validate(snapshot: PlaybackSettingsSnapshot):
    if not (0 < snapshot.speed <= MAX_SPEED):
        raise InvalidSettingsError("speed", snapshot.speed, f"must be in (0, {MAX_SPEED}]")
    for name in ("connection_ayah_before", "connection_ayah_after", "gap_between_ayaat_ms"):
        value = getattr(snapshot, name)
        if not isinstance(value, int) or value < 0:
            raise InvalidSettingsError(name, value, "must be an integer >= 0")
    for name in ("ayah_repeat_count", "range_repeat_count"):
        value = getattr(snapshot, name)
        if not isinstance(value, int) or (value < 1 and value != INFINITE):
            raise InvalidSettingsError(name, value, "must be >= 1 or -1 (infinite)")
    if snapshot.after_repeat_action.count < 0:
        raise InvalidSettingsError("after_repeat_action", str(snapshot.after_repeat_action), "count must be >= 0")
