# quran_playback/models.py
"""
Data models for the playback core.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Tuple

# Sentinel for "repeat forever" in ayah/range repeat counts.
INFINITE = -1


@dataclass(frozen=True, order=True)
class AyahRef:
    """A single ayah, ordered by (surah, ayah)."""
    surah: int
    ayah: int

    def __str__(self) -> str:
        return f"{self.surah}:{self.ayah}"

    @property
    def key(self) -> str:
        return str(self)

    @classmethod
    def parse(cls, spec: str) -> "AyahRef":
        """Parse "2:255" into an AyahRef."""
        parts = spec.strip().split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid ayah reference '{spec}' (expected surah:ayah)")
        return cls(surah=int(parts[0]), ayah=int(parts[1]))

    def to_dict(self) -> dict:
        return {"surah": self.surah, "ayah": self.ayah}

    @classmethod
    def from_dict(cls, data: dict) -> "AyahRef":
        return cls(surah=int(data["surah"]), ayah=int(data["ayah"]))


@dataclass(frozen=True)
class AyahRange:
    """
    Inclusive range of ayaat in quran order.
    Ranges may cross surah boundaries; containment is a total-order test.
    """
    start: AyahRef
    end: AyahRef

    def contains(self, ref: AyahRef) -> bool:
        return self.start <= ref <= self.end

    def __contains__(self, ref: AyahRef) -> bool:
        return self.contains(ref)

    @property
    def is_empty(self) -> bool:
        return self.start > self.end

    def __str__(self) -> str:
        if self.start == self.end:
            return str(self.start)
        if self.start.surah == self.end.surah:
            return f"{self.start.surah}:{self.start.ayah}-{self.end.ayah}"
        return f"{self.start}-{self.end}"

    def to_dict(self) -> dict:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "AyahRange":
        return cls(start=AyahRef.from_dict(data["start"]), end=AyahRef.from_dict(data["end"]))


class Riwayah(str, Enum):
    """Canonical transmissions of the ten qira'at."""
    HAFS = "hafs"
    SHUABAH = "shuabah"
    WARSH = "warsh"
    QALOON = "qaloon"
    BAZZI = "bazzi"
    QUNBUL = "qunbul"
    DOORI_ABU_AMR = "doori_abu_amr"
    SOOSI = "soosi"
    HISHAM = "hisham"
    IBN_DHAKWAN = "ibn_dhakwan"
    KHALAF_AN_HAMZA = "khalaf_an_hamza"
    KHALLAD = "khallad"
    ABUL_HARITH = "abul_harith"
    DOORI_AL_KISAI = "doori_al_kisai"
    IBN_WARDAN = "ibn_wardan"
    IBN_JAMMAZ = "ibn_jammaz"
    RUWAYS = "ruways"
    RAWH = "rawh"
    ISHAQ = "ishaq"
    IDRIS = "idris"

    @property
    def display_name(self) -> str:
        return _RIWAYAH_NAMES[self]

    @classmethod
    def from_value(cls, raw: Optional[str], default: Optional["Riwayah"] = None) -> Optional["Riwayah"]:
        """Lenient lookup used when reading persisted records."""
        if raw is None:
            return default
        try:
            return cls(raw)
        except ValueError:
            return default


_RIWAYAH_NAMES = {
    Riwayah.HAFS: "Hafs 'an 'Asim",
    Riwayah.SHUABAH: "Shu'bah 'an 'Asim",
    Riwayah.WARSH: "Warsh 'an Nafi'",
    Riwayah.QALOON: "Qaloon 'an Nafi'",
    Riwayah.BAZZI: "Al-Bazzi 'an Ibn Kathir",
    Riwayah.QUNBUL: "Qunbul 'an Ibn Kathir",
    Riwayah.DOORI_ABU_AMR: "Ad-Doori 'an Abi 'Amr",
    Riwayah.SOOSI: "As-Soosi 'an Abi 'Amr",
    Riwayah.HISHAM: "Hisham 'an Ibn 'Amir",
    Riwayah.IBN_DHAKWAN: "Ibn Dhakwan 'an Ibn 'Amir",
    Riwayah.KHALAF_AN_HAMZA: "Khalaf 'an Hamza",
    Riwayah.KHALLAD: "Khallad 'an Hamza",
    Riwayah.ABUL_HARITH: "Abu'l-Harith 'an al-Kisa'i",
    Riwayah.DOORI_AL_KISAI: "Ad-Doori 'an al-Kisa'i",
    Riwayah.IBN_WARDAN: "Ibn Wardan 'an Abi Ja'far",
    Riwayah.IBN_JAMMAZ: "Ibn Jammaz 'an Abi Ja'far",
    Riwayah.RUWAYS: "Ruways 'an Ya'qub",
    Riwayah.RAWH: "Rawh 'an Ya'qub",
    Riwayah.ISHAQ: "Ishaq 'an Khalaf al-'Ashir",
    Riwayah.IDRIS: "Idris 'an Khalaf al-'Ashir",
}


class AfterRepeatKind(str, Enum):
    STOP = "stop"
    CONTINUE_AYAAT = "continueAyaat"
    CONTINUE_PAGES = "continuePages"


@dataclass(frozen=True)
class AfterRepeatAction:
    """What happens once every range repetition has been played."""
    kind: AfterRepeatKind = AfterRepeatKind.STOP
    count: int = 0
    extra_ayah: bool = False

    @classmethod
    def stop(cls) -> "AfterRepeatAction":
        return cls(AfterRepeatKind.STOP)

    @classmethod
    def continue_ayaat(cls, count: int) -> "AfterRepeatAction":
        return cls(AfterRepeatKind.CONTINUE_AYAAT, count=count)

    @classmethod
    def continue_pages(cls, count: int, extra_ayah: bool = False) -> "AfterRepeatAction":
        return cls(AfterRepeatKind.CONTINUE_PAGES, count=count, extra_ayah=extra_ayah)

    def __str__(self) -> str:
        if self.kind == AfterRepeatKind.CONTINUE_AYAAT:
            return f"continueAyaat({self.count})"
        if self.kind == AfterRepeatKind.CONTINUE_PAGES:
            extra = ", extraAyah" if self.extra_ayah else ""
            return f"continuePages({self.count}{extra})"
        return "stop"


class NamingPattern(str, Enum):
    """How a CDN reciter's audio files are named."""
    SURAH_AYAH = "surah_ayah"      # 001001.mp3
    SEQUENTIAL = "sequential"      # 1.mp3 .. 6236.mp3
    URL_TEMPLATE = "url_template"  # ${sss}${aaa} style template


@dataclass(frozen=True)
class CDNSource:
    """One CDN audio source for a reciter."""
    riwayah: Riwayah
    base_url: Optional[str] = None
    url_template: Optional[str] = None
    audio_format: str = "mp3"
    naming_pattern: NamingPattern = NamingPattern.SURAH_AYAH
    sort_order: Optional[int] = None

    @property
    def effective_pattern(self) -> NamingPattern:
        if self.url_template:
            return NamingPattern.URL_TEMPLATE
        return self.naming_pattern

    def to_dict(self) -> dict:
        return {
            "riwayah": self.riwayah.value,
            "base_url": self.base_url,
            "url_template": self.url_template,
            "audio_format": self.audio_format,
            "naming_pattern": self.naming_pattern.value,
            "sort_order": self.sort_order
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CDNSource":
        return cls(
            riwayah=Riwayah.from_value(data.get("riwayah"), Riwayah.HAFS),
            base_url=data.get("base_url"),
            url_template=data.get("url_template"),
            audio_format=data.get("audio_format") or "mp3",
            naming_pattern=NamingPattern(data.get("naming_pattern") or NamingPattern.SURAH_AYAH.value),
            sort_order=data.get("sort_order")
        )


@dataclass(frozen=True)
class RecordingSegment:
    """An annotated span of a personal recording mapped to one or more ayaat."""
    surah: int
    ayah: int
    start_offset: float
    end_offset: float
    end_surah: Optional[int] = None
    end_ayah: Optional[int] = None
    is_manually_annotated: bool = False
    confidence: float = 0.0
    user_sort_order: Optional[int] = None

    @property
    def start_ref(self) -> AyahRef:
        return AyahRef(self.surah, self.ayah)

    @property
    def end_ref(self) -> AyahRef:
        return AyahRef(self.end_surah or self.surah, self.end_ayah or self.ayah)

    def covers(self, ref: AyahRef) -> bool:
        """Same-surah containment; cross-surah segments match only their start surah."""
        if ref.surah != self.surah or self.end_ref.surah != self.surah:
            return False
        return self.ayah <= ref.ayah <= self.end_ref.ayah

    def to_dict(self) -> dict:
        return {
            "surah": self.surah,
            "ayah": self.ayah,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "end_surah": self.end_surah,
            "end_ayah": self.end_ayah,
            "is_manually_annotated": self.is_manually_annotated,
            "confidence": self.confidence,
            "user_sort_order": self.user_sort_order
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecordingSegment":
        return cls(
            surah=int(data["surah"]),
            ayah=int(data["ayah"]),
            start_offset=float(data.get("start_offset", 0.0)),
            end_offset=float(data.get("end_offset", 0.0)),
            end_surah=data.get("end_surah"),
            end_ayah=data.get("end_ayah"),
            is_manually_annotated=bool(data.get("is_manually_annotated", False)),
            confidence=float(data.get("confidence") or 0.0),
            user_sort_order=data.get("user_sort_order")
        )


@dataclass(frozen=True)
class RecordingSnapshot:
    """A personally imported recording and its annotated segments."""
    recording_id: str
    storage_path: str
    riwayah: Riwayah = Riwayah.HAFS
    title: str = "Untitled Recording"
    imported_at: Optional[datetime] = None
    duration: float = 0.0
    segments: Tuple[RecordingSegment, ...] = ()

    def to_dict(self) -> dict:
        return {
            "recording_id": self.recording_id,
            "storage_path": self.storage_path,
            "riwayah": self.riwayah.value,
            "title": self.title,
            "imported_at": self.imported_at.isoformat() if self.imported_at else None,
            "duration": self.duration,
            "segments": [s.to_dict() for s in self.segments]
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecordingSnapshot":
        imported = data.get("imported_at")
        return cls(
            recording_id=data["recording_id"],
            storage_path=data["storage_path"],
            riwayah=Riwayah.from_value(data.get("riwayah"), Riwayah.HAFS),
            title=data.get("title") or "Untitled Recording",
            imported_at=datetime.fromisoformat(imported) if imported else None,
            duration=float(data.get("duration") or 0.0),
            segments=tuple(RecordingSegment.from_dict(s) for s in data.get("segments", []))
        )


@dataclass(frozen=True)
class ReciterSnapshot:
    """
    Immutable copy of a reciter and its audio sources, captured when a queue is built
    so later library edits never leak into a running session.
    """
    reciter_id: str
    name: str
    cdn_sources: Tuple[CDNSource, ...] = ()
    recordings: Tuple[RecordingSnapshot, ...] = ()
    missing_ayahs: FrozenSet[AyahRef] = frozenset()
    local_cache_dir: Optional[str] = None
    style: Optional[str] = None

    @property
    def cache_dir_name(self) -> str:
        return self.local_cache_dir or self.reciter_id

    @property
    def riwayaat(self) -> FrozenSet[Riwayah]:
        """Every riwayah this reciter has audio for."""
        found = {s.riwayah for s in self.cdn_sources}
        found.update(r.riwayah for r in self.recordings if r.segments)
        return frozenset(found)

    def to_dict(self) -> dict:
        return {
            "reciter_id": self.reciter_id,
            "name": self.name,
            "style": self.style,
            "local_cache_dir": self.local_cache_dir,
            "cdn_sources": [s.to_dict() for s in self.cdn_sources],
            "recordings": [r.to_dict() for r in self.recordings],
            "missing_ayahs": [str(ref) for ref in sorted(self.missing_ayahs)]
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReciterSnapshot":
        return cls(
            reciter_id=data["reciter_id"],
            name=data.get("name") or "Unknown Reciter",
            style=data.get("style"),
            local_cache_dir=data.get("local_cache_dir"),
            cdn_sources=tuple(CDNSource.from_dict(s) for s in data.get("cdn_sources", [])),
            recordings=tuple(RecordingSnapshot.from_dict(r) for r in data.get("recordings", [])),
            missing_ayahs=frozenset(AyahRef.parse(k) for k in data.get("missing_ayahs", []))
        )


@dataclass(frozen=True)
class SegmentOverride:
    """Reciter priority that applies only to ayaat inside `range`."""
    range: AyahRange
    reciter_priority: Tuple[ReciterSnapshot, ...] = ()


@dataclass(frozen=True)
class AudioLocator:
    """
    Opaque handle the audio output can turn into sound: a local path or a remote URL,
    optionally clipped to [start_offset, end_offset] seconds.
    """
    uri: str
    ayah: AyahRef
    reciter_id: str
    reciter_name: str
    start_offset: float = 0.0
    end_offset: Optional[float] = None
    end_ayah: Optional[AyahRef] = None
    is_personal: bool = False

    @property
    def covers_range(self) -> bool:
        return self.end_ayah is not None and self.end_ayah != self.ayah

    @property
    def last_ayah(self) -> AyahRef:
        return self.end_ayah or self.ayah


@dataclass(frozen=True)
class PlayableUnit:
    """One materialized step of a playback queue."""
    ayah: AyahRef
    repeat_index: int
    range_repeat_index: int
    audio_locator: Optional[AudioLocator]
    gap_after_ms: int = 0
    is_connection_padding: bool = False
    is_continuation: bool = False
    repeat_count: int = 1
    range_repeat_count: int = 1

    @property
    def is_available(self) -> bool:
        return self.audio_locator is not None

    @property
    def is_infinite_repeat(self) -> bool:
        return self.repeat_count == INFINITE

    def to_dict(self) -> dict:
        loc = self.audio_locator
        return {
            "ayah": str(self.ayah),
            "repeat": self.repeat_index,
            "range_repeat": self.range_repeat_index,
            "gap_after_ms": self.gap_after_ms,
            "padding": self.is_connection_padding,
            "continuation": self.is_continuation,
            "infinite": self.is_infinite_repeat,
            "uri": loc.uri if loc else None,
            "reciter": loc.reciter_name if loc else None
        }


class PlaybackState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"

    @property
    def has_current_ayah(self) -> bool:
        return self in (PlaybackState.LOADING, PlaybackState.PLAYING, PlaybackState.PAUSED)
