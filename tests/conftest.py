from datetime import datetime

import pytest

from quran_playback.config import Config
from quran_playback.models import (
    AyahRef, CDNSource, RecordingSegment, RecordingSnapshot, ReciterSnapshot, Riwayah
)
from quran_playback.playback.resolver import ReciterResolver
from quran_playback.utils.quran_index import QuranIndex


@pytest.fixture
def temp_config(tmp_path):
    """
    Create an isolated Config; metadata falls back to the built-in tables.
    """
    base_dir = tmp_path
    data_dir = base_dir / "data"
    cfg = Config(data_dir=data_dir, base_dir=base_dir)
    cfg.save()
    return cfg


@pytest.fixture
def index():
    return QuranIndex()


@pytest.fixture
def paged_index():
    """Index with a few exact page boundaries at the start of the mushaf."""
    return QuranIndex(page_starts={
        1: AyahRef(1, 1),
        2: AyahRef(2, 1),
        3: AyahRef(2, 6),
        4: AyahRef(2, 17),
        5: AyahRef(2, 25),
    })


@pytest.fixture
def resolver(index, tmp_path):
    return ReciterResolver(index, recordings_dir=tmp_path / "recordings")


@pytest.fixture
def make_reciter():
    """Factory for CDN reciters with optional personal recordings."""
    def _make(
        reciter_id: str = "r1",
        name: str = None,
        riwayah: Riwayah = Riwayah.HAFS,
        missing=(),
        recordings=(),
        sort_order=None,
        with_cdn: bool = True
    ) -> ReciterSnapshot:
        sources = ()
        if with_cdn:
            sources = (CDNSource(
                riwayah=riwayah,
                base_url=f"https://cdn.example.com/{reciter_id}/",
                sort_order=sort_order
            ),)
        return ReciterSnapshot(
            reciter_id=reciter_id,
            name=name or reciter_id.upper(),
            cdn_sources=sources,
            recordings=tuple(recordings),
            missing_ayahs=frozenset(AyahRef.parse(k) for k in missing)
        )

    return _make


@pytest.fixture
def make_recording():
    """Factory for a personal recording covering the given (surah, ayah[, end_ayah]) spans."""
    def _make(
        spans,
        recording_id: str = "rec1",
        riwayah: Riwayah = Riwayah.HAFS,
        imported_at: datetime = None,
        **segment_kwargs
    ) -> RecordingSnapshot:
        segments = []
        offset = 0.0
        for span in spans:
            surah, ayah = span[0], span[1]
            end_ayah = span[2] if len(span) > 2 else None
            segments.append(RecordingSegment(
                surah=surah,
                ayah=ayah,
                start_offset=offset,
                end_offset=offset + 5.0,
                end_ayah=end_ayah,
                **segment_kwargs
            ))
            offset += 5.0
        return RecordingSnapshot(
            recording_id=recording_id,
            storage_path=f"{recording_id}.m4a",
            riwayah=riwayah,
            imported_at=imported_at,
            duration=offset,
            segments=tuple(segments)
        )

    return _make
