# quran_playback/playback/resolver.py
"""
Picks the audio source for an ayah from a prioritized list of reciters.
"""
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence, Tuple, Union
import logging

from ..models import (
    AudioLocator, AyahRef, CDNSource, RecordingSegment,
    RecordingSnapshot, ReciterSnapshot, Riwayah
)
from ..settings import PlaybackSettingsSnapshot
from ..utils.cache import AudioFileCache
from ..utils.cdn import remote_url
from ..utils.quran_index import QuranIndex

logger = logging.getLogger(__name__)

# Tie-break between sources that share a sort order
KIND_PERSONAL = 0
KIND_CDN_MANIFEST = 1
KIND_CDN_TEMPLATE = 2

UNORDERED = float("inf")


class _Attempt(NamedTuple):
    order: float
    kind: int
    rank: int
    source: Union[Tuple[RecordingSegment, RecordingSnapshot], CDNSource]


def _segment_rank(pair: Tuple[RecordingSegment, RecordingSnapshot]):
    seg, recording = pair
    imported = recording.imported_at.timestamp() if recording.imported_at else float("-inf")
    return (
        seg.user_sort_order is None,
        seg.user_sort_order or 0,
        not seg.is_manually_annotated,
        -seg.confidence,
        -imported
    )


class ReciterResolver:
    """
    Maps (ayah, reciter priority, riwayah) to the best AudioLocator, or None.

    Reciters are tried in priority order and the first one exposing audio for the
    ayah under the riwayah wins. Within a reciter, personal segments and CDN
    sources are interleaved by their sort order.

    Resolution reads only immutable snapshots plus the local audio cache, so the
    same inputs always give the same locator.
    """

    def __init__(
        self,
        index: QuranIndex,
        recordings_dir: Optional[Path] = None,
        cache: Optional[AudioFileCache] = None
    ):
        self.index = index
        self.recordings_dir = Path(recordings_dir) if recordings_dir else None
        self.cache = cache

    def resolve(
        self,
        ref: AyahRef,
        priority: Sequence[ReciterSnapshot],
        riwayah: Riwayah
    ) -> Optional[AudioLocator]:
        for reciter in priority:
            for attempt in self._attempts(ref, reciter):
                if isinstance(attempt.source, CDNSource):
                    locator = self._resolve_cdn(ref, reciter, attempt.source, riwayah)
                else:
                    locator = self._resolve_personal(ref, reciter, *attempt.source, riwayah)
                if locator is not None:
                    logger.debug(f"{ref} -> {reciter.name}: {locator.uri}")
                    return locator

        logger.debug(f"{ref}: no audio among {len(priority)} reciters")
        return None

    def resolve_for(
        self,
        ref: AyahRef,
        snapshot: PlaybackSettingsSnapshot,
        use_overrides: bool = True
    ) -> Optional[AudioLocator]:
        """Resolve with the snapshot's override list for this ayah, or the global list."""
        priority = snapshot.priority_for(ref) if use_overrides else snapshot.reciter_priority
        return self.resolve(ref, priority, snapshot.riwayah)

    def _attempts(self, ref: AyahRef, reciter: ReciterSnapshot) -> List[_Attempt]:
        segments = [
            (seg, recording)
            for recording in reciter.recordings
            for seg in recording.segments
            if seg.covers(ref)
        ]
        segments.sort(key=_segment_rank)

        attempts = [
            _Attempt(
                seg.user_sort_order if seg.user_sort_order is not None else UNORDERED,
                KIND_PERSONAL, rank, (seg, recording)
            )
            for rank, (seg, recording) in enumerate(segments)
        ]
        for idx, source in enumerate(reciter.cdn_sources):
            kind = KIND_CDN_TEMPLATE if source.url_template else KIND_CDN_MANIFEST
            order = source.sort_order if source.sort_order is not None else UNORDERED
            attempts.append(_Attempt(order, kind, idx, source))

        attempts.sort(key=lambda a: (a.order, a.kind, a.rank))
        return attempts

    def _resolve_personal(
        self,
        ref: AyahRef,
        reciter: ReciterSnapshot,
        seg: RecordingSegment,
        recording: RecordingSnapshot,
        riwayah: Riwayah
    ) -> Optional[AudioLocator]:
        if recording.riwayah != riwayah or not recording.storage_path:
            return None

        path = self.recordings_dir / recording.storage_path if self.recordings_dir else Path(recording.storage_path)
        end_offset = seg.end_offset if seg.end_offset > seg.start_offset else (recording.duration or None)
        end_ref = seg.end_ref

        return AudioLocator(
            uri=str(path),
            ayah=ref,
            reciter_id=reciter.reciter_id,
            reciter_name=reciter.name,
            start_offset=seg.start_offset,
            end_offset=end_offset,
            end_ayah=end_ref if end_ref > ref else None,
            is_personal=True
        )

    def _resolve_cdn(
        self,
        ref: AyahRef,
        reciter: ReciterSnapshot,
        source: CDNSource,
        riwayah: Riwayah
    ) -> Optional[AudioLocator]:
        if source.riwayah != riwayah or ref in reciter.missing_ayahs:
            return None

        uri = None
        if self.cache is not None:
            cached = self.cache.cached_path(ref, reciter, source)
            if cached is not None:
                uri = str(cached)
        if uri is None:
            uri = remote_url(ref, source, self.index)
        if uri is None:
            return None

        return AudioLocator(
            uri=uri,
            ayah=ref,
            reciter_id=reciter.reciter_id,
            reciter_name=reciter.name
        )
