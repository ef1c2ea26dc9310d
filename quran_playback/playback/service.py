# quran_playback/playback/service.py
"""
Wires configuration, reference data, the reciter library and the playback
components together.
"""
from typing import Callable, List, Optional
import logging

from ..config import Config, get_config
from ..models import AyahRange, ReciterSnapshot
from ..settings import PlaybackSettingsRecord, PlaybackSettingsSnapshot
from ..utils.cache import AudioFileCache
from ..utils.cdn import CDNAvailabilityChecker
from ..utils.library import ReciterLibrary
from ..utils.quran_index import QuranIndex, load_quran_index
from ..utils.verse_parser import parse_range_spec
from ..exceptions import CDNError
from .engine import PlaybackEngine
from .output import AudioOutput, SimulatedAudioOutput
from .queue import PlaybackQueue, QueueBuilder
from .resolver import ReciterResolver

logger = logging.getLogger(__name__)


class PlaybackService:
    """
    Entry point used by the CLI.

    Usage:
        service = PlaybackService()

        # Inspect what would play
        queue = service.plan("1:1-7", service.config.playback.merged(ayah_repeat_count=2))

        # Drive a session
        engine = service.create_engine()
        await engine.play(ayah_range, service.snapshot(ayah_range))
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.index: QuranIndex = load_quran_index(self.config.quran_metadata_file)
        self.cache = AudioFileCache(self.config.cache_dir)
        self.library = ReciterLibrary(self.config.reciters_file)

        self._resolver: Optional[ReciterResolver] = None

    @property
    def resolver(self) -> ReciterResolver:
        if self._resolver is None:
            self._resolver = ReciterResolver(self.index, self.config.recordings_dir, self.cache)
        return self._resolver

    def parse_range(self, spec: str) -> AyahRange:
        return parse_range_spec(spec, self.index)

    def snapshot(
        self,
        ayah_range: AyahRange,
        record: Optional[PlaybackSettingsRecord] = None
    ) -> PlaybackSettingsSnapshot:
        """Freeze the persisted preferences (or `record`) and current reciters for one session."""
        return PlaybackSettingsSnapshot.from_record(
            ayah_range,
            record or self.config.playback,
            reciter_lookup=self.library.get,
            auto_reciters=self.library.reciters
        )

    def plan(self, spec: str, record: Optional[PlaybackSettingsRecord] = None) -> PlaybackQueue:
        ayah_range = self.parse_range(spec)
        return QueueBuilder(self.index, self.resolver).build(self.snapshot(ayah_range, record))

    def create_engine(self, output: Optional[AudioOutput] = None) -> PlaybackEngine:
        output = output or SimulatedAudioOutput(unit_seconds=self.config.engine.simulated_unit_seconds)
        return PlaybackEngine(
            self.index,
            self.resolver,
            output,
            min_unavailable_dwell_ms=self.config.engine.min_unavailable_dwell_ms
        )

    # -------------------------------------------------------------------------
    # Reciter management
    # -------------------------------------------------------------------------

    def check_availability(
        self,
        reciter_id: str,
        source_index: int = 0,
        progress: Optional[Callable[[int], None]] = None
    ) -> List:
        """Probe a reciter's CDN source and store the missing ayaat on the reciter."""
        reciter = self.library.get(reciter_id)
        if not 0 <= source_index < len(reciter.cdn_sources):
            raise CDNError(f"Reciter '{reciter_id}' has no CDN source #{source_index}")

        checker = CDNAvailabilityChecker(
            self.index,
            timeout=self.config.cdn.timeout,
            max_retries=self.config.cdn.max_retries,
            max_concurrency=self.config.cdn.max_concurrency
        )
        missing = checker.find_missing_ayahs(reciter, reciter.cdn_sources[source_index], progress)
        self.library.set_missing_ayahs(reciter_id, missing)
        return missing

    def clear_cache(self, reciter_id: Optional[str] = None):
        reciter: Optional[ReciterSnapshot] = self.library.get(reciter_id) if reciter_id else None
        self.cache.clear(reciter)
