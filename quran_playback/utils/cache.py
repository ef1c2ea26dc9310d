# quran_playback/utils/cache.py
"""
Local cache of downloaded CDN ayah audio.
"""
import shutil
from pathlib import Path
from typing import Optional
import logging

from ..models import AyahRef, CDNSource, ReciterSnapshot

logger = logging.getLogger(__name__)


class AudioFileCache:
    """
    Maps (reciter, ayah) to a file under `cache_dir/<reciter dir>/`.

    The playback core only reads from the cache; files are placed there by the
    download layer using the same naming.
    """

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def reciter_dir(self, reciter: ReciterSnapshot) -> Path:
        return self.cache_dir / reciter.cache_dir_name

    def local_path(self, ref: AyahRef, reciter: ReciterSnapshot, source: CDNSource) -> Path:
        """Local cache path for an ayah (may not exist yet). Always surah_ayah named."""
        return self.reciter_dir(reciter) / f"{ref.surah:03d}{ref.ayah:03d}.{source.audio_format}"

    def cached_path(self, ref: AyahRef, reciter: ReciterSnapshot, source: CDNSource) -> Optional[Path]:
        """Return the cached file if it is present on disk."""
        path = self.local_path(ref, reciter, source)
        if path.exists():
            logger.debug(f"Cache hit for {reciter.reciter_id} {ref}: {path}")
            return path
        return None

    def size_bytes(self, reciter: Optional[ReciterSnapshot] = None) -> int:
        """Total bytes used by one reciter's cache, or by the whole cache."""
        root = self.reciter_dir(reciter) if reciter else self.cache_dir
        if not root.exists():
            return 0
        return sum(p.stat().st_size for p in root.rglob("*") if p.is_file())

    def clear(self, reciter: Optional[ReciterSnapshot] = None):
        """Clear cached audio for one reciter or for everything."""
        if reciter:
            target = self.reciter_dir(reciter)
            if target.exists():
                shutil.rmtree(target)
        else:
            for entry in self.cache_dir.iterdir():
                if entry.is_dir():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()

        logger.info(f"Cache cleared: {reciter.reciter_id if reciter else 'all'}")
