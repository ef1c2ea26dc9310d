# quran_playback/__init__.py
"""
Quran Playback - scheduling core for ayah-by-ayah Quran recitation playback.
"""
from .config import Config, get_config
from .models import AyahRange, AyahRef, PlayableUnit, PlaybackState
from .settings import PlaybackSettingsRecord, PlaybackSettingsSnapshot
from .playback.engine import PlaybackEngine
from .playback.queue import PlaybackQueue, QueueBuilder
from .playback.resolver import ReciterResolver
from .playback.service import PlaybackService

__version__ = "1.0.0"
__all__ = [
    "Config",
    "get_config",
    "AyahRange",
    "AyahRef",
    "PlayableUnit",
    "PlaybackState",
    "PlaybackSettingsRecord",
    "PlaybackSettingsSnapshot",
    "PlaybackEngine",
    "PlaybackQueue",
    "QueueBuilder",
    "ReciterResolver",
    "PlaybackService"
]
