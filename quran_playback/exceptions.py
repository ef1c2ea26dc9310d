# quran_playback/exceptions.py
"""
Custom exceptions for the playback core.
"""


class QuranPlaybackError(Exception):
    """Base exception for quran playback."""
    pass


class ConfigurationError(QuranPlaybackError):
    """Configuration-related errors."""
    pass


class InvalidSettingsError(ConfigurationError):
    """A playback setting failed validation while building a snapshot."""
    def __init__(self, field: str, value, reason: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid playback setting '{field}'={value!r}: {reason}")


class InvalidRangeError(QuranPlaybackError):
    """Range specification could not be parsed or is out of bounds."""
    pass


class ReciterNotFoundError(QuranPlaybackError):
    """Reciter id is not present in the library."""
    def __init__(self, reciter_id: str, available=None):
        self.reciter_id = reciter_id
        hint = f" Available: {sorted(available)}." if available else ""
        super().__init__(f"Reciter '{reciter_id}' not found.{hint}")


class ResolverUnavailableError(QuranPlaybackError):
    """Reciter/recording data source cannot be reached."""
    pass


class AudioOutputError(QuranPlaybackError):
    """Audio output failed to engage a locator."""
    pass


class CDNError(QuranPlaybackError):
    """CDN probing errors."""
    pass
