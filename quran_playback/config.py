# quran_playback/config.py
"""
Central configuration management with persistence.
"""
import os
import json
from pathlib import Path
from dataclasses import dataclass
from typing import Optional
import logging

from .settings import PlaybackSettingsRecord
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class CDNConfig:
    """Configuration for CDN availability probing."""
    timeout: int = 10
    max_retries: int = 3
    max_concurrency: int = 16

    def to_dict(self) -> dict:
        return {"timeout": self.timeout, "max_retries": self.max_retries, "max_concurrency": self.max_concurrency}

    @classmethod
    def from_dict(cls, data: dict) -> "CDNConfig":
        return cls(**{k: v for k, v in data.items() if k in ['timeout', 'max_retries', 'max_concurrency']})


@dataclass
class EngineConfig:
    """Configuration for the playback engine."""
    min_unavailable_dwell_ms: int = 0
    simulated_unit_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "min_unavailable_dwell_ms": self.min_unavailable_dwell_ms,
            "simulated_unit_seconds": self.simulated_unit_seconds
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        return cls(**{k: v for k, v in data.items() if k in ['min_unavailable_dwell_ms', 'simulated_unit_seconds']})


class Config:
    """
    Main configuration container with persistence.

    Usage:
        # Create new or load existing
        config = Config.load_or_create(data_dir)

        # Change preferences, then persist
        config.playback.speed = 1.25
        config.save()

        # Reload from disk
        config.reload()
    """

    def __init__(self, data_dir: Path, base_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir)
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()

        # Derived paths
        self.cache_dir = self.data_dir / "cache"
        self.recordings_dir = self.data_dir / "recordings"
        self.reciters_file = self.data_dir / "reciters.json"
        self.config_path = self.data_dir / "config.json"
        self.quran_metadata_file: Path = self.base_dir / "quran-metadata-misc.json"

        # Component configs
        self.cdn = CDNConfig()
        self.engine = EngineConfig()
        self.playback = PlaybackSettingsRecord()

        for d in [self.cache_dir, self.recordings_dir]:
            d.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "data_dir": str(self.data_dir),
            "base_dir": str(self.base_dir),
            "quran_metadata_file": str(self.quran_metadata_file),
            "cdn": self.cdn.to_dict(),
            "engine": self.engine.to_dict(),
            "playback": self.playback.to_dict()
        }

    def _update_from_dict(self, data: dict):
        if "quran_metadata_file" in data:
            self.quran_metadata_file = Path(data["quran_metadata_file"])
        if "cdn" in data:
            self.cdn = CDNConfig.from_dict(data["cdn"])
        if "engine" in data:
            self.engine = EngineConfig.from_dict(data["engine"])
        if "playback" in data:
            self.playback = PlaybackSettingsRecord.from_dict(data["playback"])

    def save(self):
        """Save configuration to disk."""
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        logger.debug(f"Config saved to {self.config_path}")

    def reload(self):
        """Reload configuration from disk."""
        if not self.config_path.exists():
            logger.warning(f"No config file at {self.config_path}")
            return
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._update_from_dict(data)
        except (ValueError, KeyError, TypeError) as e:
            raise ConfigurationError(f"Invalid config file {self.config_path}: {e}")
        logger.info(f"Config reloaded from {self.config_path}")

    @classmethod
    def load_or_create(cls, data_dir: Path, base_dir: Optional[Path] = None) -> "Config":
        """
        Load existing config or create new one.
        Does NOT overwrite existing config.
        """
        data_dir = Path(data_dir)
        # Allow callers to pass either a data directory or a full config path
        if data_dir.suffix == ".json":
            data_dir = data_dir.parent
        config_path = data_dir / "config.json"

        config = cls(data_dir=data_dir, base_dir=base_dir)

        if config_path.exists():
            logger.info(f"Loading existing config from {config_path}")
            config.reload()
        else:
            logger.info(f"Creating new config at {config_path}")
            config.save()

        return config

    def print_status(self, reciter_count: Optional[int] = None, cache_bytes: Optional[int] = None):
        """Print current configuration status."""
        record = self.playback
        print("\n" + "=" * 60)
        print("QURAN PLAYBACK STATUS")
        print("=" * 60)
        print(f"Data directory: {self.data_dir}")
        print(f"Quran metadata: {'✓ ' + str(self.quran_metadata_file) if self.quran_metadata_file.exists() else '✗ built-in tables'}")
        if reciter_count is not None:
            print(f"Reciters: {reciter_count}")
        if cache_bytes is not None:
            print(f"Audio cache: {cache_bytes / (1024 * 1024):.1f} MB")
        print("\nPlayback preferences:")
        print(f"  Riwayah: {record.riwayah or 'hafs (default)'}")
        print(f"  Reciter: {record.selected_reciter_id or 'priority list'} ({len(record.reciter_priority)} in list)")
        print(f"  Speed: {record.speed if record.speed is not None else 1.0}x")
        print(f"  Ayah repeat: {_repeat_label(record.ayah_repeat_count)}  Range repeat: {_repeat_label(record.range_repeat_count)}")
        print(f"  Gap: {record.gap_between_ayaat_ms or 0} ms")
        print(f"  After repeat: {record.after_repeat_action or 'stop'}")
        print("=" * 60 + "\n")


def _repeat_label(count: Optional[int]) -> str:
    if count is None:
        return "1"
    return "∞" if count == -1 else str(count)


def get_config() -> Config:
    """
    Get the global configuration instance.

    QURAN_PLAYBACK_CONFIG should point directly to the config JSON file.
    """
    env_path = os.environ.get("QURAN_PLAYBACK_CONFIG")
    config_path = Path(env_path).expanduser() if env_path else Path("./quran_data/config.json")
    return Config.load_or_create(config_path)
