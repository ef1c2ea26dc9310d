# quran_playback/utils/library.py
"""
JSON-backed reciter library: the read side is the data source the playback
core snapshots reciters from.
"""
import json
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional
import logging

from ..models import AyahRef, ReciterSnapshot, Riwayah
from ..exceptions import ReciterNotFoundError, ResolverUnavailableError
from .presets import PRESETS_BY_ID

logger = logging.getLogger(__name__)


class ReciterLibrary:
    """
    Reciters with their CDN sources and personal recordings.

    Every read returns immutable ReciterSnapshot values, so a snapshot taken for a
    playback session is unaffected by later edits.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._reciters: Optional[Dict[str, ReciterSnapshot]] = None

    def _load(self) -> Dict[str, ReciterSnapshot]:
        if self._reciters is not None:
            return self._reciters

        if not self.path.exists():
            self._reciters = {}
            return self._reciters

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            reciters = [ReciterSnapshot.from_dict(r) for r in data.get("reciters", [])]
        except (OSError, ValueError, KeyError) as e:
            raise ResolverUnavailableError(f"Cannot read reciter library {self.path}: {e}")

        self._reciters = {r.reciter_id: r for r in reciters}
        logger.debug(f"Loaded {len(self._reciters)} reciters from {self.path}")
        return self._reciters

    def save(self):
        reciters = self._load()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"reciters": [r.to_dict() for r in reciters.values()]}, f, indent=2, ensure_ascii=False)
        logger.debug(f"Reciter library saved to {self.path}")

    def reload(self):
        self._reciters = None
        self._load()

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    def reciters(self, riwayah: Optional[Riwayah] = None) -> List[ReciterSnapshot]:
        """All reciters, or those with audio in the given riwayah, in library order."""
        found = list(self._load().values())
        if riwayah is None:
            return found
        return [r for r in found if riwayah in r.riwayaat]

    def get(self, reciter_id: str) -> ReciterSnapshot:
        reciters = self._load()
        if reciter_id not in reciters:
            raise ReciterNotFoundError(reciter_id, reciters.keys())
        return reciters[reciter_id]

    # -------------------------------------------------------------------------
    # Write side
    # -------------------------------------------------------------------------

    def add(self, reciter: ReciterSnapshot) -> ReciterSnapshot:
        self._load()[reciter.reciter_id] = reciter
        self.save()
        logger.info(f"Registered reciter: {reciter.reciter_id} ({reciter.name})")
        return reciter

    def register_preset(self, preset_id: str) -> ReciterSnapshot:
        if preset_id not in PRESETS_BY_ID:
            raise ReciterNotFoundError(preset_id, PRESETS_BY_ID.keys())
        return self.add(PRESETS_BY_ID[preset_id].to_reciter())

    def set_missing_ayahs(self, reciter_id: str, missing: Iterable[AyahRef]) -> ReciterSnapshot:
        updated = replace(self.get(reciter_id), missing_ayahs=frozenset(missing))
        return self.add(updated)

    def remove(self, reciter_id: str):
        reciters = self._load()
        if reciters.pop(reciter_id, None) is None:
            raise ReciterNotFoundError(reciter_id, reciters.keys())
        self.save()
