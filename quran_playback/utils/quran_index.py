# quran_playback/utils/quran_index.py
"""
Read-only Quran reference data: ayah counts, ayah ordering and Mushaf pages.
"""
import bisect
import json
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple
import logging

from ..models import AyahRef

logger = logging.getLogger(__name__)

TOTAL_PAGES = 604

# Standard Quran structure (Hafs, 6236 ayaat)
SURAH_AYAH_COUNTS = {
    1: 7, 2: 286, 3: 200, 4: 176, 5: 120, 6: 165, 7: 206, 8: 75, 9: 129, 10: 109,
    11: 123, 12: 111, 13: 43, 14: 52, 15: 99, 16: 128, 17: 111, 18: 110, 19: 98, 20: 135,
    21: 112, 22: 78, 23: 118, 24: 64, 25: 77, 26: 227, 27: 93, 28: 88, 29: 69, 30: 60,
    31: 34, 32: 30, 33: 73, 34: 54, 35: 45, 36: 83, 37: 182, 38: 88, 39: 75, 40: 85,
    41: 54, 42: 53, 43: 89, 44: 59, 45: 37, 46: 35, 47: 38, 48: 29, 49: 18, 50: 45,
    51: 60, 52: 49, 53: 62, 54: 55, 55: 78, 56: 96, 57: 29, 58: 22, 59: 24, 60: 13,
    61: 14, 62: 11, 63: 11, 64: 18, 65: 12, 66: 12, 67: 30, 68: 52, 69: 52, 70: 44,
    71: 28, 72: 28, 73: 20, 74: 56, 75: 40, 76: 31, 77: 50, 78: 40, 79: 46, 80: 42,
    81: 29, 82: 19, 83: 36, 84: 25, 85: 22, 86: 17, 87: 19, 88: 26, 89: 30, 90: 20,
    91: 15, 92: 21, 93: 11, 94: 8, 95: 8, 96: 19, 97: 5, 98: 8, 99: 8, 100: 11,
    101: 11, 102: 8, 103: 3, 104: 9, 105: 5, 106: 4, 107: 7, 108: 3, 109: 6, 110: 3,
    111: 5, 112: 4, 113: 5, 114: 6
}

# Madani Mushaf (604 pages) start page of every surah
SURAH_START_PAGES = {
    1: 1, 2: 2, 3: 50, 4: 77, 5: 106, 6: 128, 7: 151, 8: 177, 9: 187, 10: 208,
    11: 221, 12: 235, 13: 249, 14: 255, 15: 262, 16: 267, 17: 282, 18: 293, 19: 305, 20: 312,
    21: 322, 22: 332, 23: 342, 24: 350, 25: 359, 26: 367, 27: 377, 28: 385, 29: 396, 30: 404,
    31: 411, 32: 415, 33: 418, 34: 428, 35: 434, 36: 440, 37: 446, 38: 453, 39: 458, 40: 467,
    41: 477, 42: 483, 43: 489, 44: 496, 45: 499, 46: 502, 47: 507, 48: 511, 49: 515, 50: 518,
    51: 520, 52: 523, 53: 526, 54: 528, 55: 531, 56: 534, 57: 537, 58: 542, 59: 545, 60: 549,
    61: 551, 62: 553, 63: 554, 64: 556, 65: 558, 66: 560, 67: 562, 68: 564, 69: 566, 70: 568,
    71: 570, 72: 572, 73: 574, 74: 575, 75: 577, 76: 578, 77: 580, 78: 582, 79: 583, 80: 585,
    81: 586, 82: 587, 83: 587, 84: 589, 85: 590, 86: 591, 87: 591, 88: 592, 89: 593, 90: 594,
    91: 595, 92: 595, 93: 596, 94: 596, 95: 597, 96: 597, 97: 598, 98: 598, 99: 599, 100: 599,
    101: 600, 102: 600, 103: 601, 104: 601, 105: 601, 106: 602, 107: 602, 108: 602, 109: 603, 110: 603,
    111: 603, 112: 604, 113: 604, 114: 604
}


class QuranIndex:
    """
    Ayah navigation and page lookup.

    Pages come from an explicit page -> first-ayah table when one is supplied,
    otherwise they are estimated proportionally inside each surah's page span.
    All queries are pure and deterministic.
    """

    def __init__(
        self,
        surah_ayah_counts: Optional[Dict[int, int]] = None,
        surah_start_pages: Optional[Dict[int, int]] = None,
        page_starts: Optional[Dict[int, AyahRef]] = None
    ):
        self.surah_ayah_counts = dict(surah_ayah_counts or SURAH_AYAH_COUNTS)
        self.surah_start_pages = dict(surah_start_pages or SURAH_START_PAGES)
        self.surah_count = max(self.surah_ayah_counts) if self.surah_ayah_counts else 0
        self._page_starts: Optional[List[Tuple[AyahRef, int]]] = None
        if page_starts:
            self._page_starts = sorted((ref, page) for page, ref in page_starts.items())
        self._page_ranges: Optional[Dict[int, Tuple[AyahRef, AyahRef]]] = None

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def ayah_count(self, surah: int) -> int:
        return self.surah_ayah_counts.get(surah, 0)

    def is_valid(self, ref: AyahRef) -> bool:
        return 1 <= ref.ayah <= self.ayah_count(ref.surah)

    def first_ayah_of_surah(self, surah: int) -> AyahRef:
        return AyahRef(surah, 1)

    @property
    def first_ayah(self) -> AyahRef:
        return AyahRef(1, 1)

    @property
    def last_ayah(self) -> AyahRef:
        return AyahRef(self.surah_count, self.ayah_count(self.surah_count))

    def ayah_after(self, ref: AyahRef) -> Optional[AyahRef]:
        """Next ayah in quran order, or None after the last ayah."""
        if ref.ayah < self.ayah_count(ref.surah):
            return AyahRef(ref.surah, ref.ayah + 1)
        if ref.surah < self.surah_count:
            return AyahRef(ref.surah + 1, 1)
        return None

    def ayah_before(self, ref: AyahRef) -> Optional[AyahRef]:
        """Previous ayah in quran order, or None before the first ayah."""
        if ref.ayah > 1:
            return AyahRef(ref.surah, ref.ayah - 1)
        if ref.surah > 1:
            return AyahRef(ref.surah - 1, self.ayah_count(ref.surah - 1))
        return None

    def iter_range(self, start: AyahRef, end: AyahRef) -> Iterator[AyahRef]:
        """Yield every ayah from start to end inclusive (empty when start > end)."""
        cursor: Optional[AyahRef] = start
        while cursor is not None and cursor <= end:
            yield cursor
            cursor = self.ayah_after(cursor)

    def sequential_index(self, ref: AyahRef) -> int:
        """1-based position of the ayah across the whole Quran (1..6236)."""
        preceding = sum(self.ayah_count(s) for s in range(1, ref.surah))
        return preceding + ref.ayah

    @property
    def total_ayah_count(self) -> int:
        return sum(self.surah_ayah_counts.values())

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def page_of(self, ref: AyahRef) -> int:
        if self._page_starts:
            idx = bisect.bisect_right(self._page_starts, (ref, TOTAL_PAGES + 1)) - 1
            return self._page_starts[max(idx, 0)][1]
        return self._estimated_page(ref)

    def _estimated_page(self, ref: AyahRef) -> int:
        start_page = self.surah_start_pages.get(ref.surah)
        count = self.ayah_count(ref.surah)
        if start_page is None:
            return 1
        next_start = self.surah_start_pages.get(ref.surah + 1, TOTAL_PAGES + 1)
        total_pages = next_start - start_page
        if total_pages <= 0 or count <= 0:
            return start_page
        fraction = (ref.ayah - 1) / count
        estimated = start_page + int(fraction * total_pages)
        return min(max(estimated, start_page), next_start - 1)

    def page_range(self, page: int) -> Optional[Tuple[AyahRef, AyahRef]]:
        """First and last ayah printed on a page, or None if the page holds none."""
        if self._page_ranges is None:
            self._page_ranges = self._build_page_ranges()
        return self._page_ranges.get(page)

    def _build_page_ranges(self) -> Dict[int, Tuple[AyahRef, AyahRef]]:
        ranges: Dict[int, Tuple[AyahRef, AyahRef]] = {}
        for ref in self.iter_range(self.first_ayah, self.last_ayah):
            page = self.page_of(ref)
            if page in ranges:
                ranges[page] = (ranges[page][0], ref)
            else:
                ranges[page] = (ref, ref)
        return ranges


def load_quran_index(path: Optional[Path]) -> QuranIndex:
    """
    Load Quran metadata from file or use the built-in tables.

    Accepted keys:
      - "2:255": {...}                      -> ayah counts derived from keys
      - "2": {"ayahs": 286, "start_page": 2} -> per-surah counts and start pages
      - "pages": {"1": "1:1", "2": "2:1"}   -> exact page starts
    """
    if path is None or not Path(path).exists():
        return QuranIndex()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load metadata from {path}: {e}")
        return QuranIndex()

    counts: Dict[int, int] = {}
    start_pages: Dict[int, int] = {}
    page_starts: Dict[int, AyahRef] = {}

    if isinstance(data, dict):
        for key, value in data.items():
            if key == "pages" and isinstance(value, dict):
                page_starts = {int(p): AyahRef.parse(ref) for p, ref in value.items()}
            elif ":" in key:
                surah, ayah = map(int, key.split(":")[:2])
                counts[surah] = max(counts.get(surah, 0), ayah)
            elif key.isdigit() and isinstance(value, dict):
                counts[int(key)] = value.get("ayahs", value.get("verses", 0))
                if "start_page" in value:
                    start_pages[int(key)] = int(value["start_page"])

    # Fill missing surahs with fallback tables
    for s, count in SURAH_AYAH_COUNTS.items():
        counts.setdefault(s, count)
    for s, page in SURAH_START_PAGES.items():
        start_pages.setdefault(s, page)

    return QuranIndex(counts, start_pages, page_starts or None)
