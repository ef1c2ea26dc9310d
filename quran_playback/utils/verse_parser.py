# quran_playback/utils/verse_parser.py
"""
Range specification parsing utilities.
"""
from typing import Optional, Tuple
import logging

from ..models import AyahRef, AyahRange
from ..exceptions import InvalidRangeError
from .quran_index import QuranIndex, TOTAL_PAGES

logger = logging.getLogger(__name__)


def parse_range_spec(spec: str, index: Optional[QuranIndex] = None) -> AyahRange:
    """
    Parse a range specification into an AyahRange.

    Formats supported:
      - "2:282"       -> single ayah
      - "2:1-5"       -> ayah range within a surah
      - "2:250-3:10"  -> range crossing surahs
      - "2"           -> entire surah
      - "2-3"         -> consecutive whole surahs
      - "p10", "p10-12" -> whole Mushaf pages
    """
    index = index or QuranIndex()
    spec = spec.strip()
    if not spec:
        raise InvalidRangeError("Empty range spec")

    try:
        if spec.lower().startswith("p"):
            return _parse_pages(spec[1:], index)

        if ":" not in spec:
            if "-" in spec:
                first, last = map(int, spec.split("-", 1))
            else:
                first = last = int(spec)
            _check_surah(first, index)
            _check_surah(last, index)
            return AyahRange(
                start=index.first_ayah_of_surah(first),
                end=AyahRef(last, index.ayah_count(last))
            )

        start_part, _, end_part = spec.partition("-")
        start = AyahRef.parse(start_part)
        if not end_part:
            end = start
        elif ":" in end_part:
            end = AyahRef.parse(end_part)
        else:
            end = AyahRef(start.surah, int(end_part))
    except ValueError as e:
        raise InvalidRangeError(f"Could not parse range '{spec}': {e}")

    return AyahRange(start=start, end=end)


def _parse_pages(body: str, index: QuranIndex) -> AyahRange:
    if "-" in body:
        first, last = map(int, body.split("-", 1))
    else:
        first = last = int(body)
    if not (1 <= first <= last <= TOTAL_PAGES):
        raise InvalidRangeError(f"Pages must satisfy 1 <= start <= end <= {TOTAL_PAGES}")
    first_range = index.page_range(first)
    last_range = index.page_range(last)
    if first_range is None or last_range is None:
        raise InvalidRangeError(f"No ayaat found on pages {first}-{last}")
    return AyahRange(start=first_range[0], end=last_range[1])


def _check_surah(surah: int, index: QuranIndex):
    if index.ayah_count(surah) == 0:
        raise InvalidRangeError(f"Unknown surah {surah}")


def validate_range(ayah_range: AyahRange, index: Optional[QuranIndex] = None) -> Tuple[bool, str]:
    """Validate a range against Quran metadata."""
    index = index or QuranIndex()
    for label, ref in (("Start", ayah_range.start), ("End", ayah_range.end)):
        if index.ayah_count(ref.surah) == 0:
            return False, f"{label} surah {ref.surah} does not exist"
        if ref.ayah < 1:
            return False, f"{label} ayah must be >= 1"
        if ref.ayah > index.ayah_count(ref.surah):
            return False, (
                f"{label} ayah {ref.ayah} exceeds surah {ref.surah} max "
                f"({index.ayah_count(ref.surah)})"
            )

    if ayah_range.is_empty:
        return False, "Start ayah must be <= end ayah"

    return True, ""
