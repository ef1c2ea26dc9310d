from types import SimpleNamespace

import pytest
import requests

from quran_playback.exceptions import CDNError
from quran_playback.models import AyahRef, CDNSource, NamingPattern, ReciterSnapshot, Riwayah
from quran_playback.utils.cdn import (
    CDNAvailabilityChecker,
    remote_url,
    substitute_url_template,
)
from quran_playback.utils.quran_index import QuranIndex


class FakeSession:
    def __init__(self, statuses=None, errors=()):
        self.statuses = statuses or {}
        self.errors = set(errors)
        self.calls = []

    def head(self, url, timeout=None, allow_redirects=False):
        self.calls.append(url)
        if url in self.errors:
            raise requests.exceptions.ConnectionError(f"refused: {url}")
        return SimpleNamespace(status_code=self.statuses.get(url, 200))


@pytest.fixture
def small_index():
    return QuranIndex(surah_ayah_counts={1: 3, 2: 2})


def test_substitute_url_template_widths():
    template = "https://x/${s}/${ss}/${sss}/${a}-${aa}-${aaa}.mp3"
    assert substitute_url_template(template, 2, 5) == "https://x/2/02/002/5-05-005.mp3"
    assert substitute_url_template("${sss}${aaa}", 114, 6) == "114006"


def test_remote_url_patterns(index):
    source = CDNSource(Riwayah.HAFS, base_url="https://cdn/a")
    assert remote_url(AyahRef(2, 255), source, index) == "https://cdn/a/002255.mp3"

    sequential = CDNSource(Riwayah.HAFS, base_url="https://cdn/a/", naming_pattern=NamingPattern.SEQUENTIAL, audio_format="ogg")
    assert remote_url(AyahRef(114, 6), sequential, index) == "https://cdn/a/6236.ogg"

    assert remote_url(AyahRef(1, 1), CDNSource(Riwayah.HAFS), index) is None


def test_find_missing_ayahs(small_index):
    source = CDNSource(Riwayah.HAFS, base_url="https://cdn/r/")
    reciter = ReciterSnapshot(reciter_id="r", name="R", cdn_sources=(source,))
    session = FakeSession(
        statuses={"https://cdn/r/001002.mp3": 404},
        errors={"https://cdn/r/002002.mp3"}
    )
    checker = CDNAvailabilityChecker(small_index, max_retries=1, max_concurrency=2, session=session)
    ticks = []

    missing = checker.find_missing_ayahs(reciter, progress=ticks.append)

    assert missing == [AyahRef(1, 2), AyahRef(2, 2)]
    assert len(session.calls) == 5
    assert sum(ticks) == 5


def test_source_without_location_reports_everything_missing(small_index):
    reciter = ReciterSnapshot(reciter_id="r", name="R", cdn_sources=(CDNSource(Riwayah.HAFS),))
    checker = CDNAvailabilityChecker(small_index, session=FakeSession())
    assert len(checker.find_missing_ayahs(reciter)) == 5


def test_reciter_without_cdn_rejected(small_index):
    checker = CDNAvailabilityChecker(small_index, session=FakeSession())
    with pytest.raises(CDNError):
        checker.find_missing_ayahs(ReciterSnapshot(reciter_id="r", name="R"))


def test_probe_requires_http_200(small_index):
    session = FakeSession(statuses={"https://cdn/x.mp3": 403})
    checker = CDNAvailabilityChecker(small_index, session=session)
    assert not checker.probe("https://cdn/x.mp3")
    assert checker.probe("https://cdn/y.mp3")


def test_unreachable_cdn_raises_instead_of_reporting_everything_missing(small_index):
    source = CDNSource(Riwayah.HAFS, base_url="https://cdn/r/")
    reciter = ReciterSnapshot(reciter_id="r", name="R", cdn_sources=(source,))
    urls = [remote_url(ref, source, small_index) for ref in small_index.iter_range(AyahRef(1, 1), AyahRef(2, 2))]
    checker = CDNAvailabilityChecker(small_index, max_retries=1, session=FakeSession(errors=urls))

    with pytest.raises(CDNError):
        checker.find_missing_ayahs(reciter)
