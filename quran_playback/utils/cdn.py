# quran_playback/utils/cdn.py
"""
CDN URL construction and availability probing.
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional
import logging

import backoff
import requests

from ..models import AyahRef, CDNSource, NamingPattern, ReciterSnapshot
from ..exceptions import CDNError
from .quran_index import QuranIndex

logger = logging.getLogger(__name__)


def substitute_url_template(template: str, surah: int, ayah: int) -> str:
    """
    Substitute ${s}/${ss}/${sss} (surah) and ${a}/${aa}/${aaa} (ayah) tokens.
    The token length sets the minimum digit width.
    """
    result = template
    # Longest tokens first so ${sss} is not eaten by ${s}
    result = result.replace("${sss}", f"{surah:03d}")
    result = result.replace("${ss}", f"{surah:02d}")
    result = result.replace("${s}", str(surah))
    result = result.replace("${aaa}", f"{ayah:03d}")
    result = result.replace("${aa}", f"{ayah:02d}")
    result = result.replace("${a}", str(ayah))
    return result


def remote_filename(ref: AyahRef, source: CDNSource, index: QuranIndex) -> str:
    if source.effective_pattern == NamingPattern.SEQUENTIAL:
        return f"{index.sequential_index(ref)}.{source.audio_format}"
    return f"{ref.surah:03d}{ref.ayah:03d}.{source.audio_format}"


def remote_url(ref: AyahRef, source: CDNSource, index: QuranIndex) -> Optional[str]:
    """Remote URL for an ayah, or None if the source has no usable location."""
    if source.effective_pattern == NamingPattern.URL_TEMPLATE:
        return substitute_url_template(source.url_template, ref.surah, ref.ayah)
    if not source.base_url:
        return None
    base = source.base_url if source.base_url.endswith("/") else source.base_url + "/"
    return base + remote_filename(ref, source, index)


class CDNAvailabilityChecker:
    """Probes a CDN reciter's whole ayah list with HEAD requests to find missing files."""

    def __init__(
        self,
        index: QuranIndex,
        timeout: int = 10,
        max_retries: int = 3,
        max_concurrency: int = 16,
        session: Optional[requests.Session] = None
    ):
        self.index = index
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.max_concurrency = max(1, max_concurrency)
        self.session = session or requests.Session()

    def probe(self, url: str) -> bool:
        """True if the server answers HTTP 200 for the URL."""
        return self._probe(url) is True

    def _probe(self, url: str) -> Optional[bool]:
        """HTTP 200 check; None when no response arrived after retries."""
        @backoff.on_exception(
            backoff.expo,
            (requests.exceptions.ConnectionError, requests.exceptions.Timeout),
            max_tries=self.max_retries,
            logger=logger
        )
        def _head():
            return self.session.head(url, timeout=self.timeout, allow_redirects=True)

        try:
            response = _head()
        except requests.exceptions.RequestException as e:
            logger.debug(f"Probe failed for {url}: {e}")
            return None
        return response.status_code == 200

    def find_missing_ayahs(
        self,
        reciter: ReciterSnapshot,
        source: Optional[CDNSource] = None,
        progress: Optional[Callable[[int], None]] = None
    ) -> List[AyahRef]:
        """
        Probe every ayah and return the ones the CDN does not serve.

        An ayah whose probe gets no response after retries counts as missing.

        Args:
            reciter: Reciter to check
            source: CDN source to probe (defaults to the reciter's first source)
            progress: Called with 1 after each completed probe

        Raises:
            CDNError: The reciter has no CDN source to probe, or no probe got a response
        """
        source = source or (reciter.cdn_sources[0] if reciter.cdn_sources else None)
        if source is None:
            raise CDNError(f"Reciter '{reciter.reciter_id}' has no CDN source")

        refs = list(self.index.iter_range(self.index.first_ayah, self.index.last_ayah))
        logger.info(f"Checking {len(refs)} ayaat for {reciter.name}")

        missing: List[AyahRef] = []
        unreachable = 0
        with ThreadPoolExecutor(max_workers=self.max_concurrency) as pool:
            futures = {}
            for ref in refs:
                url = remote_url(ref, source, self.index)
                if url is None:
                    missing.append(ref)
                    continue
                futures[pool.submit(self._probe, url)] = ref

            for future in as_completed(futures):
                found = future.result()
                if found is None:
                    unreachable += 1
                if not found:
                    missing.append(futures[future])
                if progress:
                    progress(1)

        if futures and unreachable == len(futures):
            raise CDNError(f"CDN unreachable for {reciter.name}: no probe got a response")
        if unreachable:
            logger.warning(f"{reciter.name}: {unreachable} probes got no response, counted as missing")

        missing.sort()
        logger.info(f"{reciter.name}: {len(missing)} ayaat missing on CDN")
        return missing
