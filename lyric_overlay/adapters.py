#!/usr/bin/env python3
"""
External Service Adapters

LRCLIB lyric lookup behind a one-call interface, with a JSON file cache so a
track is only fetched once.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from lyric_overlay.domain_types import (
    LyricSet,
    cache_filename,
    lines_from_records,
    lines_to_records,
    parse_lrc,
)
from lyric_overlay.exceptions import CacheWriteFailure, ResolutionFailure
from lyric_overlay.infra import Config

logger = logging.getLogger(__name__)


# =============================================================================
# LYRICS FETCHER - LRCLIB + on-disk cache
# =============================================================================

class LyricsFetcher:
    """
    Resolves synced lyrics for a track.

    Simple interface:
        resolve(title, artist) -> LyricSet   # empty tuple = no synced lyrics

    Strategy:
    - Cache hit returns immediately (including a cached "no lyrics").
    - Cache miss asks LRCLIB /api/get and writes the answer to the cache.
    - Network or HTTP errors raise ResolutionFailure and are NOT cached, so
      the next session for the same track tries again.
    """

    BASE_URL = "https://lrclib.net/api"
    USER_AGENT = "LyricOverlay/1.0 (https://lrclib.net)"

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self._cache_dir = Path(cache_dir) if cache_dir else Config().cache_dir
        self._base_url = (base_url or self.BASE_URL).rstrip('/')
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = self.USER_AGENT

    @classmethod
    def from_config(cls, config: Config) -> "LyricsFetcher":
        return cls(
            cache_dir=config.cache_dir,
            base_url=config.lrclib_url,
            timeout=config.http_timeout,
        )

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def resolve(self, title: str, artist: str) -> LyricSet:
        """Return synced lines for the track. Raises ResolutionFailure on lookup errors."""
        cached = self._load_cache(title, artist)
        if cached is not None:
            logger.debug(f"Cache hit for lyrics: {self._get_cache_path(title, artist)}")
            return cached

        logger.info(f"Fetching lyrics from LRCLIB: {artist} - {title}")
        lines = self._fetch_from_lrclib(title, artist)
        if not lines:
            logger.info(f"No synced lyrics found: {artist} - {title}")
        try:
            self._save_cache(title, artist, lines)
        except CacheWriteFailure as e:
            # Only costs a refetch next time
            logger.debug(str(e))
        return lines

    def cached_count(self) -> int:
        """Return number of cached tracks."""
        if self._cache_dir.exists():
            return len(list(self._cache_dir.glob("*.json")))
        return 0

    def get_status(self) -> Dict[str, Any]:
        return {
            "base_url": self._base_url,
            "cache_dir": str(self._cache_dir),
            "cached_tracks": self.cached_count(),
        }

    # =========================================================================
    # PRIVATE - LRCLIB
    # =========================================================================

    def _fetch_from_lrclib(self, title: str, artist: str) -> LyricSet:
        params = {"track_name": title, "artist_name": artist}
        try:
            resp = self._session.get(f"{self._base_url}/get", params=params, timeout=self._timeout)
        except requests.RequestException as e:
            raise ResolutionFailure(f"LRCLIB request failed: {e}") from e

        if resp.status_code == 404:
            return ()
        if resp.status_code != 200:
            raise ResolutionFailure(f"LRCLIB error {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise ResolutionFailure(f"LRCLIB returned invalid JSON: {e}") from e

        if not isinstance(data, dict) or data.get("instrumental"):
            return ()
        synced = data.get("syncedLyrics")
        if not isinstance(synced, str) or not synced.strip():
            return ()
        return parse_lrc(synced)

    # =========================================================================
    # PRIVATE - CACHE
    # =========================================================================

    def _load_cache(self, title: str, artist: str) -> Optional[LyricSet]:
        """Cached lines, or None on a miss or an unreadable file."""
        cache_file = self._get_cache_path(title, artist)
        if not cache_file.exists():
            return None
        try:
            records = json.loads(cache_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.debug(f"Ignoring unreadable cache file {cache_file}: {e}")
            return None
        if not isinstance(records, list):
            return None
        return lines_from_records(records)

    def _save_cache(self, title: str, artist: str, lines: LyricSet) -> None:
        cache_file = self._get_cache_path(title, artist)
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
            cache_file.write_text(
                json.dumps(lines_to_records(lines), ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            raise CacheWriteFailure(f"Cache write failed for {cache_file}: {e}") from e
        logger.debug(f"Lyrics cached to: {cache_file}")

    def _get_cache_path(self, title: str, artist: str) -> Path:
        return self._cache_dir / cache_filename(title, artist)
