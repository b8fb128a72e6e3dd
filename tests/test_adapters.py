"""
Tests for the LRCLIB fetcher and its file cache.

HTTP is replaced by a mocked requests session; the live test at the bottom
needs internet and is skipped otherwise.
"""
import json
from unittest.mock import MagicMock

import pytest
import requests

from lyric_overlay.adapters import LyricsFetcher
from lyric_overlay.domain_types import LyricLine
from lyric_overlay.exceptions import CacheWriteFailure, ResolutionFailure
from lyric_overlay.infra import Config

SYNCED = "[00:00.00]Hello\n[00:05.00]World"


def make_response(status=200, payload=None, bad_json=False):
    resp = MagicMock()
    resp.status_code = status
    if bad_json:
        resp.json.side_effect = ValueError("Expecting value")
    else:
        resp.json.return_value = payload
    return resp


def make_session(*results):
    """A session whose get() returns (or raises) the given results in order."""
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = list(results)
    return session


@pytest.fixture
def fetcher_factory(tmp_path):
    def factory(*results):
        session = make_session(*results)
        fetcher = LyricsFetcher(cache_dir=tmp_path, base_url="http://lrclib.test/api/", session=session)
        return fetcher, session
    return factory


class TestFetch:

    def test_parses_synced_lyrics(self, fetcher_factory):
        fetcher, session = fetcher_factory(make_response(payload={"syncedLyrics": SYNCED}))

        lines = fetcher.resolve("Song", "Artist")

        assert lines == (LyricLine("Hello", 0.0), LyricLine("World", 5.0))
        session.get.assert_called_once_with(
            "http://lrclib.test/api/get",
            params={"track_name": "Song", "artist_name": "Artist"},
            timeout=10.0,
        )

    def test_sets_user_agent(self, fetcher_factory):
        _, session = fetcher_factory()
        assert session.headers["User-Agent"] == LyricsFetcher.USER_AGENT

    @pytest.mark.parametrize("payload", [
        {"syncedLyrics": None, "plainLyrics": "words only"},
        {"syncedLyrics": "   "},
        {"instrumental": True, "syncedLyrics": SYNCED},
        ["not", "a", "dict"],
    ])
    def test_no_synced_lyrics_is_empty(self, fetcher_factory, payload):
        fetcher, _ = fetcher_factory(make_response(payload=payload))
        assert fetcher.resolve("Song", "Artist") == ()

    def test_not_found_is_empty(self, fetcher_factory):
        fetcher, _ = fetcher_factory(make_response(status=404))
        assert fetcher.resolve("Unknown", "Nobody") == ()


class TestFailures:

    def test_server_error_raises(self, fetcher_factory):
        fetcher, _ = fetcher_factory(make_response(status=500))
        with pytest.raises(ResolutionFailure, match="500"):
            fetcher.resolve("Song", "Artist")

    def test_network_error_raises(self, fetcher_factory):
        fetcher, _ = fetcher_factory(requests.ConnectionError("unreachable"))
        with pytest.raises(ResolutionFailure):
            fetcher.resolve("Song", "Artist")

    def test_timeout_raises(self, fetcher_factory):
        fetcher, _ = fetcher_factory(requests.Timeout("slow"))
        with pytest.raises(ResolutionFailure):
            fetcher.resolve("Song", "Artist")

    def test_invalid_json_raises(self, fetcher_factory):
        fetcher, _ = fetcher_factory(make_response(bad_json=True))
        with pytest.raises(ResolutionFailure):
            fetcher.resolve("Song", "Artist")

    def test_failures_are_not_cached(self, fetcher_factory, tmp_path):
        fetcher, session = fetcher_factory(
            make_response(status=503),
            make_response(payload={"syncedLyrics": SYNCED}),
        )
        with pytest.raises(ResolutionFailure):
            fetcher.resolve("Song", "Artist")
        assert fetcher.cached_count() == 0

        assert len(fetcher.resolve("Song", "Artist")) == 2
        assert session.get.call_count == 2


class TestCache:

    def test_second_lookup_hits_cache(self, fetcher_factory):
        fetcher, session = fetcher_factory(make_response(payload={"syncedLyrics": SYNCED}))

        first = fetcher.resolve("Song", "Artist")
        second = fetcher.resolve("Song", "Artist")

        assert first == second
        assert session.get.call_count == 1
        assert fetcher.cached_count() == 1

    def test_cache_file_format(self, fetcher_factory, tmp_path):
        fetcher, _ = fetcher_factory(make_response(payload={"syncedLyrics": SYNCED}))
        fetcher.resolve("Song", "Artist")

        records = json.loads((tmp_path / "Artist__Song.json").read_text(encoding="utf-8"))
        assert records == [
            {"text": "Hello", "startTime": 0.0},
            {"text": "World", "startTime": 5.0},
        ]

    def test_no_lyrics_is_cached(self, fetcher_factory, tmp_path):
        fetcher, session = fetcher_factory(make_response(status=404))

        assert fetcher.resolve("Song", "Artist") == ()
        assert fetcher.resolve("Song", "Artist") == ()

        assert session.get.call_count == 1
        assert json.loads((tmp_path / "Artist__Song.json").read_text()) == []

    def test_existing_cache_file_is_used(self, fetcher_factory, tmp_path):
        (tmp_path / "Queen__Bohemian Rhapsody.json").write_text(
            json.dumps([{"text": "Is this the real life?", "startTime": 0.5}]),
            encoding="utf-8",
        )
        fetcher, session = fetcher_factory()

        lines = fetcher.resolve("Bohemian Rhapsody", "Queen")

        assert lines == (LyricLine("Is this the real life?", 0.5),)
        session.get.assert_not_called()

    @pytest.mark.parametrize("content", ["{not json", '{"text": "object, not list"}'])
    def test_corrupt_cache_is_a_miss(self, fetcher_factory, tmp_path, content):
        (tmp_path / "Artist__Song.json").write_text(content, encoding="utf-8")
        fetcher, session = fetcher_factory(make_response(payload={"syncedLyrics": SYNCED}))

        assert len(fetcher.resolve("Song", "Artist")) == 2
        assert session.get.call_count == 1
        # Overwritten with a good copy
        assert len(json.loads((tmp_path / "Artist__Song.json").read_text())) == 2

    def test_unsafe_names_stay_in_cache_dir(self, fetcher_factory, tmp_path):
        fetcher, _ = fetcher_factory(make_response(status=404))
        fetcher.resolve("Back/Slash", "AC/DC")
        assert (tmp_path / "AC_DC__Back_Slash.json").exists()

    def test_cache_dir_created_on_demand(self, tmp_path):
        cache_dir = tmp_path / "nested" / "cache"
        session = make_session(make_response(status=404))
        fetcher = LyricsFetcher(cache_dir=cache_dir, session=session)
        assert fetcher.cached_count() == 0
        fetcher.resolve("Song", "Artist")
        assert cache_dir.is_dir()
        assert fetcher.cached_count() == 1


    def test_unwritable_cache_still_returns_lines(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("occupied")
        session = make_session(make_response(payload={"syncedLyrics": SYNCED}))
        fetcher = LyricsFetcher(cache_dir=blocker, session=session)

        assert len(fetcher.resolve("Song", "Artist")) == 2
        with pytest.raises(CacheWriteFailure):
            fetcher._save_cache("Song", "Artist", ())


class TestFromConfig:

    def test_uses_config_values(self, tmp_path):
        config = Config(cache_dir=tmp_path, lrclib_url="http://mirror.test/api", http_timeout=2.5)
        fetcher = LyricsFetcher.from_config(config)
        assert fetcher._cache_dir == tmp_path
        assert fetcher._base_url == "http://mirror.test/api"
        assert fetcher._timeout == 2.5


class TestLiveLookup:

    @pytest.mark.network
    def test_known_track_has_synced_lyrics(self, requires_internet, tmp_path):
        fetcher = LyricsFetcher(cache_dir=tmp_path)
        lines = fetcher.resolve("Bohemian Rhapsody", "Queen")
        assert len(lines) > 10
        starts = [line.start_time for line in lines]
        assert starts == sorted(starts)
