"""Tests for configuration loading."""
import os
from pathlib import Path

import pytest

from lyric_overlay import infra
from lyric_overlay.infra import Config


class TestConfigDefaults:

    def test_defaults(self):
        config = Config.from_env({})
        assert config.osc_host == "0.0.0.0"
        assert config.osc_port == 3170
        assert config.ws_port == 8081
        assert config.max_display_sec == 10.0
        assert config.timing_offset_ms == 0
        assert config.cache_dir.name == "cache"
        assert config.lrclib_url == "https://lrclib.net/api"
        assert config.http_timeout == 10.0

    def test_cache_dir_follows_working_directory(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert Config().cache_dir == tmp_path / "cache"
        assert Config.from_env({}).cache_dir == tmp_path / "cache"


class TestConfigFromEnv:

    def test_reads_prefixed_variables(self, tmp_path):
        config = Config.from_env({
            "LYRIC_OVERLAY_OSC_HOST": "127.0.0.1",
            "LYRIC_OVERLAY_OSC_PORT": "9000",
            "LYRIC_OVERLAY_WS_PORT": "9100",
            "LYRIC_OVERLAY_MAX_DISPLAY_SEC": "7.5",
            "LYRIC_OVERLAY_TIMING_OFFSET_MS": "-150",
            "LYRIC_OVERLAY_CACHE_DIR": str(tmp_path),
            "LYRIC_OVERLAY_LRCLIB_URL": "http://localhost:3000/api/",
            "LYRIC_OVERLAY_HTTP_TIMEOUT": "2",
        })
        assert config.osc_host == "127.0.0.1"
        assert config.osc_port == 9000
        assert config.ws_port == 9100
        assert config.max_display_sec == 7.5
        assert config.timing_offset_ms == -150
        assert config.cache_dir == tmp_path
        assert config.lrclib_url == "http://localhost:3000/api"
        assert config.http_timeout == 2.0

    def test_unprefixed_variables_ignored(self):
        assert Config.from_env({"OSC_PORT": "1"}).osc_port == 3170

    @pytest.mark.parametrize("key,value", [
        ("LYRIC_OVERLAY_OSC_PORT", "not-a-port"),
        ("LYRIC_OVERLAY_WS_PORT", "80.5"),
        ("LYRIC_OVERLAY_MAX_DISPLAY_SEC", "ten"),
    ])
    def test_invalid_values_fall_back(self, key, value, caplog):
        config = Config.from_env({key: value})
        assert config == Config.from_env({})
        assert "Ignoring" in caplog.text

    def test_blank_values_fall_back(self):
        assert Config.from_env({"LYRIC_OVERLAY_OSC_HOST": "  "}).osc_host == "0.0.0.0"

    def test_cache_dir_expands_user(self):
        config = Config.from_env({"LYRIC_OVERLAY_CACHE_DIR": "~/lyrics"})
        assert config.cache_dir == Path.home() / "lyrics"


class TestEnvFiles:

    def test_loads_dotenv_from_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("LYRIC_OVERLAY_WS_PORT", raising=False)
        (tmp_path / ".env").write_text("LYRIC_OVERLAY_WS_PORT=9555\n")

        try:
            assert infra.load_env_files() == tmp_path / ".env"
            assert Config.from_env().ws_port == 9555
        finally:
            os.environ.pop("LYRIC_OVERLAY_WS_PORT", None)

    def test_no_env_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path / "nohome"))
        assert infra.load_env_files() is None
