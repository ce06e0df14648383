import configparser
from pathlib import Path

import pytest
from pydantic import ValidationError

from epdl.exceptions import ConfigurationError
from epdl.models.config import SessionConfig
from epdl.storage.config_manager import ConfigManager
from epdl.utils.formatting import format_duration, format_size, format_speed, format_timestamp
from epdl.utils.path import default_output_name, subtitle_output_path, temp_output_path


class TestSessionConfig:
    def test_defaults(self):
        config = SessionConfig()
        assert config.connections == 5
        assert config.retry == 5
        assert config.key_retry == 5
        assert config.resolution_height == 1080
        assert config.keep_remote_names is False

    def test_resolution_is_normalized(self):
        assert SessionConfig(resolution="720").resolution == "720p"
        assert SessionConfig(resolution=" 480P ").resolution == "480p"

    @pytest.mark.parametrize(
        "options",
        [
            {"connections": 0},
            {"connections": 33},
            {"retry": 0},
            {"retry_delay": -1},
            {"resolution": "full-hd"},
            {"sub_lang": ["en US!"]},
            {"retry_delay": 10, "max_retry_delay": 5},
            {"hardsub": True, "sub_lang": ["enUS", "deDE"]},
            {"hardsub": True, "subs_only": True},
            {"attach_fonts": True},
        ],
    )
    def test_rejects_invalid_options(self, options):
        with pytest.raises(ValidationError):
            SessionConfig(**options)

    def test_attach_fonts_with_base_url(self):
        config = SessionConfig(attach_fonts=True, font_base_url="https://fonts.example.com/")
        assert config.attach_fonts is True

    def test_validates_assignment(self):
        config = SessionConfig()
        with pytest.raises(ValidationError):
            config.connections = 0

    def test_ini_keys_exclude_per_run_options(self):
        keys = SessionConfig.get_ini_keys()
        assert "connections" in keys and "ffmpeg_path" in keys
        assert not keys & {"config_path", "sub_lang", "default_sub", "subs_only", "fonts"}


class TestConfigManager:
    def test_missing_file_uses_defaults(self, tmp_path):
        config = ConfigManager(tmp_path / "config.ini").load_config({"connections": 8})
        assert config.connections == 8
        assert config.config_path == str(tmp_path)

    def test_round_trip_through_ini(self, tmp_path):
        path = tmp_path / "epdl" / "config.ini"
        manager = ConfigManager(path)
        manager.save_new_config({"connections": 12, "keep_remote_names": True})

        parser = configparser.ConfigParser(interpolation=None)
        parser.read(path, encoding="utf-8")
        assert parser["DEFAULT"]["keep_remote_names"] == "true"
        assert "proxy" not in parser["DEFAULT"]

        config = ConfigManager(path).load_config()
        assert config.connections == 12
        assert config.keep_remote_names is True
        assert config.retry_delay == 1.5

    def test_cli_options_override_file(self, tmp_path):
        path = tmp_path / "config.ini"
        path.write_text("[DEFAULT]\nconnections = 3\nwork_dir = ~/epdl-tmp\n", encoding="utf-8")

        config = ConfigManager(path).load_config({"connections": 7})

        assert config.connections == 7
        assert config.work_dir == Path("~/epdl-tmp").expanduser()

    def test_bad_value_in_file(self, tmp_path):
        path = tmp_path / "config.ini"
        path.write_text("[DEFAULT]\nretry = many\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="retry"):
            ConfigManager(path).load_config()

    def test_out_of_range_value_in_file(self, tmp_path):
        path = tmp_path / "config.ini"
        path.write_text("[DEFAULT]\nconnections = 100\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="validation failed"):
            ConfigManager(path).load_config()


class TestOutputPaths:
    def test_temp_output_keeps_extension_last(self):
        assert temp_output_path(Path("show/ep 1.mkv")) == Path("show/ep 1.tmp.mkv")

    def test_subtitle_output(self):
        assert subtitle_output_path(Path("show/ep.mkv"), "enUS") == Path("show/ep.enUS.ass")

    def test_default_output_name(self):
        assert default_output_name("https://cdn.example.com/a/My%20Show.m3u8?x=1") == Path("My Show.mkv")
        assert default_output_name("https://cdn.example.com/") == Path("video.mkv")


class TestFormatting:
    def test_format_size(self):
        assert format_size(0) == "0 B"
        assert format_size(512) == "512.0 B"
        assert format_size(1536) == "1.5 KB"
        assert format_speed(3 * 1024 * 1024) == "3.0 MB/s"

    def test_format_duration(self):
        assert format_duration(None) == "--"
        assert format_duration(0) == "0s"
        assert format_duration(3725) == "1h 2m 5s"
        assert format_duration(120) == "2m"

    def test_format_timestamp(self):
        assert format_timestamp(1420050) == "00:23:40"
