import sys

import pytest
from typer.testing import CliRunner

import epdl.cli.app as cli_app
from epdl.__main__ import main
from epdl.core.session import EpisodeSession, SessionResult
from epdl.exceptions import ManifestParseError

URL = "https://cdn.example.com/show/ep1/index.m3u8"

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    monkeypatch.setattr(cli_app, "CONFIG_FILE", tmp_path / "config.ini")


@pytest.fixture
def ffmpeg_checks(monkeypatch):
    """Replaces the ffmpeg check; set `result` to control its outcome."""
    checks = {"result": True, "calls": 0}

    async def verify(command):
        checks["calls"] += 1
        return checks["result"]

    monkeypatch.setattr(cli_app, "verify_ffmpeg", verify)
    return checks


@pytest.fixture
def recorded_runs(monkeypatch):
    runs = []

    async def run(session, episode, output_path):
        runs.append((session.config, episode, output_path))
        return SessionResult(output_paths=[output_path])

    monkeypatch.setattr(EpisodeSession, "run", run)
    return runs


def _subtitle_option(tmp_path, lang, title=""):
    path = tmp_path / f"{lang}.ass"
    path.write_text("[Script Info]\n", encoding="utf-8")
    return f"{path}:{lang}:{title}" if title else f"{path}:{lang}"


def _run_main(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["epdl", *args])
    with pytest.raises(SystemExit) as exc_info:
        main()
    return exc_info.value.code


class TestExitCodes:
    def test_missing_ffmpeg_fails(self, monkeypatch, tmp_path, capsys, ffmpeg_checks, recorded_runs):
        ffmpeg_checks["result"] = False
        code = _run_main(monkeypatch, "download", URL, "-o", str(tmp_path / "ep.mkv"))

        assert code == 1
        assert "could not be started" in capsys.readouterr().out
        assert recorded_runs == []

    def test_usage_error(self, monkeypatch, capsys):
        assert _run_main(monkeypatch, "download") == 2
        assert "Missing argument" in capsys.readouterr().err

    def test_version_succeeds(self, monkeypatch, capsys):
        assert _run_main(monkeypatch, "--version") == 0
        assert "epdl" in capsys.readouterr().out

    def test_diagnose_reports_missing_ffmpeg(self, ffmpeg_checks):
        ffmpeg_checks["result"] = False
        result = runner.invoke(cli_app.app, ["diagnose"])
        assert result.exit_code == 1
        assert "Some issues were found" in result.output


class TestErrorOutput:
    def test_error_is_rendered_as_panel(self, monkeypatch, tmp_path, capsys, ffmpeg_checks):
        async def failing_run(session, episode, output_path):
            raise ManifestParseError("Playlist contains no media segments.")

        monkeypatch.setattr(EpisodeSession, "run", failing_run)
        code = _run_main(
            monkeypatch, "download", URL, "-o", str(tmp_path / "ep.mkv"), "--no-progress-bar"
        )

        out = capsys.readouterr().out
        assert code == 1
        assert "An Error Occurred" in out
        assert "ManifestParseError: Playlist contains no media segments." in out
        assert "Suggestions" in out
        assert "rich.panel.Panel" not in out

    def test_user_error_is_one_line(self, monkeypatch, tmp_path, capsys, ffmpeg_checks):
        code = _run_main(monkeypatch, "download", URL, "--sub", str(tmp_path / "nolang.ass"))

        assert code == 1
        assert "Error: Invalid subtitle" in capsys.readouterr().out


class TestDownloadOptions:
    def test_list_subs_stops_before_download(self, tmp_path, ffmpeg_checks, recorded_runs):
        result = runner.invoke(
            cli_app.app,
            [
                "download",
                URL,
                "--sub", _subtitle_option(tmp_path, "enUS", "English"),
                "--sub", _subtitle_option(tmp_path, "deDE", "Deutsch"),
                "--default-sub", "deDE",
                "--list-subs",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Available Subtitles" in result.output
        for text in ("English", "enUS", "Deutsch", "deDE", "deu"):
            assert text in result.output
        assert "✓" in result.output
        assert recorded_runs == []
        assert ffmpeg_checks["calls"] == 0

    def test_list_subs_without_subtitles(self, ffmpeg_checks, recorded_runs):
        result = runner.invoke(cli_app.app, ["download", URL, "--list-subs"])
        assert result.exit_code == 0
        assert "No subtitles available" in result.output

    def test_hardsub_reaches_session(self, tmp_path, ffmpeg_checks, recorded_runs):
        output = tmp_path / "ep.mkv"
        result = runner.invoke(
            cli_app.app,
            [
                "download",
                URL,
                "--sub", _subtitle_option(tmp_path, "enUS"),
                "--sub", _subtitle_option(tmp_path, "deDE"),
                "--default-sub", "deDE",
                "--hardsub",
                "-o", str(output),
                "--no-progress-bar",
            ],
        )

        assert result.exit_code == 0, result.output
        config, episode, output_path = recorded_runs[0]
        assert config.hardsub is True
        assert episode.hardsub_language == "deDE"
        assert output_path == output

    def test_options_override_config_file(self, tmp_path, ffmpeg_checks, recorded_runs):
        cli_app.CONFIG_FILE.write_text("[DEFAULT]\nconnections = 3\n", encoding="utf-8")
        result = runner.invoke(
            cli_app.app,
            [
                "download",
                URL,
                "-c", "9",
                "--attach-fonts",
                "--font-base-url", "https://fonts.example.com/",
                "-o", str(tmp_path / "ep.mkv"),
                "--no-progress-bar",
            ],
        )

        assert result.exit_code == 0, result.output
        config = recorded_runs[0][0]
        assert config.connections == 9
        assert config.attach_fonts is True
        assert config.font_base_url == "https://fonts.example.com/"
