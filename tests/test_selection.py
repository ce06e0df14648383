import pytest

from epdl.core.selection import parse_resolution, pick_resolution, plan_subtitles, write_subtitles
from epdl.exceptions import UserInputError
from epdl.models.config import SessionConfig
from epdl.providers.base import Episode, SubtitleHandle
from epdl.providers.direct import DirectStreamEpisode, LocalSubtitle, iso_language


def _subs(tmp_path, *langs):
    subs = []
    for lang in langs:
        path = tmp_path / f"src-{lang}.ass"
        path.write_text(f"[Script Info]\nTitle: {lang}\n", encoding="utf-8")
        subs.append(LocalSubtitle(path, lang))
    return subs


class TestResolution:
    @pytest.mark.parametrize("value, expected", [("1080p", 1080), ("720", 720), (480, 480)])
    def test_parse(self, value, expected):
        assert parse_resolution(value) == expected

    def test_parse_invalid(self):
        with pytest.raises(UserInputError):
            parse_resolution("hd")

    def test_exact_match(self):
        assert pick_resolution([360, 720, 1080], "720p") == 720

    def test_falls_back_to_next_lower(self):
        assert pick_resolution([360, 480, 1080], "720p") == 480

    def test_nothing_low_enough(self):
        with pytest.raises(UserInputError, match="Available: 720p, 1080p"):
            pick_resolution([1080, 720], "480p")


class TestPlanSubtitles:
    def test_all_tracks_with_provider_default(self, tmp_path):
        subs = _subs(tmp_path, "enUS", "deDE")
        plan = plan_subtitles(SessionConfig(), subs, "deDE")
        assert plan.languages == ["enUS", "deDE"]
        assert plan.default == "deDE"

    def test_first_requested_language_is_default(self, tmp_path):
        plan = plan_subtitles(SessionConfig(sub_lang=["frFR", "enUS"]), _subs(tmp_path, "enUS"), "enUS")
        assert plan.languages == ["frFR", "enUS"]
        assert plan.default == "frFR"

    def test_no_subtitles(self):
        plan = plan_subtitles(SessionConfig(), [], None)
        assert plan.languages == []
        assert plan.default == "none"

    def test_hardsub(self, tmp_path):
        config = SessionConfig(hardsub=True, default_sub="deDE")
        plan = plan_subtitles(config, _subs(tmp_path, "enUS", "deDE"), "enUS")
        assert plan.hardsub_language == "deDE"
        assert plan.languages == []


class TestWriteSubtitles:
    @pytest.mark.asyncio
    async def test_one_default_track(self, tmp_path):
        subs = _subs(tmp_path, "enUS", "deDE")
        tracks = await write_subtitles(subs, tmp_path / "SubData", ["enUS", "deDE", "esES"], "deDE")

        assert [t.lang_code for t in tracks] == ["enUS", "deDE"]
        assert [t.default for t in tracks] == [False, True]
        assert tracks[1].language == "deu"
        assert (tmp_path / "SubData" / "deDE.ass").read_text(encoding="utf-8").endswith("deDE\n")

    @pytest.mark.asyncio
    async def test_none_default_flags_nothing(self, tmp_path):
        tracks = await write_subtitles(_subs(tmp_path, "enUS"), tmp_path / "SubData", ["enUS"], "none")
        assert [t.default for t in tracks] == [False]

    @pytest.mark.asyncio
    async def test_unavailable_default(self, tmp_path):
        with pytest.raises(UserInputError, match="jaJP"):
            await write_subtitles(_subs(tmp_path, "enUS"), tmp_path / "SubData", ["enUS"], "jaJP")


class TestLocalSubtitle:
    def test_from_option(self):
        sub = LocalSubtitle.from_option("subs/ep1.ass:deDE:Deutsch [CR]")
        assert str(sub.path) == "subs/ep1.ass"
        assert sub.language == "deDE"
        assert sub.title == "Deutsch [CR]"
        assert sub.iso_code == "deu"

    def test_from_option_windows_drive(self):
        sub = LocalSubtitle.from_option("C:\\subs\\ep1.ass:enUS")
        assert sub.language == "enUS"
        assert sub.title == "enUS"

    def test_from_option_without_language(self):
        with pytest.raises(UserInputError, match="FILE:LANG"):
            LocalSubtitle.from_option("ep1.ass")

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(UserInputError, match="does not exist"):
            await LocalSubtitle(tmp_path / "nope.ass", "enUS").get_data()

    @pytest.mark.parametrize("code, expected", [("ptBR", "por"), ("JPN", "jpn"), ("xx", "und")])
    def test_iso_language(self, code, expected):
        assert iso_language(code) == expected


def test_direct_episode_satisfies_protocols(tmp_path):
    episode = DirectStreamEpisode("https://cdn.example.com/ep.m3u8", subtitles=_subs(tmp_path, "enUS"))
    assert isinstance(episode, Episode)
    assert isinstance(episode.subtitles[0], SubtitleHandle)
