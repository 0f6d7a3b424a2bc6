from __future__ import annotations

import pytest

from trek_catalog.ingestion.issues import IssueCategory, IssueLog


def _episode_payload(season: int, episode: int, *, name: str | None = "Ep", air_date: str | None = "1966-09-08") -> dict:
    return {
        "id": season * 1000 + episode,
        "episode_number": episode,
        "name": f"{name} {season}x{episode}" if name else "",
        "air_date": air_date,
        "overview": "Overview.",
        "runtime": 50,
        "crew": [
            {"job": "Director", "name": "Marc Daniels"},
            {"job": "Writer", "name": "Gene Roddenberry"},
        ],
        "guest_stars": [{"name": "Mark Lenard", "character": "Sarek", "order": 0}],
    }


def _install_fakes(monkeypatch: pytest.MonkeyPatch, mod, *, seasons: dict[int, list[int]], broken: set = frozenset(), incomplete: set = frozenset()) -> list:
    calls: list = []

    monkeypatch.setattr(
        mod,
        "fetch_tv_details",
        lambda tv_id, **kwargs: {
            "id": tv_id,
            "name": "Star Trek",
            "first_air_date": "1966-09-08",
            "seasons": [{"season_number": 0}] + [{"season_number": n} for n in seasons],
        },
    )

    def fake_season(tv_id: int, season_number: int, **kwargs) -> dict:
        calls.append(("season", season_number))
        if ("season", season_number) in broken:
            raise RuntimeError("season down")
        return {"id": season_number, "name": f"Season {season_number}", "episodes": [{"episode_number": n} for n in seasons[season_number]]}

    def fake_episode(tv_id: int, season_number: int, episode_number: int, **kwargs) -> dict:
        calls.append(("episode", season_number, episode_number, tuple(kwargs.get("append_to_response") or ())))
        if (season_number, episode_number) in broken:
            raise RuntimeError("episode down")
        if (season_number, episode_number) in incomplete:
            return _episode_payload(season_number, episode_number, air_date=None)
        return _episode_payload(season_number, episode_number)

    monkeypatch.setattr(mod, "fetch_tv_season_details", fake_season)
    monkeypatch.setattr(mod, "fetch_tv_episode_details", fake_episode)
    return calls


def test_enumerate_series_walks_seasons_and_skips_specials(monkeypatch: pytest.MonkeyPatch) -> None:
    from trek_catalog.ingestion import enumerator as mod
    from trek_catalog.ingestion.resolver import SERIES_BY_CODE

    calls = _install_fakes(monkeypatch, mod, seasons={1: [1, 2], 2: [1]})
    result = mod.EnumerationResult()

    series = mod.enumerate_series(SERIES_BY_CODE["tos"], 253, concurrency=2, result=result)

    assert [s.season_number for s in series.seasons] == [1, 2]
    assert [e.canonical_id for e in series.seasons[0].episodes] == ["tos_s1_e01", "tos_s1_e02"]
    assert series.seasons[0].episodes[0].directors == ("Marc Daniels",)
    assert series.seasons[0].episodes[0].guest_stars == (("Mark Lenard", "Sarek"),)
    assert ("season", 0) not in calls
    assert all(c[3] == ("credits",) for c in calls if c[0] == "episode")
    assert result.series == [series]
    assert result.episode_count == 3


def test_enumerate_series_season_filter(monkeypatch: pytest.MonkeyPatch) -> None:
    from trek_catalog.ingestion import enumerator as mod
    from trek_catalog.ingestion.resolver import SERIES_BY_CODE

    calls = _install_fakes(monkeypatch, mod, seasons={1: [1], 2: [1, 2, 3]})

    series = mod.enumerate_series(SERIES_BY_CODE["tos"], 253, season_filter=2)

    assert [s.season_number for s in series.seasons] == [2]
    assert {c[1] for c in calls} == {2}


def test_enumerate_series_gate_and_failures_are_not_fatal(monkeypatch: pytest.MonkeyPatch) -> None:
    from trek_catalog.ingestion import enumerator as mod
    from trek_catalog.ingestion.resolver import SERIES_BY_CODE

    _install_fakes(
        monkeypatch,
        mod,
        seasons={1: [1, 2, 3], 2: [1]},
        broken={(1, 2), ("season", 2)},
        incomplete={(1, 3)},
    )
    issues = IssueLog()
    result = mod.EnumerationResult()

    series = mod.enumerate_series(SERIES_BY_CODE["tos"], 253, issues=issues, result=result)

    assert [s.season_number for s in series.seasons] == [1]
    assert [e.episode_number for e in series.seasons[0].episodes] == [1]
    assert series.seasons[0].advertised_episode_count == 3
    assert result.skipped_incomplete == 1
    assert result.failed_requests == 2
    assert issues.count(IssueCategory.NOT_FOUND) == 1
    assert issues.count(IssueCategory.TRANSIENT) == 2
    assert "tos_s1_e03" in issues.report().affected_ids


def test_season_numbers_fall_back_to_number_of_seasons() -> None:
    from trek_catalog.ingestion.enumerator import season_numbers_from_details

    assert season_numbers_from_details({"number_of_seasons": 3}) == [1, 2, 3]
    assert season_numbers_from_details({"number_of_seasons": 3}, season_filter=5) == []


def test_enumerate_movies_uses_details_and_credits(monkeypatch: pytest.MonkeyPatch) -> None:
    from trek_catalog.ingestion import enumerator as mod
    from trek_catalog.ingestion.resolver import MOVIES_BY_ID

    monkeypatch.setattr(
        mod,
        "fetch_movie_details",
        lambda movie_id, **kwargs: {
            "id": movie_id,
            "title": "Star Trek: First Contact" if movie_id == 199 else "Star Trek: Nemesis",
            "release_date": "1996-11-22" if movie_id == 199 else "",
            "runtime": 111,
        },
    )
    monkeypatch.setattr(
        mod,
        "fetch_movie_credits",
        lambda movie_id, **kwargs: {
            "cast": [{"name": "Patrick Stewart", "character": "Jean-Luc Picard", "order": 0}],
            "crew": [{"job": "Director", "name": "Jonathan Frakes"}, {"job": "Screenplay", "name": "Ronald D. Moore"}],
        },
    )
    result = mod.EnumerationResult()

    movies = mod.enumerate_movies([(MOVIES_BY_ID["fc"], 199), (MOVIES_BY_ID["nem"], 201)], result=result)

    assert [m.movie_id for m in movies] == ["fc"]
    assert movies[0].directors == ("Jonathan Frakes",)
    assert movies[0].writers == ("Ronald D. Moore",)
    assert result.skipped_incomplete == 1


def test_enumerate_series_logs_episode_progress(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    import logging

    from trek_catalog.ingestion import enumerator as mod
    from trek_catalog.ingestion.resolver import SERIES_BY_CODE

    _install_fakes(monkeypatch, mod, seasons={1: [1, 2, 3]})
    caplog.set_level(logging.INFO, logger="trek_catalog.ingestion.enumerator")

    mod.enumerate_series(SERIES_BY_CODE["tos"], 253, concurrency=1)

    assert "tos episodes: 3/3 (100%)" in [r.getMessage() for r in caplog.records]
