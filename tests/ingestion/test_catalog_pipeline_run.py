from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from trek_catalog.models.raw import RawEpisodeRecord, RawMovieRecord, RawSeasonRecord, RawSeriesRecord
from trek_catalog.settings import CatalogSettings


def _raw_series(code: str, tmdb_id: int, episodes: int = 2) -> RawSeriesRecord:
    return RawSeriesRecord(
        tmdb_id=tmdb_id,
        title=code,
        series_code=code,
        seasons=(
            RawSeasonRecord(
                tmdb_series_id=tmdb_id,
                season_number=1,
                episodes=tuple(
                    RawEpisodeRecord(
                        canonical_id=f"{code}_s1_e{n:02d}",
                        tmdb_series_id=tmdb_id,
                        season_number=1,
                        episode_number=n,
                        title=f"{code} {n}",
                        air_date=f"2000-01-{n:02d}",
                        overview="Synopsis.",
                    )
                    for n in range(1, episodes + 1)
                ),
            ),
        ),
    )


def _install_tmdb_fakes(monkeypatch: pytest.MonkeyPatch, mod, *, series_codes=("tos", "ent")) -> None:
    from trek_catalog.ingestion.resolver import MOVIES_BY_ID, SERIES_BY_CODE

    monkeypatch.setattr(
        mod,
        "resolve_series_targets",
        lambda targets, **kwargs: [(t, 100 + i) for i, t in enumerate(targets) if t.code in series_codes],
    )
    monkeypatch.setattr(mod, "resolve_movie_targets", lambda targets, **kwargs: [(MOVIES_BY_ID["tmp"], 152)])

    def fake_enumerate_series(target, tmdb_id, *, result, **kwargs):
        series = _raw_series(target.code, tmdb_id)
        result.series.append(series)
        return series

    def fake_enumerate_movies(targets, *, result, **kwargs):
        movies = [
            RawMovieRecord(tmdb_id=tmdb_id, movie_id=t.movie_id, title=t.title, release_date="1979-12-07")
            for t, tmdb_id in targets
        ]
        result.movies.extend(movies)
        return movies

    monkeypatch.setattr(mod, "enumerate_series", fake_enumerate_series)
    monkeypatch.setattr(mod, "enumerate_movies", fake_enumerate_movies)
    assert SERIES_BY_CODE["tos"].code == "tos"


def _settings(tmp_path: Path, **overrides) -> CatalogSettings:
    values = dict(tmdb_bearer_token="token", catalog_path=tmp_path / "catalog.json", concurrency=2)
    values.update(overrides)
    return CatalogSettings(**values)


def test_full_run_walks_states_and_writes_catalog(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    from trek_catalog.ingestion import pipeline as mod

    _install_tmdb_fakes(monkeypatch, mod)
    writer = MagicMock(side_effect=lambda path, eras: path)

    result = mod.CatalogPipeline(_settings(tmp_path), mod.PipelineOptions(mode="full"), writer=writer).run()

    assert result.ok
    assert [s.value for s in result.transitions] == [
        "idle",
        "resolving",
        "enumerating",
        "normalizing",
        "scoring",
        "classifying",
        "sorting",
        "ready",
    ]
    assert [e["id"] for e in result.catalog] == ["enterprise", "tos_era"]
    assert [i["id"] for i in result.catalog[1]["items"]] == ["tos_s1", "tmp"]
    assert result.quality_report is not None and result.quality_report.total_scored == 7
    writer.assert_called_once()
    assert result.written_path == tmp_path / "catalog.json"


def test_duplicate_ids_fail_the_run_before_writing(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    from trek_catalog.ingestion import pipeline as mod
    from trek_catalog.ingestion.issues import DuplicateIdError

    _install_tmdb_fakes(monkeypatch, mod, series_codes=("tos",))
    monkeypatch.setattr(
        mod,
        "normalize_catalog_items",
        lambda series, movies: [{"id": "tos_s1", "type": "series"}, {"id": "tos_s1", "type": "series"}],
    )
    writer = MagicMock()

    result = mod.CatalogPipeline(_settings(tmp_path), mod.PipelineOptions(mode="full"), writer=writer).run()

    assert result.state is mod.RunState.FAILED
    assert result.transitions[-2:] == [mod.RunState.SCORING, mod.RunState.FAILED]
    assert isinstance(result.fatal_error, DuplicateIdError)
    assert result.fatal_error.duplicate_ids == ["tos_s1"]
    writer.assert_not_called()


def test_dry_run_and_missing_token_never_write(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    from trek_catalog.ingestion import pipeline as mod

    resolve = MagicMock()
    monkeypatch.setattr(mod, "resolve_series_targets", resolve)
    writer = MagicMock()

    result = mod.CatalogPipeline(
        _settings(tmp_path, tmdb_bearer_token=None),
        mod.PipelineOptions(mode="full", dry_run=True),
        writer=writer,
    ).run()

    assert result.ok
    assert result.catalog == []
    resolve.assert_not_called()
    writer.assert_not_called()


def test_auto_mode_reconciles_with_existing_catalog(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    from trek_catalog.ingestion import pipeline as mod

    _install_tmdb_fakes(monkeypatch, mod, series_codes=("tos",))
    existing = [
        {
            "id": "tos_era",
            "title": "Original Series Era",
            "items": [
                {
                    "id": "tos_s1",
                    "title": "Season 1",
                    "type": "series",
                    "year": "2266",
                    "stardate": "~1.1-1.2",
                    "notes": "Curated",
                    "episodeData": [{"id": "tos_s1_e01", "title": "The Man Trap", "stardate": "1513.1"}],
                }
            ],
        },
        {"id": "mirror_universe", "title": "Mirror", "items": [{"id": "mirror_s1", "title": "Mirror"}]},
    ]
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(existing), encoding="utf-8")
    written: dict = {}

    def writer(target: Path, eras):
        written["eras"] = eras
        return target

    result = mod.CatalogPipeline(
        _settings(tmp_path),
        mod.PipelineOptions(mode="auto", include_movies=False),
        writer=writer,
    ).run()

    assert result.ok
    assert result.incremental
    assert mod.RunState.RECONCILING_INCREMENTAL in result.transitions
    assert [e["id"] for e in written["eras"]] == ["tos_era", "mirror_universe"]
    season = written["eras"][0]["items"][0]
    assert season["notes"] == "Curated"
    assert season["episodeData"][0]["stardate"] == "1513.1"
    assert [e["id"] for e in season["episodeData"]] == ["tos_s1_e01", "tos_s1_e02"]
    assert result.diff_report is not None
    assert result.diff_report.summary()["episodes"]["added"] == 1


def test_extra_sources_engage_priority_merge(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    from trek_catalog.ingestion import pipeline as mod

    _install_tmdb_fakes(monkeypatch, mod, series_codes=("tos",))
    memory_alpha = [
        {
            "id": "tos_era",
            "title": "Original Series Era",
            "items": [{"id": "tos_s1", "title": "TOS S1", "notes": "From Memory Alpha"}],
        }
    ]

    result = mod.CatalogPipeline(
        _settings(tmp_path),
        mod.PipelineOptions(mode="full", include_movies=False, dry_run=True),
        extra_sources={"memory-alpha": memory_alpha},
    ).run()

    assert mod.RunState.MERGING in result.transitions
    item = result.catalog[0]["items"][0]
    assert item["title"] == "TOS S1"
    assert item["notes"] == "From Memory Alpha"
    assert len(item["episodeData"]) == 2


def test_invalid_options_are_rejected() -> None:
    from trek_catalog.ingestion.pipeline import PipelineOptions

    with pytest.raises(ValueError):
        PipelineOptions(mode="sometimes")
    with pytest.raises(ValueError):
        PipelineOptions(season_filter=0)


def test_extra_source_may_not_replace_live_tmdb_catalog(tmp_path: Path) -> None:
    from trek_catalog.ingestion.issues import CatalogConfigError
    from trek_catalog.ingestion.pipeline import CatalogPipeline

    with pytest.raises(CatalogConfigError):
        CatalogPipeline(_settings(tmp_path), extra_sources={"tmdb": []})


def test_cache_dir_enables_disk_cache_and_prunes_expired_entries(tmp_path: Path) -> None:
    from trek_catalog.ingestion.pipeline import CatalogPipeline, PipelineOptions
    from trek_catalog.integrations.tmdb.disk_cache import FileResponseCache

    cache_dir = tmp_path / "tmdb-cache"
    stale = FileResponseCache(cache_dir, ttl_seconds=1, clock=lambda: 0.0)
    stale.put("https://api.themoviedb.org/3/tv/253", None, {"id": 253})

    pipeline = CatalogPipeline(
        _settings(tmp_path, tmdb_bearer_token=None, cache_dir=cache_dir, cache_ttl_hours=1.0),
        PipelineOptions(mode="full", dry_run=True),
    )
    assert pipeline.cache.disk is not None
    assert pipeline.cache.disk.ttl_seconds == 3600

    pipeline.run()

    assert len(pipeline.cache.disk) == 0
    assert CatalogPipeline(_settings(tmp_path)).cache.disk is None
