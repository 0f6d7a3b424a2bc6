"""
Raw TMDb records → canonical catalog rows.

Canonical rows are plain dicts with the camelCase keys of the persisted catalog.
Empty list fields are omitted (not emitted as `[]`) so the incremental merge can
tell "no data yet" apart from a curated empty value.
"""

from __future__ import annotations

from typing import Any

from trek_catalog.ingestion.resolver import (
    MOVIES_BY_ID,
    SERIES_BY_CODE,
    MovieTarget,
    SeriesTarget,
    generate_season_id,
)
from trek_catalog.models.raw import RawEpisodeRecord, RawMovieRecord, RawSeasonRecord, RawSeriesRecord

EPISODE_STARDATE_PLACEHOLDER = "Stardate TBD"
ITEM_STARDATE_PLACEHOLDER = "None"
YEAR_PLACEHOLDER = "TBD"

# Discovery jumps to the 32nd century from season 3.
DISCOVERY_FAR_FUTURE_START_YEAR = 3188


def _set_if_present(row: dict[str, Any], key: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, (list, tuple)):
        if not value:
            return
        value = list(value)
    row[key] = value


def _credit_labels(people: tuple[tuple[str, str | None], ...]) -> list[str]:
    return [f"{name} as {character}" if character else name for name, character in people]


def season_year(series_code: str, season: int, start_year: int | None) -> str:
    if series_code == "dis" and season > 2:
        return str(DISCOVERY_FAR_FUTURE_START_YEAR + season - 3)
    if start_year is None:
        return YEAR_PLACEHOLDER
    return str(start_year + season - 1)


def season_stardate_range(season: int, episode_count: int) -> str:
    if episode_count <= 0:
        return ITEM_STARDATE_PLACEHOLDER
    return f"~{season}.1-{season}.{episode_count}"


def normalize_episode(raw: RawEpisodeRecord) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": raw.canonical_id,
        "title": raw.title or "",
        "season": raw.season_number,
        "episode": raw.episode_number,
        "airDate": raw.air_date or "",
        "stardate": EPISODE_STARDATE_PLACEHOLDER,
    }
    _set_if_present(row, "synopsis", raw.overview)
    _set_if_present(row, "guestStars", _credit_labels(raw.guest_stars))
    _set_if_present(row, "director", raw.directors)
    _set_if_present(row, "writer", raw.writers)
    _set_if_present(row, "runtime", raw.runtime)
    _set_if_present(row, "productionCode", raw.production_code)
    _set_if_present(row, "tmdbId", raw.tmdb_episode_id)
    return row


def normalize_season(
    raw: RawSeasonRecord,
    *,
    series_title: str,
    series_code: str,
    start_year: int | None = None,
) -> dict[str, Any]:
    """
    One season item with its episodes nested under `episodeData`.

    The stardate range uses the number of episodes actually enumerated, which can
    be lower than the provider's advertised count when episodes were skipped.
    """

    episodes = [normalize_episode(e) for e in raw.episodes]
    row: dict[str, Any] = {
        "id": generate_season_id(series_code, raw.season_number),
        "title": f"{series_title} Season {raw.season_number}",
        "type": "series",
        "year": season_year(series_code, raw.season_number, start_year),
        "stardate": season_stardate_range(raw.season_number, len(episodes)),
        "episodes": len(episodes),
    }
    _set_if_present(row, "episodeData", episodes)
    _set_if_present(row, "tmdbId", raw.tmdb_season_id)
    return row


def normalize_series(raw: RawSeriesRecord, target: SeriesTarget | None = None) -> list[dict[str, Any]]:
    target = target or SERIES_BY_CODE.get(raw.series_code)
    title = target.title if target is not None else raw.title
    start_year = target.start_year if target is not None else None
    return [
        normalize_season(season, series_title=title, series_code=raw.series_code, start_year=start_year)
        for season in raw.seasons
    ]


def normalize_movie(raw: RawMovieRecord, target: MovieTarget | None = None) -> dict[str, Any]:
    target = target or MOVIES_BY_ID.get(raw.movie_id)
    row: dict[str, Any] = {
        "id": raw.movie_id,
        "title": raw.title or (target.title if target else raw.movie_id),
        "type": "movie",
        "year": (target.in_universe_year if target else None) or YEAR_PLACEHOLDER,
        "stardate": (target.stardate if target else None) or ITEM_STARDATE_PLACEHOLDER,
    }
    _set_if_present(row, "synopsis", raw.overview)
    _set_if_present(row, "director", raw.directors)
    _set_if_present(row, "writer", raw.writers)
    _set_if_present(row, "cast", _credit_labels(raw.cast))
    _set_if_present(row, "runtime", raw.runtime)
    _set_if_present(row, "releaseDate", raw.release_date)
    _set_if_present(row, "tmdbId", raw.tmdb_id)
    return row


def normalize_catalog_items(
    series: list[RawSeriesRecord],
    movies: list[RawMovieRecord],
) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for raw_series in series:
        items.extend(normalize_series(raw_series))
    items.extend(normalize_movie(movie) for movie in movies)
    return items
