from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import requests

from trek_catalog.ingestion.executor import log_progress, run_bounded
from trek_catalog.ingestion.issues import IssueCategory, IssueLog
from trek_catalog.ingestion.resolver import MovieTarget, SeriesTarget, generate_episode_id
from trek_catalog.integrations.tmdb.client import (
    RequestCache,
    fetch_movie_credits,
    fetch_movie_details,
    fetch_tv_details,
    fetch_tv_episode_details,
    fetch_tv_season_details,
)
from trek_catalog.models.raw import (
    RawEpisodeRecord,
    RawMovieRecord,
    RawSeasonRecord,
    RawSeriesRecord,
    as_int,
    as_str,
    parse_iso_date,
)

logger = logging.getLogger(__name__)


@dataclass
class EnumerationResult:
    series: list[RawSeriesRecord] = field(default_factory=list)
    movies: list[RawMovieRecord] = field(default_factory=list)
    skipped_incomplete: int = 0
    failed_requests: int = 0

    @property
    def episode_count(self) -> int:
        return sum(len(season.episodes) for series in self.series for season in series.seasons)


def season_numbers_from_details(details: Mapping[str, Any], season_filter: int | None = None) -> list[int]:
    """
    Regular season numbers advertised by `/tv/{id}` (season 0 "Specials" excluded).

    Falls back to `number_of_seasons` when the `seasons` summary is missing.
    """

    numbers: list[int] = []
    seasons = details.get("seasons")
    if isinstance(seasons, list):
        for season in seasons:
            if not isinstance(season, Mapping):
                continue
            n = as_int(season.get("season_number"))
            if n is not None and n >= 1 and n not in numbers:
                numbers.append(n)
    if not numbers:
        count = as_int(details.get("number_of_seasons")) or 0
        numbers = list(range(1, count + 1))
    numbers.sort()
    if season_filter is not None:
        return [n for n in numbers if n == season_filter]
    return numbers


def episode_numbers_from_season(season_payload: Mapping[str, Any]) -> list[int]:
    episodes = season_payload.get("episodes")
    if not isinstance(episodes, list):
        return []
    numbers: list[int] = []
    for episode in episodes:
        if not isinstance(episode, Mapping):
            continue
        n = as_int(episode.get("episode_number"))
        if n is not None and n >= 1 and n not in numbers:
            numbers.append(n)
    return sorted(numbers)


def enumerate_series(
    target: SeriesTarget,
    tmdb_id: int,
    *,
    season_filter: int | None = None,
    concurrency: int = 5,
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
    issues: IssueLog | None = None,
    result: EnumerationResult | None = None,
) -> RawSeriesRecord:
    """
    Walk show → season → episode for one resolved series.

    Season details are fetched through the bounded executor, then every episode of
    every season in a second bounded pass. Episodes without a title or a parseable
    air date are counted in `result.skipped_incomplete` and dropped. A failed
    season or episode request is isolated and counted in `result.failed_requests`.
    """

    result = result if result is not None else EnumerationResult()
    issues = issues if issues is not None else IssueLog()
    details = fetch_tv_details(tmdb_id, bearer_token=bearer_token, session=session, cache=cache)
    season_numbers = season_numbers_from_details(details, season_filter)
    if season_filter is not None and not season_numbers:
        logger.warning(f"{target.code}: season {season_filter} not advertised by TMDb")
        issues.record(
            IssueCategory.NOT_FOUND,
            source="tmdb",
            entity_id=f"{target.code}_s{season_filter}",
            message="season not advertised by provider",
        )

    def record_failure(entity_id: str, exc: BaseException) -> None:
        result.failed_requests += 1
        logger.warning(f"TMDb request failed for {entity_id}: {exc}")
        issues.record(IssueCategory.TRANSIENT, source="tmdb", entity_id=entity_id, message=str(exc))

    def fetch_season(season_number: int) -> dict[str, Any]:
        return fetch_tv_season_details(tmdb_id, season_number, bearer_token=bearer_token, session=session, cache=cache)

    seasons_outcome = run_bounded(
        season_numbers,
        fetch_season,
        concurrency=concurrency,
        on_progress=log_progress(f"{target.code} seasons", log=logger, level=logging.DEBUG),
        on_error=lambda exc, i: record_failure(f"{target.code}_s{season_numbers[i]}", exc),
    )

    season_payloads: list[tuple[int, Mapping[str, Any]]] = [
        (n, payload) for n, payload in zip(season_numbers, seasons_outcome.results) if payload is not None
    ]
    episode_keys: list[tuple[int, int]] = [
        (season_number, episode_number)
        for season_number, payload in season_payloads
        for episode_number in episode_numbers_from_season(payload)
    ]
    logger.info(f"{target.code}: {len(season_payloads)} seasons, {len(episode_keys)} episodes to fetch")

    def fetch_episode(key: tuple[int, int]) -> RawEpisodeRecord:
        season_number, episode_number = key
        payload = fetch_tv_episode_details(
            tmdb_id,
            season_number,
            episode_number,
            append_to_response=["credits"],
            bearer_token=bearer_token,
            session=session,
            cache=cache,
        )
        return RawEpisodeRecord.from_tmdb(
            payload,
            canonical_id=generate_episode_id(target.code, season_number, episode_number),
            tmdb_series_id=tmdb_id,
            season_number=season_number,
            episode_number=episode_number,
        )

    episodes_outcome = run_bounded(
        episode_keys,
        fetch_episode,
        concurrency=concurrency,
        on_progress=log_progress(f"{target.code} episodes", log=logger),
        on_error=lambda exc, i: record_failure(generate_episode_id(target.code, *episode_keys[i]), exc),
    )

    by_season: dict[int, list[RawEpisodeRecord]] = {n: [] for n, _ in season_payloads}
    for episode in episodes_outcome.results:
        if episode is None:
            continue
        if not episode.has_basic_data:
            result.skipped_incomplete += 1
            logger.debug(f"skip {episode.canonical_id}: missing title or air date")
            issues.record(
                IssueCategory.NOT_FOUND,
                source="tmdb",
                entity_id=episode.canonical_id,
                message="missing title or air date",
            )
            continue
        by_season[episode.season_number].append(episode)

    seasons: list[RawSeasonRecord] = []
    for season_number, payload in season_payloads:
        seasons.append(
            RawSeasonRecord(
                tmdb_series_id=tmdb_id,
                season_number=season_number,
                title=as_str(payload.get("name")),
                air_date=parse_iso_date(payload.get("air_date")),
                overview=as_str(payload.get("overview")),
                tmdb_season_id=as_int(payload.get("id")),
                advertised_episode_count=len(episode_numbers_from_season(payload)),
                episodes=tuple(sorted(by_season[season_number], key=lambda e: e.episode_number)),
            )
        )

    series = RawSeriesRecord(
        tmdb_id=tmdb_id,
        title=as_str(details.get("name")) or target.title,
        series_code=target.code,
        first_air_date=parse_iso_date(details.get("first_air_date")),
        seasons=tuple(seasons),
    )
    result.series.append(series)
    return series


def enumerate_movies(
    targets: Sequence[tuple[MovieTarget, int]],
    *,
    concurrency: int = 5,
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
    issues: IssueLog | None = None,
    result: EnumerationResult | None = None,
) -> list[RawMovieRecord]:
    result = result if result is not None else EnumerationResult()
    issues = issues if issues is not None else IssueLog()

    def fetch_movie(entry: tuple[MovieTarget, int]) -> RawMovieRecord:
        target, tmdb_id = entry
        details = fetch_movie_details(tmdb_id, bearer_token=bearer_token, session=session, cache=cache)
        credits = fetch_movie_credits(tmdb_id, bearer_token=bearer_token, session=session, cache=cache)
        return RawMovieRecord.from_tmdb(details, credits, tmdb_id=tmdb_id, movie_id=target.movie_id)

    def on_error(exc: BaseException, index: int) -> None:
        movie_id = targets[index][0].movie_id
        result.failed_requests += 1
        logger.warning(f"TMDb request failed for {movie_id}: {exc}")
        issues.record(IssueCategory.TRANSIENT, source="tmdb", entity_id=movie_id, message=str(exc))

    outcome = run_bounded(
        list(targets),
        fetch_movie,
        concurrency=concurrency,
        on_progress=log_progress("movies", log=logger),
        on_error=on_error,
    )

    movies: list[RawMovieRecord] = []
    for movie in outcome.results:
        if movie is None:
            continue
        if not movie.has_basic_data:
            result.skipped_incomplete += 1
            issues.record(
                IssueCategory.NOT_FOUND,
                source="tmdb",
                entity_id=movie.movie_id,
                message="missing title or release date",
            )
            continue
        movies.append(movie)
    result.movies.extend(movies)
    return movies
