"""
Title → TMDb id resolution and canonical id generation.

Matching is a symmetric containment check on lower-cased names; curated short
codes always take precedence over the alphanumeric fallback.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

import requests

from trek_catalog.ingestion.executor import log_progress, run_bounded
from trek_catalog.ingestion.issues import IssueCategory, IssueLog
from trek_catalog.integrations.tmdb.client import RequestCache, search_movie, search_tv

logger = logging.getLogger(__name__)

DOMAIN_KEYWORD = "star trek"
_PREFIX_RE = re.compile(r"^star trek:?\s*")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

SERIES_CODE_MAP: dict[str, str] = {
    "the original series": "tos",
    "the animated series": "tas",
    "the next generation": "tng",
    "deep space nine": "ds9",
    "voyager": "voy",
    "enterprise": "ent",
    "discovery": "dis",
    "picard": "pic",
    "lower decks": "ld",
    "prodigy": "pro",
    "strange new worlds": "snw",
}


@dataclass(frozen=True)
class SeriesTarget:
    title: str
    code: str
    start_year: int | None = None


@dataclass(frozen=True)
class MovieTarget:
    title: str
    movie_id: str
    release_year: int
    in_universe_year: str | None = None
    stardate: str | None = None


STAR_TREK_SERIES: tuple[SeriesTarget, ...] = (
    SeriesTarget("Star Trek: The Original Series", "tos", 2266),
    SeriesTarget("Star Trek: The Animated Series", "tas", 2269),
    SeriesTarget("Star Trek: The Next Generation", "tng", 2364),
    SeriesTarget("Star Trek: Deep Space Nine", "ds9", 2369),
    SeriesTarget("Star Trek: Voyager", "voy", 2371),
    SeriesTarget("Star Trek: Enterprise", "ent", 2151),
    SeriesTarget("Star Trek: Discovery", "dis", 2256),
    SeriesTarget("Star Trek: Picard", "pic", 2399),
    SeriesTarget("Star Trek: Lower Decks", "ld", 2380),
    SeriesTarget("Star Trek: Prodigy", "pro", 2383),
    SeriesTarget("Star Trek: Strange New Worlds", "snw", 2259),
)

STAR_TREK_MOVIES: tuple[MovieTarget, ...] = (
    MovieTarget("Star Trek: The Motion Picture", "tmp", 1979, "2273", "Stardate 7410.2"),
    MovieTarget("Star Trek II: The Wrath of Khan", "twok", 1982, "2285", "Stardate 8130.3"),
    MovieTarget("Star Trek III: The Search for Spock", "tsfs", 1984, "2285", "Stardate 8210.3"),
    MovieTarget("Star Trek IV: The Voyage Home", "tvh", 1986, "2286", "Stardate 8390.0"),
    MovieTarget("Star Trek V: The Final Frontier", "tff", 1989, "2287", "Stardate 8454.1"),
    MovieTarget("Star Trek VI: The Undiscovered Country", "tuc", 1991, "2293", "Stardate 9521.6"),
    MovieTarget("Star Trek Generations", "gen", 1994, "2371", "Stardate 48632.4"),
    MovieTarget("Star Trek: First Contact", "fc", 1996, "2373", "Stardate 50893.5"),
    MovieTarget("Star Trek: Insurrection", "ins", 1998, "2375", "Stardate 51652.3"),
    MovieTarget("Star Trek: Nemesis", "nem", 2002, "2379", "Stardate 56844.9"),
    MovieTarget("Star Trek", "st2009", 2009, "2258", "Stardate 2258.42"),
    MovieTarget("Star Trek Into Darkness", "stid", 2013, "2259", "Stardate 2259.55"),
    MovieTarget("Star Trek Beyond", "stb", 2016, "2263", "Stardate 2263.2"),
)

MOVIE_ID_MAP: dict[str, str] = {}
for _movie in STAR_TREK_MOVIES:
    MOVIE_ID_MAP[_movie.title.lower()] = _movie.movie_id
    _stripped = _PREFIX_RE.sub("", _movie.title.lower()).strip()
    if _stripped and _stripped not in MOVIE_ID_MAP:
        MOVIE_ID_MAP[_stripped] = _movie.movie_id
# Roman-numeral titles also resolve by subtitle alone.
MOVIE_ID_MAP.update(
    {
        "the wrath of khan": "twok",
        "the search for spock": "tsfs",
        "the voyage home": "tvh",
        "the final frontier": "tff",
        "the undiscovered country": "tuc",
    }
)

SERIES_BY_CODE: dict[str, SeriesTarget] = {s.code: s for s in STAR_TREK_SERIES}
MOVIES_BY_ID: dict[str, MovieTarget] = {m.movie_id: m for m in STAR_TREK_MOVIES}


def strip_domain_prefix(title: str) -> str:
    return _PREFIX_RE.sub("", (title or "").strip().lower()).strip()


def generate_series_code(title: str) -> str:
    stripped = strip_domain_prefix(title)
    mapped = SERIES_CODE_MAP.get(stripped)
    if mapped:
        return mapped
    return _NON_ALNUM_RE.sub("", stripped)[:3]


def generate_movie_id(title: str) -> str:
    lowered = (title or "").strip().lower()
    mapped = MOVIE_ID_MAP.get(lowered) or MOVIE_ID_MAP.get(strip_domain_prefix(lowered))
    if mapped:
        return mapped
    return _NON_ALNUM_RE.sub("", strip_domain_prefix(lowered))[:6]


def generate_episode_id(series_code: str, season: int, episode: int) -> str:
    return f"{series_code}_s{int(season)}_e{int(episode):02d}"


def generate_season_id(series_code: str, season: int) -> str:
    return f"{series_code}_s{int(season)}"


def filter_series_targets(series_filter: str | None) -> list[SeriesTarget]:
    """Targets whose title or short code contains `series_filter` (case-insensitive)."""

    if not series_filter or not series_filter.strip():
        return list(STAR_TREK_SERIES)
    needle = series_filter.strip().lower()
    return [s for s in STAR_TREK_SERIES if needle in s.title.lower() or needle in s.code]


def _name_matches(candidate: str, target_title: str) -> bool:
    name = candidate.strip().lower()
    if not name or DOMAIN_KEYWORD not in name:
        return False
    target = target_title.strip().lower()
    return strip_domain_prefix(target) in name or name in target


def select_series_match(results: Sequence[Mapping[str, Any]], target_title: str) -> Mapping[str, Any] | None:
    """First result (provider order) passing the containment check, or None."""

    for result in results:
        name = result.get("name")
        if isinstance(name, str) and _name_matches(name, target_title):
            return result
    return None


def select_movie_match(
    results: Sequence[Mapping[str, Any]],
    target_title: str,
    *,
    release_year: int | None = None,
) -> Mapping[str, Any] | None:
    for result in results:
        name = result.get("title")
        if not isinstance(name, str) or not _name_matches(name, target_title):
            continue
        release_date = result.get("release_date")
        if release_year is not None and isinstance(release_date, str) and release_date[:4].isdigit():
            if int(release_date[:4]) != release_year:
                continue
        return result
    return None


def _match_id(match: Mapping[str, Any] | None) -> int | None:
    if match is None:
        return None
    value = match.get("id")
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def resolve_series_id(
    title: str,
    *,
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
    issues: IssueLog | None = None,
) -> int | None:
    results = search_tv(title, bearer_token=bearer_token, session=session, cache=cache)
    tmdb_id = _match_id(select_series_match(results, title))
    if tmdb_id is None:
        logger.warning(f"No TMDb match for series {title!r} ({len(results)} candidates)")
        if issues is not None:
            issues.record(
                IssueCategory.NOT_FOUND,
                source="tmdb",
                entity_id=generate_series_code(title),
                message=f"no search match for {title!r}",
            )
    return tmdb_id


def resolve_movie_id(
    target: MovieTarget,
    *,
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
    issues: IssueLog | None = None,
) -> int | None:
    results = search_movie(target.title, year=target.release_year, bearer_token=bearer_token, session=session, cache=cache)
    tmdb_id = _match_id(select_movie_match(results, target.title, release_year=target.release_year))
    if tmdb_id is None:
        logger.warning(f"No TMDb match for movie {target.title!r} ({target.release_year})")
        if issues is not None:
            issues.record(
                IssueCategory.NOT_FOUND,
                source="tmdb",
                entity_id=target.movie_id,
                message=f"no search match for {target.title!r}",
            )
    return tmdb_id


def _resolve_many(
    targets: Sequence[Any],
    resolve_one: Callable[[Any], int | None],
    entity_id: Callable[[Any], str],
    *,
    label: str,
    concurrency: int,
    issues: IssueLog | None,
) -> list[tuple[Any, int]]:
    def on_error(exc: BaseException, index: int) -> None:
        logger.warning(f"TMDb search failed for {entity_id(targets[index])}: {exc}")
        if issues is not None:
            issues.record(IssueCategory.TRANSIENT, source="tmdb", entity_id=entity_id(targets[index]), message=str(exc))

    outcome = run_bounded(
        targets,
        resolve_one,
        concurrency=concurrency,
        on_progress=log_progress(f"resolve {label}", log=logger, level=logging.DEBUG),
        on_error=on_error,
    )
    return [(target, tmdb_id) for target, tmdb_id in zip(targets, outcome.results) if tmdb_id is not None]


def resolve_series_targets(
    targets: Sequence[SeriesTarget],
    *,
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
    concurrency: int = 5,
    issues: IssueLog | None = None,
) -> list[tuple[SeriesTarget, int]]:
    """Resolve every target; unmatched or failed searches are dropped (and recorded)."""

    def resolve_one(target: SeriesTarget) -> int | None:
        return resolve_series_id(target.title, bearer_token=bearer_token, session=session, cache=cache, issues=issues)

    return _resolve_many(
        targets, resolve_one, lambda t: t.code, label="series", concurrency=concurrency, issues=issues
    )


def resolve_movie_targets(
    targets: Sequence[MovieTarget],
    *,
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
    concurrency: int = 5,
    issues: IssueLog | None = None,
) -> list[tuple[MovieTarget, int]]:
    def resolve_one(target: MovieTarget) -> int | None:
        return resolve_movie_id(target, bearer_token=bearer_token, session=session, cache=cache, issues=issues)

    return _resolve_many(
        targets, resolve_one, lambda t: t.movie_id, label="movies", concurrency=concurrency, issues=issues
    )
