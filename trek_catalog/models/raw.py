from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DIRECTOR_JOBS = frozenset({"Director"})
WRITER_JOBS = frozenset({"Writer", "Teleplay", "Story", "Screenplay"})


def as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def as_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s or None
    return None


def parse_iso_date(value: Any) -> str | None:
    """Return `YYYY-MM-DD` when `value` is a real calendar date, else None."""

    s = as_str(value)
    if not s or not _ISO_DATE_RE.match(s):
        return None
    try:
        date.fromisoformat(s)
    except ValueError:
        return None
    return s


def _crew_names(crew: Any, jobs: frozenset[str]) -> tuple[str, ...]:
    if not isinstance(crew, list):
        return ()
    names: list[str] = []
    for member in crew:
        if not isinstance(member, Mapping):
            continue
        if member.get("job") not in jobs:
            continue
        name = as_str(member.get("name"))
        if name and name not in names:
            names.append(name)
    return tuple(names)


def _billed_people(people: Any, *, limit: int | None = None) -> tuple[tuple[str, str | None], ...]:
    if not isinstance(people, list):
        return ()
    out: list[tuple[str, str | None]] = []
    ordered = sorted(
        (p for p in people if isinstance(p, Mapping)),
        key=lambda p: as_int(p.get("order")) if as_int(p.get("order")) is not None else 10_000,
    )
    for person in ordered:
        name = as_str(person.get("name"))
        if not name:
            continue
        out.append((name, as_str(person.get("character"))))
        if limit is not None and len(out) >= limit:
            break
    return tuple(out)


@dataclass(frozen=True)
class RawEpisodeRecord:
    """One TMDb episode detail payload, reduced to the fields the catalog uses."""

    canonical_id: str
    tmdb_series_id: int
    season_number: int
    episode_number: int
    title: str | None = None
    air_date: str | None = None
    overview: str | None = None
    runtime: int | None = None
    production_code: str | None = None
    tmdb_episode_id: int | None = None
    directors: tuple[str, ...] = ()
    writers: tuple[str, ...] = ()
    guest_stars: tuple[tuple[str, str | None], ...] = ()

    @property
    def has_basic_data(self) -> bool:
        return bool(self.title) and self.air_date is not None

    @classmethod
    def from_tmdb(
        cls,
        payload: Mapping[str, Any],
        *,
        canonical_id: str,
        tmdb_series_id: int,
        season_number: int,
        episode_number: int,
    ) -> RawEpisodeRecord:
        credits = payload.get("credits") if isinstance(payload.get("credits"), Mapping) else {}
        crew = payload.get("crew") or credits.get("crew")
        guests = payload.get("guest_stars") or credits.get("guest_stars")
        return cls(
            canonical_id=canonical_id,
            tmdb_series_id=tmdb_series_id,
            season_number=season_number,
            episode_number=as_int(payload.get("episode_number")) or episode_number,
            title=as_str(payload.get("name")),
            air_date=parse_iso_date(payload.get("air_date")),
            overview=as_str(payload.get("overview")),
            runtime=as_int(payload.get("runtime")),
            production_code=as_str(payload.get("production_code")),
            tmdb_episode_id=as_int(payload.get("id")),
            directors=_crew_names(crew, DIRECTOR_JOBS),
            writers=_crew_names(crew, WRITER_JOBS),
            guest_stars=_billed_people(guests),
        )


@dataclass(frozen=True)
class RawSeasonRecord:
    tmdb_series_id: int
    season_number: int
    title: str | None = None
    air_date: str | None = None
    overview: str | None = None
    tmdb_season_id: int | None = None
    advertised_episode_count: int = 0
    episodes: tuple[RawEpisodeRecord, ...] = ()


@dataclass(frozen=True)
class RawSeriesRecord:
    tmdb_id: int
    title: str
    series_code: str
    first_air_date: str | None = None
    seasons: tuple[RawSeasonRecord, ...] = ()


@dataclass(frozen=True)
class RawMovieRecord:
    tmdb_id: int
    movie_id: str
    title: str | None = None
    release_date: str | None = None
    overview: str | None = None
    tagline: str | None = None
    runtime: int | None = None
    directors: tuple[str, ...] = ()
    writers: tuple[str, ...] = ()
    cast: tuple[tuple[str, str | None], ...] = field(default_factory=tuple)

    @property
    def has_basic_data(self) -> bool:
        return bool(self.title) and self.release_date is not None

    @classmethod
    def from_tmdb(
        cls,
        details: Mapping[str, Any],
        credits: Mapping[str, Any] | None,
        *,
        tmdb_id: int,
        movie_id: str,
        cast_limit: int = 10,
    ) -> RawMovieRecord:
        credits = credits or {}
        return cls(
            tmdb_id=tmdb_id,
            movie_id=movie_id,
            title=as_str(details.get("title")),
            release_date=parse_iso_date(details.get("release_date")),
            overview=as_str(details.get("overview")),
            tagline=as_str(details.get("tagline")),
            runtime=as_int(details.get("runtime")),
            directors=_crew_names(credits.get("crew"), DIRECTOR_JOBS),
            writers=_crew_names(credits.get("crew"), WRITER_JOBS),
            cast=_billed_people(credits.get("cast"), limit=cast_limit),
        )
