"""
Static era taxonomy and item → era classification.

The lookup tables are built from `ERA_DEFINITIONS` at import time; assigning a
code to two eras raises immediately instead of silently picking one.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping

from trek_catalog.ingestion.issues import IssueCategory, IssueLog

logger = logging.getLogger(__name__)


class EraId(str, Enum):
    ENTERPRISE = "enterprise"
    DISCOVERY_SNW = "discovery_snw"
    TOS_ERA = "tos_era"
    TNG_ERA = "tng_era"
    PICARD_ERA = "picard_era"
    FAR_FUTURE = "far_future"
    KELVIN_TIMELINE = "kelvin_timeline"


class SeriesCode(str, Enum):
    TOS = "tos"
    TAS = "tas"
    TNG = "tng"
    DS9 = "ds9"
    VOY = "voy"
    ENT = "ent"
    DIS = "dis"
    PIC = "pic"
    LD = "ld"
    PRO = "pro"
    SNW = "snw"


class MovieCode(str, Enum):
    TMP = "tmp"
    TWOK = "twok"
    TSFS = "tsfs"
    TVH = "tvh"
    TFF = "tff"
    TUC = "tuc"
    GEN = "gen"
    FC = "fc"
    INS = "ins"
    NEM = "nem"
    ST2009 = "st2009"
    STID = "stid"
    STB = "stb"


@dataclass(frozen=True)
class EraDefinition:
    id: EraId
    title: str
    years: str
    stardates: str
    description: str
    sort_order: int
    series: tuple[SeriesCode, ...] = ()
    movies: tuple[MovieCode, ...] = ()

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id.value,
            "title": self.title,
            "years": self.years,
            "stardates": self.stardates,
            "description": self.description,
            "items": [],
        }


# Discovery is split by season and handled by `classify_discovery_season`, so it
# is not listed under any era's `series`.
ERA_DEFINITIONS: tuple[EraDefinition, ...] = (
    EraDefinition(
        EraId.ENTERPRISE,
        "22nd Century - Enterprise Era",
        "2151-2161",
        "Various (Pre-Federation)",
        "Humanity's first steps into deep space aboard the NX-01 Enterprise.",
        1,
        series=(SeriesCode.ENT,),
    ),
    EraDefinition(
        EraId.DISCOVERY_SNW,
        "Mid-23rd Century - Discovery & Strange New Worlds Era",
        "2256-2261",
        "~1207-2259",
        "The Klingon War, the Red Angel and Captain Pike's Enterprise.",
        2,
        series=(SeriesCode.SNW,),
    ),
    EraDefinition(
        EraId.TOS_ERA,
        "Late 23rd Century - Original Series Era",
        "2265-2293",
        "~1312-9521",
        "Kirk, Spock and McCoy's five-year mission and the films that followed.",
        3,
        series=(SeriesCode.TOS, SeriesCode.TAS),
        movies=(MovieCode.TMP, MovieCode.TWOK, MovieCode.TSFS, MovieCode.TVH, MovieCode.TFF, MovieCode.TUC),
    ),
    EraDefinition(
        EraId.TNG_ERA,
        "24th Century - Next Generation Era",
        "2364-2385",
        "41000-62000",
        "The Enterprise-D, Deep Space Nine, Voyager and their successors.",
        4,
        series=(SeriesCode.TNG, SeriesCode.DS9, SeriesCode.VOY, SeriesCode.LD, SeriesCode.PRO),
        movies=(MovieCode.GEN, MovieCode.FC, MovieCode.INS, MovieCode.NEM),
    ),
    EraDefinition(
        EraId.PICARD_ERA,
        "Late 24th Century - Picard Era",
        "2399-2402",
        "76000-79000",
        "Jean-Luc Picard's final missions.",
        5,
        series=(SeriesCode.PIC,),
    ),
    EraDefinition(
        EraId.FAR_FUTURE,
        "32nd Century - Far Future",
        "3188-3191",
        "865000-866000",
        "Discovery after the Burn.",
        6,
    ),
    EraDefinition(
        EraId.KELVIN_TIMELINE,
        "Kelvin Timeline",
        "2233-2263",
        "2233-2263",
        "The alternate reality created by Nero's incursion.",
        7,
        movies=(MovieCode.ST2009, MovieCode.STID, MovieCode.STB),
    ),
)


def _build_tables() -> tuple[dict[EraId, EraDefinition], dict[SeriesCode, EraId], dict[MovieCode, EraId]]:
    by_id: dict[EraId, EraDefinition] = {}
    series_era: dict[SeriesCode, EraId] = {}
    movie_era: dict[MovieCode, EraId] = {}
    for definition in ERA_DEFINITIONS:
        if definition.id in by_id:
            raise ValueError(f"Era {definition.id.value} is defined twice")
        by_id[definition.id] = definition
        for code in definition.series:
            if code in series_era or code is SeriesCode.DIS:
                raise ValueError(f"Series code {code.value} is assigned to more than one era")
            series_era[code] = definition.id
        for movie in definition.movies:
            if movie in movie_era:
                raise ValueError(f"Movie id {movie.value} is assigned to more than one era")
            movie_era[movie] = definition.id
    return by_id, series_era, movie_era


ERAS_BY_ID, SERIES_ERA, MOVIE_ERA = _build_tables()
ERA_SORT_ORDER: dict[str, int] = {d.id.value: d.sort_order for d in ERA_DEFINITIONS}

_SEASON_ID_RE = re.compile(r"^([a-z0-9]+)_s(\d+)$")


def classify_discovery_season(season: int) -> EraId:
    return EraId.DISCOVERY_SNW if season <= 2 else EraId.FAR_FUTURE


def _enum_value(enum_cls: type[Enum], value: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        return None


def classify_item(item: Mapping[str, Any]) -> EraId | None:
    """Era for a season or movie item, or None when its code is not in the table."""

    item_id = str(item.get("id") or "")
    if item.get("type") == "movie":
        movie = _enum_value(MovieCode, item_id)
        return MOVIE_ERA.get(movie) if movie is not None else None

    match = _SEASON_ID_RE.match(item_id)
    if not match:
        return None
    code = _enum_value(SeriesCode, match.group(1))
    if code is None:
        return None
    if code is SeriesCode.DIS:
        return classify_discovery_season(int(match.group(2)))
    return SERIES_ERA.get(code)


def group_items_by_era(
    items: Iterable[Mapping[str, Any]],
    *,
    issues: IssueLog | None = None,
) -> list[dict[str, Any]]:
    """
    Bucket items into era rows ordered by `sort_order`.

    Unclassifiable items are dropped with a warning; empty eras are not emitted.
    """

    buckets: dict[EraId, list[Any]] = {d.id: [] for d in ERA_DEFINITIONS}
    for item in items:
        era_id = classify_item(item)
        if era_id is None:
            logger.warning(f"Dropping unclassified item {item.get('id')!r} ({item.get('title')!r})")
            if issues is not None:
                issues.record(
                    IssueCategory.NOT_FOUND,
                    source="era-classifier",
                    entity_id=str(item.get("id") or ""),
                    message="no era mapping for item code",
                )
            continue
        buckets[era_id].append(item)

    eras: list[dict[str, Any]] = []
    for definition in sorted(ERA_DEFINITIONS, key=lambda d: d.sort_order):
        bucket = buckets[definition.id]
        if not bucket:
            continue
        row = definition.to_row()
        row["items"] = bucket
        eras.append(row)
    return eras
