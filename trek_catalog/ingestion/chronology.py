from __future__ import annotations

import copy
import math
import re
from datetime import date
from typing import Any, Mapping, Sequence

_YEAR_RE = re.compile(r"^(\d{4})")
_STARDATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"~(\d+)\.(\d+)"),
    re.compile(r"Stardate\s+(\d+)\.(\d+)"),
    re.compile(r"(\d+)\.(\d+)-"),
)


def extract_year_for_sorting(value: Any) -> float:
    """Leading 4-digit year, or +inf for placeholders and anything unparseable."""

    if isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if not isinstance(value, str):
        return math.inf
    match = _YEAR_RE.match(value.strip())
    return float(match.group(1)) if match else math.inf


def extract_stardate_for_sorting(value: Any) -> float:
    """
    Stardate sort value from the first matching shape: `~N.N`, `Stardate N.N`, `N.N-`.

    The value is `whole + fractional / 100`; unmatched strings sort last.
    """

    if not isinstance(value, str):
        return math.inf
    for pattern in _STARDATE_PATTERNS:
        match = pattern.search(value)
        if match:
            return int(match.group(1)) + int(match.group(2)) / 100
    return math.inf


def item_sort_key(item: Mapping[str, Any]) -> tuple[float, float]:
    return extract_year_for_sorting(item.get("year")), extract_stardate_for_sorting(item.get("stardate"))


def _parse_air_date(value: Any) -> date | None:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def _episode_number(episode: Mapping[str, Any]) -> int:
    value = episode.get("episode")
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def compare_episodes(a: Mapping[str, Any], b: Mapping[str, Any]) -> int:
    """
    Air date first; episode number when either date is invalid or both dates are equal.

    This pairwise rule is not transitive once valid and invalid dates mix, so
    `sort_episodes_chronologically` orders by `episode_sort_keys` instead.
    """

    date_a = _parse_air_date(a.get("airDate"))
    date_b = _parse_air_date(b.get("airDate"))
    if date_a is not None and date_b is not None and date_a != date_b:
        return -1 if date_a < date_b else 1
    return _episode_number(a) - _episode_number(b)


def episode_sort_keys(episodes: Sequence[Mapping[str, Any]]) -> list[tuple[date, int]]:
    """
    `(air date, episode number)` per episode.

    An episode without a valid air date borrows the date of the closest lower
    episode number that has one (the lowest dated episode when none precedes it).
    """

    by_number = sorted(range(len(episodes)), key=lambda i: _episode_number(episodes[i]))
    parsed = [_parse_air_date(e.get("airDate")) for e in episodes]
    first_known = next((parsed[i] for i in by_number if parsed[i] is not None), date.min)
    effective: list[date] = [first_known] * len(episodes)
    last = first_known
    for i in by_number:
        if parsed[i] is not None:
            last = parsed[i]
        effective[i] = last
    return [(effective[i], _episode_number(episodes[i])) for i in range(len(episodes))]


def sort_items_chronologically(items: Sequence[Mapping[str, Any]]) -> list[Any]:
    return sorted(items, key=item_sort_key)


def sort_episodes_chronologically(episodes: Sequence[Mapping[str, Any]]) -> list[Any]:
    keys = episode_sort_keys(episodes)
    order = sorted(range(len(episodes)), key=lambda i: keys[i])
    return [episodes[i] for i in order]


def sort_catalog(eras: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Sorted deep copy of `eras`; the input is left untouched. Era order is kept."""

    result = copy.deepcopy([dict(era) for era in eras])
    for era in result:
        items = era.get("items") or []
        for item in items:
            if isinstance(item.get("episodeData"), list):
                item["episodeData"] = sort_episodes_chronologically(item["episodeData"])
        era["items"] = sort_items_chronologically(items)
    return result
