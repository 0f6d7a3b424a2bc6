"""
Field-level reconciliation when more than one provider describes the same record.

The highest-priority record is the base; lower-priority records only fill keys
that are missing or None on the base. Populated base fields are never replaced.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence


class SourceId(str, Enum):
    MEMORY_ALPHA = "memory-alpha"
    TMDB = "tmdb"
    TREKCORE = "trekcore"
    STAPI = "stapi"


SOURCE_PRIORITY: dict[SourceId, int] = {
    SourceId.MEMORY_ALPHA: 3,
    SourceId.TMDB: 2,
    SourceId.TREKCORE: 1,
    SourceId.STAPI: 1,
}

UNKNOWN_SOURCE_PRIORITY = 0


def source_priority(source: SourceId | str) -> int:
    try:
        return SOURCE_PRIORITY[SourceId(source)]
    except ValueError:
        return UNKNOWN_SOURCE_PRIORITY


@dataclass(frozen=True)
class SourceRecord:
    record: Mapping[str, Any]
    source: str

    @property
    def priority(self) -> int:
        return source_priority(self.source)


def _by_priority(records: Sequence[SourceRecord]) -> list[SourceRecord]:
    # sorted() is stable, so equal priorities keep their input order.
    return sorted(records, key=lambda r: r.priority, reverse=True)


def merge_from_sources(records: Sequence[SourceRecord]) -> dict[str, Any]:
    if not records:
        return {}
    ordered = _by_priority(records)
    merged = copy.deepcopy(dict(ordered[0].record))
    for other in ordered[1:]:
        for key, value in other.record.items():
            if merged.get(key) is None and value is not None:
                merged[key] = copy.deepcopy(value)
    return merged


def resolve_conflict(values: Sequence[tuple[Any, str]]) -> Any:
    """Value from the highest-priority source that supplied a non-None value."""

    candidates = [SourceRecord(record={"value": v}, source=s) for v, s in values if v is not None]
    if not candidates:
        return None
    return _by_priority(candidates)[0].record["value"]


def _merge_keyed(
    groups: Sequence[tuple[Sequence[Mapping[str, Any]], str]],
    *,
    nested: str | None = None,
    nested_child: str | None = None,
) -> list[dict[str, Any]]:
    order: list[str] = []
    by_id: dict[str, list[SourceRecord]] = {}
    for rows, source in groups:
        for row in rows:
            row_id = str(row.get("id"))
            if row_id not in by_id:
                order.append(row_id)
                by_id[row_id] = []
            by_id[row_id].append(SourceRecord(record=row, source=source))

    merged_rows: list[dict[str, Any]] = []
    for row_id in order:
        contributions = by_id[row_id]
        merged = merge_from_sources(contributions)
        if nested is not None:
            child_groups = [
                (c.record.get(nested) or [], c.source)
                for c in contributions
                if isinstance(c.record.get(nested), list)
            ]
            if child_groups:
                merged[nested] = _merge_keyed(child_groups, nested=nested_child)
        merged_rows.append(merged)
    return merged_rows


def merge_catalog_sources(catalogs: Mapping[str, Sequence[Mapping[str, Any]]]) -> list[dict[str, Any]]:
    """
    Merge whole era catalogs keyed by provider id.

    Eras, items and `episodeData` episodes are matched by `id` and reduced with
    `merge_from_sources`. Row order follows first appearance across providers in
    mapping order; callers re-sort afterwards.
    """

    groups = [(eras, source) for source, eras in catalogs.items()]
    return _merge_keyed(groups, nested="items", nested_child="episodeData")
