"""
Reconcile a freshly generated catalog against the previously persisted one.

Both inputs are treated as read-only. Records only in the existing catalog are kept
verbatim, records only in the new catalog are appended, and records present in
both are merged field by field so curated data survives a re-run:

- `notes`: a non-empty new value wins, otherwise the existing value is kept.
- `year`: a genuine existing year (`^[23]\\d{3}`) is kept unless the new value
  carries more than it (a longer range, a different year).
- `stardate`: a real existing stardate is never replaced by a placeholder.
- `plotPoints` / `guestStars` / `connections`: an empty or missing new list keeps
  the existing list.

Items are matched by id across the whole catalog and keep the era the existing
catalog placed them in. A merged season recounts `episodes` (and a synthesized
`~S.1-S.N` stardate range) from its merged `episodeData`. Eras are re-sorted by
canonical order and items and episodes chronologically. Merging the same new
catalog into the result again yields the same result.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from trek_catalog.ingestion.chronology import sort_catalog
from trek_catalog.ingestion.eras import ERA_SORT_ORDER
from trek_catalog.ingestion.normalizer import season_stardate_range
from trek_catalog.ingestion.quality import is_placeholder

logger = logging.getLogger(__name__)

GENUINE_YEAR_RE = re.compile(r"^[23]\d{3}")
PRESERVED_ARRAY_FIELDS = ("plotPoints", "guestStars", "connections")
CHILD_KEYS = ("items", "episodeData")
SYNTHESIZED_RANGE_RE = re.compile(r"^~\d+\.1-\d+\.\d+$")
SEASON_ID_RE = re.compile(r"^[a-z0-9]+_s(\d+)$")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_genuine_year(value: Any) -> bool:
    return value is not None and not isinstance(value, bool) and bool(GENUINE_YEAR_RE.match(str(value).strip()))


def merge_year(existing: Any, new: Any) -> Any:
    if _is_blank(new):
        return existing
    if _is_genuine_year(existing):
        new_s = str(new).strip()
        existing_s = str(existing).strip()
        if not _is_genuine_year(new) or existing_s.startswith(new_s):
            return existing
    return new


def merge_stardate(existing: Any, new: Any) -> Any:
    if _is_blank(new) or is_placeholder(new):
        if not _is_blank(existing) and not is_placeholder(existing):
            return existing
        return new if new is not None else existing
    return new


def merge_notes(existing: Any, new: Any) -> Any:
    return new if new else existing


def merge_array(existing: Any, new: Any) -> Any:
    if not new and existing:
        return existing
    return new if new is not None else existing


def merge_record_fields(existing: Mapping[str, Any], new: Mapping[str, Any]) -> dict[str, Any]:
    """
    Field-level merge of one record present in both catalogs (child lists excluded).

    Fields without a dedicated rule take the new value when present; existing-only
    fields pass through untouched.
    """

    merged = {k: v for k, v in existing.items() if k not in CHILD_KEYS}
    merged.update({k: v for k, v in new.items() if k not in CHILD_KEYS})

    if "notes" in existing or "notes" in new:
        merged["notes"] = merge_notes(existing.get("notes"), new.get("notes"))
    if "year" in existing or "year" in new:
        merged["year"] = merge_year(existing.get("year"), new.get("year"))
    if "stardate" in existing or "stardate" in new:
        merged["stardate"] = merge_stardate(existing.get("stardate"), new.get("stardate"))
    for name in PRESERVED_ARRAY_FIELDS:
        if name in existing or name in new:
            merged[name] = merge_array(existing.get(name), new.get(name))
    return copy.deepcopy(merged)


def _index(rows: Iterable[Mapping[str, Any]]) -> dict[str, Mapping[str, Any]]:
    return {str(r.get("id")): r for r in rows}


def _merge_rows(
    existing_rows: Sequence[Mapping[str, Any]],
    new_rows: Sequence[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    new_by_id = _index(new_rows)
    existing_ids = {str(r.get("id")) for r in existing_rows}
    out: list[dict[str, Any]] = []
    for existing in existing_rows:
        new = new_by_id.get(str(existing.get("id")))
        out.append(merge_record_fields(existing, new) if new is not None else copy.deepcopy(dict(existing)))
    for new in new_rows:
        if str(new.get("id")) not in existing_ids:
            out.append(copy.deepcopy(dict(new)))
    return out


def _refresh_episode_summary(item: dict[str, Any]) -> None:
    """Keep a season's `episodes` count and synthesized stardate range in step with `episodeData`."""

    episodes = item.get("episodeData")
    if not isinstance(episodes, list):
        return
    item["episodes"] = len(episodes)
    stardate = item.get("stardate")
    if _is_blank(stardate) or is_placeholder(stardate) or SYNTHESIZED_RANGE_RE.match(str(stardate)):
        season = item.get("season")
        if not isinstance(season, int) or isinstance(season, bool):
            match = SEASON_ID_RE.match(str(item.get("id") or ""))
            season = int(match.group(1)) if match else None
        if season is not None:
            item["stardate"] = season_stardate_range(season, len(episodes))


def _merge_item(existing: Mapping[str, Any], new: Mapping[str, Any]) -> dict[str, Any]:
    merged = merge_record_fields(existing, new)
    existing_episodes = existing.get("episodeData")
    new_episodes = new.get("episodeData")
    if isinstance(existing_episodes, list) or isinstance(new_episodes, list):
        merged["episodeData"] = _merge_rows(existing_episodes or [], new_episodes or [])
        _refresh_episode_summary(merged)
    return merged


def era_sort_key(era: Mapping[str, Any]) -> int:
    return ERA_SORT_ORDER.get(str(era.get("id")), len(ERA_SORT_ORDER) + 1)


def merge_incremental(
    existing: Sequence[Mapping[str, Any]],
    new: Sequence[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """
    Merge `new` into `existing` and return a sorted catalog.

    Items are matched by id across the whole catalog. A matched item stays in the
    era the existing catalog holds it in, so a curated era placement survives a
    re-run and no id ends up in two eras.
    """

    new_items = {str(item.get("id")): item for era in new for item in era.get("items") or []}
    existing_item_ids = {str(item.get("id")) for era in existing for item in era.get("items") or []}
    new_eras = _index(new)
    existing_era_ids = {str(era.get("id")) for era in existing}

    def new_only_items(era: Mapping[str, Any] | None) -> list[dict[str, Any]]:
        if era is None:
            return []
        return [copy.deepcopy(dict(i)) for i in era.get("items") or [] if str(i.get("id")) not in existing_item_ids]

    merged: list[dict[str, Any]] = []
    for era in existing:
        new_era = new_eras.get(str(era.get("id")))
        if new_era is not None:
            row = merge_record_fields(era, new_era)
        else:
            row = copy.deepcopy({k: v for k, v in era.items() if k not in CHILD_KEYS})
        items: list[dict[str, Any]] = []
        for item in era.get("items") or []:
            new_item = new_items.get(str(item.get("id")))
            items.append(_merge_item(item, new_item) if new_item is not None else copy.deepcopy(dict(item)))
        row["items"] = items + new_only_items(new_era)
        merged.append(row)

    for era in new:
        if str(era.get("id")) in existing_era_ids:
            continue
        row = copy.deepcopy({k: v for k, v in era.items() if k not in CHILD_KEYS})
        row["items"] = new_only_items(era)
        merged.append(row)

    # Unknown era ids share one key past the end, so they keep their relative order.
    merged.sort(key=era_sort_key)
    logger.info(f"incremental merge: {len(existing)} existing eras + {len(new)} new eras -> {len(merged)}")
    return sort_catalog(merged)


@dataclass(frozen=True)
class RecordChange:
    id: str
    change: str
    parent_id: str | None = None
    fields_changed: tuple[str, ...] = ()


@dataclass(frozen=True)
class DiffReport:
    eras: list[RecordChange] = field(default_factory=list)
    items: list[RecordChange] = field(default_factory=list)
    episodes: list[RecordChange] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.eras or self.items or self.episodes)

    def summary(self) -> dict[str, dict[str, int]]:
        out: dict[str, dict[str, int]] = {}
        for name, changes in (("eras", self.eras), ("items", self.items), ("episodes", self.episodes)):
            counts = {"added": 0, "removed": 0, "modified": 0}
            for change in changes:
                counts[change.change] += 1
            out[name] = counts
        return out

    def summary_line(self) -> str:
        parts = []
        for name, counts in self.summary().items():
            parts.append(f"{name} +{counts['added']} -{counts['removed']} ~{counts['modified']}")
        return "diff: " + ", ".join(parts)


def _changed_fields(old: Mapping[str, Any], new: Mapping[str, Any]) -> tuple[str, ...]:
    keys = (set(old) | set(new)) - set(CHILD_KEYS)
    return tuple(sorted(k for k in keys if old.get(k) != new.get(k)))


def _diff_rows(
    old_rows: Mapping[str, tuple[str | None, Mapping[str, Any]]],
    new_rows: Mapping[str, tuple[str | None, Mapping[str, Any]]],
) -> list[RecordChange]:
    changes: list[RecordChange] = []
    for row_id, (parent, row) in new_rows.items():
        if row_id not in old_rows:
            changes.append(RecordChange(id=row_id, change="added", parent_id=parent))
            continue
        fields_changed = _changed_fields(old_rows[row_id][1], row)
        if fields_changed:
            changes.append(RecordChange(id=row_id, change="modified", parent_id=parent, fields_changed=fields_changed))
    for row_id, (parent, _) in old_rows.items():
        if row_id not in new_rows:
            changes.append(RecordChange(id=row_id, change="removed", parent_id=parent))
    return changes


def _flatten(eras: Sequence[Mapping[str, Any]]) -> tuple[dict, dict, dict]:
    era_rows: dict[str, tuple[str | None, Mapping[str, Any]]] = {}
    item_rows: dict[str, tuple[str | None, Mapping[str, Any]]] = {}
    episode_rows: dict[str, tuple[str | None, Mapping[str, Any]]] = {}
    for era in eras:
        era_id = str(era.get("id"))
        era_rows[era_id] = (None, era)
        for item in era.get("items") or []:
            item_id = str(item.get("id"))
            item_rows[item_id] = (era_id, item)
            for episode in item.get("episodeData") or []:
                episode_rows[str(episode.get("id"))] = (item_id, episode)
    return era_rows, item_rows, episode_rows


def generate_data_diff(existing: Sequence[Mapping[str, Any]], new: Sequence[Mapping[str, Any]]) -> DiffReport:
    """
    Added/removed/modified eras, items and episodes between two snapshots.

    Items and episodes are matched by id across the whole catalog; child lists are
    not part of a record's own field comparison.
    """

    old_eras, old_items, old_episodes = _flatten(existing)
    new_eras, new_items, new_episodes = _flatten(new)
    return DiffReport(
        eras=_diff_rows(old_eras, new_eras),
        items=_diff_rows(old_items, new_items),
        episodes=_diff_rows(old_episodes, new_episodes),
    )
