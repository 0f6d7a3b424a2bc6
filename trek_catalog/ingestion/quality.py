from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from trek_catalog.ingestion.issues import DuplicateIdError

logger = logging.getLogger(__name__)

PLACEHOLDER_VALUES = frozenset({"None", "TBD", "Stardate TBD", ""})

EPISODE_FIELD_WEIGHTS: dict[str, float] = {
    "title": 1.0,
    "airDate": 1.0,
    "stardate": 1.0,
    "synopsis": 2.0,
    "guestStars": 1.5,
    "director": 1.5,
    "writer": 1.0,
    "plotPoints": 1.0,
    "runtime": 0.5,
}

MOVIE_FIELD_WEIGHTS: dict[str, float] = {
    "title": 1.0,
    "year": 1.0,
    "stardate": 1.0,
    "synopsis": 2.0,
    "director": 1.5,
    "cast": 1.5,
    "writer": 1.0,
    "runtime": 0.5,
}

SEASON_FIELD_WEIGHTS: dict[str, float] = {
    "title": 1.0,
    "year": 1.0,
    "stardate": 1.0,
    "episodes": 1.0,
    "episodeData": 2.0,
    "notes": 1.0,
}

GRADE_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (0.9, "excellent"),
    (0.75, "good"),
    (0.6, "acceptable"),
    (0.4, "poor"),
)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_placeholder(value: Any) -> bool:
    return isinstance(value, str) and value.strip() in PLACEHOLDER_VALUES


def is_populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return not is_placeholder(value)
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value > 0
    return True


def record_kind(record: Mapping[str, Any]) -> str:
    if record.get("type") == "movie":
        return "movie"
    if record.get("type") == "series" or "episodeData" in record:
        return "season"
    return "episode"


def grade_for_score(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "insufficient"


@dataclass(frozen=True)
class ItemQualityScore:
    id: str
    kind: str
    score: float
    grade: str
    missing_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class QualityReport:
    scores: list[ItemQualityScore] = field(default_factory=list)
    average_score: float = 0.0
    above_threshold: int = 0
    below_threshold: int = 0
    items_below_threshold: list[str] = field(default_factory=list)
    duplicate_ids: list[str] = field(default_factory=list)
    min_threshold: float = 0.6
    target_threshold: float = 0.75

    @property
    def total_scored(self) -> int:
        return len(self.scores)

    @property
    def meets_target(self) -> bool:
        return self.total_scored > 0 and self.average_score >= self.target_threshold


def calculate_item_quality_score(record: Mapping[str, Any]) -> ItemQualityScore:
    """Weighted fraction of trackable fields that hold real (non-placeholder) data."""

    kind = record_kind(record)
    weights = {"movie": MOVIE_FIELD_WEIGHTS, "season": SEASON_FIELD_WEIGHTS}.get(kind, EPISODE_FIELD_WEIGHTS)
    total = sum(weights.values())
    earned = 0.0
    missing: list[str] = []
    for name, weight in weights.items():
        value = record.get(name)
        if name == "airDate" and isinstance(value, str) and not _ISO_DATE_RE.match(value.strip()):
            value = None
        if is_populated(value):
            earned += weight
        else:
            missing.append(name)
    score = round(earned / total, 4) if total else 0.0
    return ItemQualityScore(
        id=str(record.get("id") or ""),
        kind=kind,
        score=score,
        grade=grade_for_score(score),
        missing_fields=tuple(missing),
    )


def _iter_records(items: Iterable[Mapping[str, Any]]) -> Iterable[Mapping[str, Any]]:
    for item in items:
        yield item
        episodes = item.get("episodeData")
        if isinstance(episodes, list):
            for episode in episodes:
                if isinstance(episode, Mapping):
                    yield episode


def find_duplicate_ids(items: Iterable[Mapping[str, Any]]) -> list[str]:
    counts = Counter(str(r.get("id")) for r in _iter_records(items) if r.get("id") is not None)
    return sorted(i for i, n in counts.items() if n > 1)


def assert_unique_ids(items: Iterable[Mapping[str, Any]]) -> None:
    """Raise `DuplicateIdError` when any item or nested episode id repeats."""

    duplicates = find_duplicate_ids(items)
    if duplicates:
        raise DuplicateIdError(duplicates)


def score_catalog(
    items: Sequence[Mapping[str, Any]],
    *,
    min_threshold: float = 0.6,
    target_threshold: float = 0.75,
) -> QualityReport:
    """
    Score every item and every nested episode.

    Records below `min_threshold` are listed, never removed. Duplicate ids are
    reported here; raising on them is `assert_unique_ids`'s job.
    """

    scores = [calculate_item_quality_score(r) for r in _iter_records(items)]
    below = [s.id for s in scores if s.score < min_threshold]
    average = round(sum(s.score for s in scores) / len(scores), 4) if scores else 0.0
    report = QualityReport(
        scores=scores,
        average_score=average,
        above_threshold=len(scores) - len(below),
        below_threshold=len(below),
        items_below_threshold=below,
        duplicate_ids=find_duplicate_ids(items),
        min_threshold=min_threshold,
        target_threshold=target_threshold,
    )
    if below:
        logger.warning(f"{len(below)} of {len(scores)} records scored below {min_threshold}")
    return report


def _leading_year(value: Any) -> int | None:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        match = re.match(r"^(\d{4})", value.strip())
        if match:
            return int(match.group(1))
    return None


def validate_chronology(eras: Sequence[Mapping[str, Any]]) -> list[str]:
    """
    Ordering warnings for an already sorted catalog.

    Checks item years within each era and episode air dates within each season.
    """

    warnings: list[str] = []
    for era in eras:
        previous: tuple[str, int] | None = None
        for item in era.get("items") or []:
            year = _leading_year(item.get("year"))
            if year is not None:
                if previous is not None and year < previous[1]:
                    warnings.append(
                        f"{era.get('id')}: {item.get('id')} ({year}) is ordered after {previous[0]} ({previous[1]})"
                    )
                previous = (str(item.get("id")), year)

            last_date: str | None = None
            for episode in item.get("episodeData") or []:
                air_date = episode.get("airDate")
                if not isinstance(air_date, str) or not _ISO_DATE_RE.match(air_date):
                    continue
                if last_date is not None and air_date < last_date:
                    warnings.append(f"{item.get('id')}: {episode.get('id')} aired {air_date} before {last_date}")
                last_date = air_date
    return warnings


def validate_cross_references(eras: Sequence[Mapping[str, Any]]) -> list[str]:
    """Warnings for `connections` that point at unknown ids or at the record itself."""

    known: set[str] = set()
    for era in eras:
        known.update(str(r.get("id")) for r in _iter_records(era.get("items") or []))

    warnings: list[str] = []
    for era in eras:
        for record in _iter_records(era.get("items") or []):
            record_id = str(record.get("id"))
            for target in record.get("connections") or []:
                if target == record_id:
                    warnings.append(f"{record_id}: connection references itself")
                elif target not in known:
                    warnings.append(f"{record_id}: connection to unknown id {target!r}")
    return warnings


def format_quality_report(report: QualityReport, *, max_listed: int = 20) -> str:
    lines = [
        "Quality report",
        f"  records scored: {report.total_scored}",
        f"  average score:  {report.average_score:.2f} (target {report.target_threshold:.2f}, "
        f"{'met' if report.meets_target else 'NOT met'})",
        f"  above {report.min_threshold:.2f}: {report.above_threshold}",
        f"  below {report.min_threshold:.2f}: {report.below_threshold}",
    ]
    grades = Counter(s.grade for s in report.scores)
    if grades:
        lines.append("  grades: " + " ".join(f"{g}={grades[g]}" for _, g in GRADE_THRESHOLDS if grades[g]))
        if grades["insufficient"]:
            lines[-1] += f" insufficient={grades['insufficient']}"
    if report.items_below_threshold:
        shown = report.items_below_threshold[:max_listed]
        more = len(report.items_below_threshold) - len(shown)
        lines.append("  below threshold: " + ", ".join(shown) + (f" (+{more} more)" if more > 0 else ""))
    if report.duplicate_ids:
        lines.append("  duplicate ids: " + ", ".join(report.duplicate_ids))
    return "\n".join(lines)
