"""
Error taxonomy and end-of-run issue accounting for catalog runs.

Per-item problems are recorded on an `IssueLog` and reported once when the run
finishes. Only `CatalogPipelineError` subclasses stop a run.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Iterable


class IssueCategory(str, Enum):
    TRANSIENT = "transient"
    NOT_FOUND = "not_found"
    DATA_INTEGRITY = "data_integrity"
    QUALITY_THRESHOLD = "quality_threshold"
    CONFIGURATION = "configuration"


class CatalogPipelineError(RuntimeError):
    """Fatal condition; the run moves to `failed` and nothing is written."""

    category: IssueCategory = IssueCategory.DATA_INTEGRITY


class DuplicateIdError(CatalogPipelineError):
    def __init__(self, duplicate_ids: Iterable[str]) -> None:
        self.duplicate_ids = sorted(set(duplicate_ids))
        shown = ", ".join(self.duplicate_ids[:20])
        more = f" (+{len(self.duplicate_ids) - 20} more)" if len(self.duplicate_ids) > 20 else ""
        super().__init__(f"Duplicate canonical ids detected: {shown}{more}")


class CatalogConfigError(CatalogPipelineError):
    category = IssueCategory.CONFIGURATION


@dataclass(frozen=True)
class PipelineIssue:
    category: IssueCategory
    source: str
    entity_id: str
    message: str


@dataclass(frozen=True)
class IssueReport:
    total: int
    by_category: dict[str, int]
    by_source: dict[str, int]
    affected_ids: list[str]

    def summary_lines(self) -> list[str]:
        if not self.total:
            return ["issues: none"]
        lines = [f"issues: total={self.total}"]
        lines.append("  by category: " + " ".join(f"{k}={v}" for k, v in sorted(self.by_category.items())))
        lines.append("  by source: " + " ".join(f"{k}={v}" for k, v in sorted(self.by_source.items())))
        shown = self.affected_ids[:25]
        suffix = f" ... (+{len(self.affected_ids) - 25} more)" if len(self.affected_ids) > 25 else ""
        lines.append("  affected: " + ", ".join(shown) + suffix)
        return lines


@dataclass
class IssueLog:
    issues: list[PipelineIssue] = field(default_factory=list)
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def record(self, category: IssueCategory, *, source: str, entity_id: str, message: str) -> PipelineIssue:
        issue = PipelineIssue(category=category, source=source, entity_id=str(entity_id), message=message)
        with self._lock:
            self.issues.append(issue)
        return issue

    def count(self, category: IssueCategory | None = None) -> int:
        with self._lock:
            if category is None:
                return len(self.issues)
            return sum(1 for issue in self.issues if issue.category == category)

    def report(self) -> IssueReport:
        with self._lock:
            issues = list(self.issues)
        by_category = Counter(issue.category.value for issue in issues)
        by_source = Counter(issue.source for issue in issues)
        affected = list(dict.fromkeys(issue.entity_id for issue in issues if issue.entity_id))
        return IssueReport(
            total=len(issues),
            by_category=dict(by_category),
            by_source=dict(by_source),
            affected_ids=affected,
        )
