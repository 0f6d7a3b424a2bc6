"""
One catalog run, from title resolution to the persisted file.

`CatalogPipeline.run()` walks the stages in a fixed order and records every state
it enters. Per-item problems go to the run's `IssueLog`; a `CatalogPipelineError`
moves the run to `failed` and the writer is never called.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

import requests

from trek_catalog.ingestion.chronology import sort_catalog
from trek_catalog.ingestion.enumerator import EnumerationResult, enumerate_movies, enumerate_series
from trek_catalog.ingestion.eras import group_items_by_era
from trek_catalog.ingestion.incremental_merge import DiffReport, generate_data_diff, merge_incremental
from trek_catalog.ingestion.issues import CatalogConfigError, CatalogPipelineError, IssueCategory, IssueLog, IssueReport
from trek_catalog.ingestion.normalizer import normalize_catalog_items
from trek_catalog.ingestion.quality import QualityReport, assert_unique_ids, score_catalog
from trek_catalog.ingestion.resolver import (
    STAR_TREK_MOVIES,
    filter_series_targets,
    resolve_movie_targets,
    resolve_series_targets,
)
from trek_catalog.ingestion.source_merge import SourceId, merge_catalog_sources
from trek_catalog.integrations.tmdb.client import RequestCache, TmdbClientError
from trek_catalog.integrations.tmdb.disk_cache import FileResponseCache
from trek_catalog.repositories.catalog_file import catalog_exists, load_catalog, write_catalog
from trek_catalog.settings import CatalogSettings

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    ENUMERATING = "enumerating"
    NORMALIZING = "normalizing"
    SCORING = "scoring"
    CLASSIFYING = "classifying"
    SORTING = "sorting"
    MERGING = "merging"
    RECONCILING_INCREMENTAL = "reconciling_incremental"
    READY = "ready"
    FAILED = "failed"


RUN_MODES = ("full", "incremental", "auto")

CatalogWriter = Callable[[Path, Sequence[Any]], Any]
CatalogLoader = Callable[[Path], "list[dict[str, Any]] | None"]


@dataclass(frozen=True)
class PipelineOptions:
    mode: str = "auto"
    series_filter: str | None = None
    season_filter: int | None = None
    include_movies: bool = True
    dry_run: bool = False
    validate: bool = True

    def __post_init__(self) -> None:
        if self.mode not in RUN_MODES:
            raise ValueError(f"mode must be one of {RUN_MODES}, got {self.mode!r}")
        if self.season_filter is not None and self.season_filter < 1:
            raise ValueError(f"season_filter must be >= 1, got {self.season_filter}")


@dataclass
class PipelineResult:
    state: RunState = RunState.IDLE
    transitions: list[RunState] = field(default_factory=list)
    catalog: list[dict[str, Any]] = field(default_factory=list)
    incremental: bool = False
    quality_report: QualityReport | None = None
    diff_report: DiffReport | None = None
    enumeration: EnumerationResult | None = None
    issues: IssueReport | None = None
    written_path: Path | None = None
    fatal_error: CatalogPipelineError | None = None

    @property
    def ok(self) -> bool:
        return self.state is RunState.READY

    @property
    def item_count(self) -> int:
        return sum(len(era.get("items") or []) for era in self.catalog)


def _build_cache(settings: CatalogSettings) -> RequestCache:
    if settings.cache_dir is None:
        return RequestCache()
    disk = FileResponseCache(settings.cache_dir, ttl_seconds=settings.cache_ttl_hours * 3600)
    return RequestCache(disk=disk)


def _flat_items(eras: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    return [item for era in eras for item in era.get("items") or []]


class CatalogPipeline:
    """
    Drives one run. Collaborators are injectable so tests can run without network
    or filesystem access.

    `extra_sources` maps a provider id (see `SourceId`) to an already era-shaped
    catalog from that provider; when present it is reconciled with the TMDb output
    by priority before the incremental step. The `tmdb` id is reserved for the live
    fetch and is rejected with `CatalogConfigError`.
    """

    def __init__(
        self,
        settings: CatalogSettings,
        options: PipelineOptions | None = None,
        *,
        session: requests.Session | None = None,
        writer: CatalogWriter = write_catalog,
        loader: CatalogLoader = load_catalog,
        extra_sources: Mapping[str, Sequence[Mapping[str, Any]]] | None = None,
        issues: IssueLog | None = None,
    ) -> None:
        self.settings = settings
        self.options = options or PipelineOptions()
        self.session = session
        self.writer = writer
        self.loader = loader
        self.extra_sources = dict(extra_sources or {})
        if SourceId.TMDB.value in self.extra_sources:
            raise CatalogConfigError(
                f"extra source {SourceId.TMDB.value!r} would replace the live TMDb catalog; use another provider id"
            )
        self.issues = issues if issues is not None else IssueLog()
        self.cache = _build_cache(settings)
        self.result = PipelineResult()

    @property
    def catalog_path(self) -> Path:
        return Path(self.settings.catalog_path)

    def _enter(self, state: RunState) -> None:
        self.result.state = state
        self.result.transitions.append(state)
        logger.info(f"pipeline -> {state.value}")

    def _log_cache_stats(self) -> None:
        if self.cache.disk is None:
            return
        stats = self.cache.disk.stats
        logger.info(
            f"TMDb disk cache: hits={stats.hits} misses={stats.misses} writes={stats.writes} "
            f"hit_rate={stats.hit_rate:.0%}"
        )

    def _use_incremental(self) -> bool:
        mode = self.options.mode
        if mode == "full":
            return False
        exists = catalog_exists(self.catalog_path)
        if mode == "incremental" and not exists:
            logger.warning(f"Incremental mode requested but {self.catalog_path} does not exist; running full")
        return exists

    def run(self) -> PipelineResult:
        self._enter(RunState.IDLE)
        if self.cache.disk is not None:
            self.cache.disk.cleanup_expired()
        try:
            catalog = self._run_stages()
        except CatalogPipelineError as exc:
            logger.error(f"pipeline failed in {self.result.state.value}: {exc}")
            self.result.fatal_error = exc
            self._enter(RunState.FAILED)
            self.result.issues = self.issues.report()
            return self.result

        self._log_cache_stats()
        self.result.catalog = catalog
        self._enter(RunState.READY)
        self.result.issues = self.issues.report()

        if self.options.dry_run:
            logger.info("dry run: catalog not written")
        elif not catalog:
            logger.warning("catalog is empty; nothing written")
        else:
            self.result.written_path = Path(self.writer(self.catalog_path, catalog) or self.catalog_path)
        return self.result

    def _run_stages(self) -> list[dict[str, Any]]:
        settings = self.settings
        concurrency = settings.concurrency
        token = settings.tmdb_bearer_token

        self._enter(RunState.RESOLVING)
        series_targets = filter_series_targets(self.options.series_filter)
        include_movies = self.options.include_movies and not self.options.series_filter
        if not token:
            logger.warning("TMDB_BEARER not configured; TMDb discovery returns no results")
            resolved_series, resolved_movies = [], []
        else:
            resolved_series = resolve_series_targets(
                series_targets,
                bearer_token=token,
                session=self.session,
                cache=self.cache,
                concurrency=concurrency,
                issues=self.issues,
            )
            resolved_movies = (
                resolve_movie_targets(
                    STAR_TREK_MOVIES,
                    bearer_token=token,
                    session=self.session,
                    cache=self.cache,
                    concurrency=concurrency,
                    issues=self.issues,
                )
                if include_movies
                else []
            )
        logger.info(f"resolved {len(resolved_series)}/{len(series_targets)} series, {len(resolved_movies)} movies")

        self._enter(RunState.ENUMERATING)
        enumeration = EnumerationResult()
        self.result.enumeration = enumeration
        for target, tmdb_id in resolved_series:
            try:
                enumerate_series(
                    target,
                    tmdb_id,
                    season_filter=self.options.season_filter,
                    concurrency=concurrency,
                    bearer_token=token,
                    session=self.session,
                    cache=self.cache,
                    issues=self.issues,
                    result=enumeration,
                )
            except (TmdbClientError, requests.RequestException) as exc:
                enumeration.failed_requests += 1
                logger.warning(f"{target.code}: series enumeration failed: {exc}")
                self.issues.record(IssueCategory.TRANSIENT, source="tmdb", entity_id=target.code, message=str(exc))
        if resolved_movies:
            enumerate_movies(
                resolved_movies,
                concurrency=concurrency,
                bearer_token=token,
                session=self.session,
                cache=self.cache,
                issues=self.issues,
                result=enumeration,
            )
        logger.info(
            f"enumerated {len(enumeration.series)} series ({enumeration.episode_count} episodes), "
            f"{len(enumeration.movies)} movies; skipped={enumeration.skipped_incomplete} "
            f"failed={enumeration.failed_requests}"
        )

        self._enter(RunState.NORMALIZING)
        items = normalize_catalog_items(enumeration.series, enumeration.movies)

        self._enter(RunState.SCORING)
        assert_unique_ids(items)
        if self.options.validate:
            report = score_catalog(
                items,
                min_threshold=settings.min_quality,
                target_threshold=settings.target_quality,
            )
            self.result.quality_report = report
            for record_id in report.items_below_threshold:
                self.issues.record(
                    IssueCategory.QUALITY_THRESHOLD,
                    source="quality",
                    entity_id=record_id,
                    message=f"score below {settings.min_quality}",
                )
            if report.total_scored and not report.meets_target:
                logger.warning(
                    f"average quality {report.average_score:.2f} is below target {settings.target_quality:.2f}"
                )

        self._enter(RunState.CLASSIFYING)
        eras = group_items_by_era(items, issues=self.issues)

        self._enter(RunState.SORTING)
        eras = sort_catalog(eras)

        if self.extra_sources:
            self._enter(RunState.MERGING)
            catalogs: dict[str, Sequence[Mapping[str, Any]]] = {SourceId.TMDB.value: eras}
            catalogs.update(self.extra_sources)
            eras = sort_catalog(merge_catalog_sources(catalogs))
            assert_unique_ids(_flat_items(eras))

        self.result.incremental = self._use_incremental()
        if self.result.incremental:
            self._enter(RunState.RECONCILING_INCREMENTAL)
            existing = self.loader(self.catalog_path) or []
            self.result.diff_report = generate_data_diff(existing, eras)
            logger.info(self.result.diff_report.summary_line())
            eras = merge_incremental(existing, eras)
            assert_unique_ids(_flat_items(eras))

        return eras
