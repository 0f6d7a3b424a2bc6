#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from trek_catalog.ingestion.issues import CatalogPipelineError, DuplicateIdError
from trek_catalog.ingestion.pipeline import RUN_MODES, CatalogPipeline, PipelineOptions, PipelineResult
from trek_catalog.ingestion.quality import format_quality_report, validate_chronology, validate_cross_references
from trek_catalog.ingestion.source_merge import SourceId
from trek_catalog.repositories.catalog_file import load_catalog
from trek_catalog.settings import load_settings


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="generate_catalog",
        description="Generate (or incrementally update) the Star Trek chronology catalog from TMDb.",
    )
    parser.add_argument(
        "--mode",
        choices=RUN_MODES,
        default="auto",
        help="full rebuilds from scratch; incremental merges into the existing catalog; auto picks by file presence.",
    )
    parser.add_argument("--series", default=None, help="Only process series whose title or code contains this text.")
    parser.add_argument("--season", type=int, default=None, help="Only process this season number (requires --series).")
    parser.add_argument("--concurrency", type=int, default=None, help="Max concurrent TMDb requests.")
    parser.add_argument("--output", type=Path, default=None, help="Catalog path (defaults to CATALOG_PATH).")
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Cache TMDb responses on disk here (defaults to CATALOG_CACHE_DIR; unset disables).",
    )
    parser.add_argument("--cache-ttl-hours", type=float, default=None, help="Disk cache entry lifetime in hours.")
    parser.add_argument("--dry-run", action="store_true", help="Run every stage but do not write the catalog.")
    parser.add_argument(
        "--validate",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Score record completeness and print the quality report.",
    )
    parser.add_argument("--no-movies", action="store_true", help="Skip the feature films.")
    parser.add_argument(
        "--source-file",
        action="append",
        default=[],
        metavar="PROVIDER=PATH",
        help="Additional provider catalog to reconcile by source priority (repeatable).",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    args = parser.parse_args(argv)
    if args.season is not None and not args.series:
        parser.error("--season requires --series")
    return args


def _parse_source_files(values: list[str]) -> dict[str, list[dict[str, Any]]]:
    sources: dict[str, list[dict[str, Any]]] = {}
    for raw in values:
        provider, sep, path = raw.partition("=")
        if not sep or not provider.strip() or not path.strip():
            raise ValueError(f"--source-file expects PROVIDER=PATH, got {raw!r}")
        if provider.strip() == SourceId.TMDB.value:
            raise ValueError(f"--source-file provider {SourceId.TMDB.value!r} is reserved for the live fetch")
        catalog = load_catalog(Path(path.strip()))
        if catalog is None:
            raise ValueError(f"--source-file {path.strip()} does not exist")
        sources[provider.strip()] = catalog
    return sources


def _print_summary(result: PipelineResult, *, validate: bool) -> None:
    print(f"state: {result.state.value} ({' -> '.join(s.value for s in result.transitions)})")
    print(f"mode: {'incremental' if result.incremental else 'full'}")
    print(f"eras: {len(result.catalog)} items: {result.item_count}")
    if result.enumeration is not None:
        e = result.enumeration
        print(f"enumerated episodes: {e.episode_count} skipped_incomplete={e.skipped_incomplete} failed={e.failed_requests}")
    if validate and result.quality_report is not None:
        print(format_quality_report(result.quality_report))
        for warning in validate_chronology(result.catalog) + validate_cross_references(result.catalog):
            print(f"  WARN {warning}")
    if result.diff_report is not None:
        print(result.diff_report.summary_line())
    if result.issues is not None:
        for line in result.issues.summary_lines():
            print(line)
    if result.written_path is not None:
        print(f"wrote: {result.written_path}")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings().with_overrides(
            concurrency=args.concurrency,
            catalog_path=args.output,
            cache_dir=args.cache_dir,
            cache_ttl_hours=args.cache_ttl_hours,
        )
        extra_sources = _parse_source_files(args.source_file)
        options = PipelineOptions(
            mode=args.mode,
            series_filter=args.series,
            season_filter=args.season,
            include_movies=not args.no_movies,
            dry_run=bool(args.dry_run),
            validate=bool(args.validate),
        )
    except (CatalogPipelineError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    try:
        result = CatalogPipeline(settings, options, extra_sources=extra_sources).run()
    except OSError as exc:
        print(f"ERROR: failed to write catalog: {exc}", file=sys.stderr)
        return 1

    _print_summary(result, validate=options.validate)
    if result.fatal_error is not None:
        error = result.fatal_error
        print(f"ERROR [{error.category.value}]: {error}", file=sys.stderr)
        if isinstance(error, DuplicateIdError):
            for dup in error.duplicate_ids:
                print(f"  duplicate id: {dup}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
