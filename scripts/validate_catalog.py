#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from trek_catalog.ingestion.issues import CatalogPipelineError
from trek_catalog.ingestion.quality import (
    format_quality_report,
    score_catalog,
    validate_chronology,
    validate_cross_references,
)
from trek_catalog.repositories.catalog_file import load_catalog
from trek_catalog.settings import load_settings


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="validate_catalog",
        description="Score an existing catalog file and report ordering and reference problems.",
    )
    parser.add_argument("path", nargs="?", type=Path, default=None, help="Catalog path (defaults to CATALOG_PATH).")
    parser.add_argument("--min-quality", type=float, default=None)
    parser.add_argument("--target-quality", type=float, default=None)
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Also exit non-zero when the average score misses the target.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    try:
        settings = load_settings().with_overrides(
            catalog_path=args.path,
            min_quality=args.min_quality,
            target_quality=args.target_quality,
        )
        eras = load_catalog(settings.catalog_path)
    except CatalogPipelineError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    if eras is None:
        print(f"ERROR: {settings.catalog_path} does not exist", file=sys.stderr)
        return 1

    items = [item for era in eras for item in era.get("items") or []]
    report = score_catalog(items, min_threshold=settings.min_quality, target_threshold=settings.target_quality)
    print(format_quality_report(report))

    warnings = validate_chronology(eras) + validate_cross_references(eras)
    for warning in warnings:
        print(f"WARN {warning}")

    if report.duplicate_ids:
        print(f"ERROR: duplicate ids: {', '.join(report.duplicate_ids)}", file=sys.stderr)
        return 1
    if args.strict and not report.meets_target:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
