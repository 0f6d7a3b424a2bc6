from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Sequence

from pydantic import ValidationError

from trek_catalog.ingestion.issues import CatalogConfigError
from trek_catalog.models.catalog import validate_catalog_payload

logger = logging.getLogger(__name__)


class CatalogSchemaError(CatalogConfigError):
    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


def backup_path_for(path: Path) -> Path:
    return path.with_name(path.name + ".backup")


def catalog_exists(path: str | Path) -> bool:
    return Path(path).is_file()


def load_catalog(path: str | Path) -> list[dict[str, Any]] | None:
    """
    Read and validate a persisted catalog.

    Returns None when the file does not exist. The raw dicts are returned (not the
    pydantic models) so unknown curated fields survive untouched.
    """

    path = Path(path)
    if not path.is_file():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CatalogSchemaError(f"{path}: invalid JSON ({exc})", path=path) from exc
    try:
        validate_catalog_payload(payload)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(p) for p in first.get("loc", ()))
        raise CatalogSchemaError(
            f"{path}: catalog failed schema validation at {location or '<root>'}: {first.get('msg', exc)}",
            path=path,
        ) from exc
    return payload


def dump_catalog(eras: Sequence[Any]) -> str:
    return json.dumps(list(eras), indent=2, ensure_ascii=False) + "\n"


def write_catalog(path: str | Path, eras: Sequence[Any], *, create_backup: bool = True) -> Path:
    """
    Atomically write `eras` as pretty JSON.

    The previous file (if any) is copied to `<name>.backup` first; the new content
    goes to a temp file in the same directory and is moved into place.
    """

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if create_backup and path.is_file():
        shutil.copy2(path, backup_path_for(path))
        logger.info(f"Backed up previous catalog to {backup_path_for(path)}")

    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        tmp_path.write_text(dump_catalog(eras), encoding="utf-8")
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    logger.info(f"Wrote {len(eras)} eras to {path}")
    return path
