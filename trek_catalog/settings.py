from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from trek_catalog.ingestion.issues import CatalogConfigError
from trek_catalog.utils.env import env_float, env_int, env_str, load_env

DEFAULT_MIN_QUALITY = 0.6
DEFAULT_TARGET_QUALITY = 0.75
DEFAULT_CONCURRENCY = 5
DEFAULT_CATALOG_PATH = Path("data/star_trek_catalog.json")
DEFAULT_CACHE_TTL_HOURS = 24.0


@dataclass(frozen=True)
class CatalogSettings:
    """
    Externally supplied configuration for a catalog run.

    `tmdb_bearer_token` may be None; TMDb discovery then returns empty results.
    `cache_dir` enables the on-disk TMDb response cache; entries older than
    `cache_ttl_hours` are refetched.
    """

    tmdb_bearer_token: str | None = None
    min_quality: float = DEFAULT_MIN_QUALITY
    target_quality: float = DEFAULT_TARGET_QUALITY
    concurrency: int = DEFAULT_CONCURRENCY
    catalog_path: Path = DEFAULT_CATALOG_PATH
    cache_dir: Path | None = None
    cache_ttl_hours: float = DEFAULT_CACHE_TTL_HOURS

    def with_overrides(self, **overrides: object) -> CatalogSettings:
        cleaned = {k: v for k, v in overrides.items() if v is not None}
        return validate_settings(replace(self, **cleaned))


def validate_settings(settings: CatalogSettings) -> CatalogSettings:
    for name in ("min_quality", "target_quality"):
        value = getattr(settings, name)
        if not 0.0 <= value <= 1.0:
            raise CatalogConfigError(f"{name} must be within [0, 1], got {value}.")
    if settings.min_quality > settings.target_quality:
        raise CatalogConfigError(
            f"min_quality ({settings.min_quality}) must not exceed target_quality ({settings.target_quality})."
        )
    if settings.concurrency < 1:
        raise CatalogConfigError(f"concurrency must be >= 1, got {settings.concurrency}.")
    if settings.cache_ttl_hours <= 0:
        raise CatalogConfigError(f"cache_ttl_hours must be > 0, got {settings.cache_ttl_hours}.")
    return settings


def _optional_path(value: str | None) -> Path | None:
    return Path(value) if value else None


def load_settings(*, load_dotenv_file: bool = True) -> CatalogSettings:
    if load_dotenv_file:
        load_env()
    try:
        settings = CatalogSettings(
            tmdb_bearer_token=env_str("TMDB_BEARER", "TMDB_API_KEY"),
            min_quality=env_float("CATALOG_MIN_QUALITY", DEFAULT_MIN_QUALITY),
            target_quality=env_float("CATALOG_TARGET_QUALITY", DEFAULT_TARGET_QUALITY),
            concurrency=env_int("CATALOG_CONCURRENCY", DEFAULT_CONCURRENCY),
            catalog_path=Path(env_str("CATALOG_PATH") or DEFAULT_CATALOG_PATH),
            cache_dir=_optional_path(env_str("CATALOG_CACHE_DIR")),
            cache_ttl_hours=env_float("CATALOG_CACHE_TTL_HOURS", DEFAULT_CACHE_TTL_HOURS),
        )
    except ValueError as exc:
        raise CatalogConfigError(str(exc)) from exc
    return validate_settings(settings)
