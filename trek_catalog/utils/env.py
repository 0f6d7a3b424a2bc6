from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


def load_env(*, override: bool = False) -> Path | None:
    """
    Load the first `.env` found (repo root first, then the working directory).

    Returns the path that was loaded, or None when no file exists.
    """

    repo_root = Path(__file__).resolve().parents[2]
    for path in (repo_root / ".env", Path.cwd() / ".env"):
        if path.is_file():
            load_dotenv(dotenv_path=path, override=override)
            return path
    return None


def env_str(*names: str) -> str | None:
    """Return the first non-blank value among `names`."""

    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


def env_float(name: str, default: float) -> float:
    raw = env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from exc


def env_int(name: str, default: int) -> int:
    raw = env_str(name)
    if raw is None:
        return default
    if not raw.lstrip("-").isdigit():
        raise ValueError(f"{name} must be an integer, got {raw!r}.")
    return int(raw)
