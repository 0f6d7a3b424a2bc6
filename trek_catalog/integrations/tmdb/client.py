from __future__ import annotations

import logging
import random
import time
from threading import Lock
from typing import Any, Mapping

import requests

from trek_catalog.integrations.tmdb.disk_cache import FileResponseCache
from trek_catalog.utils.env import env_str

logger = logging.getLogger(__name__)

TMDB_API_BASE_URL = "https://api.themoviedb.org/3"

ResponseCache = dict[tuple[str, tuple[tuple[str, str], ...]], dict[str, Any]]


class TmdbClientError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, body_snippet: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body_snippet = body_snippet


def resolve_bearer_token(token: str | None = None) -> str | None:
    """
    Best-effort bearer token resolution for callers that continue when the credential is missing.

    TMDb "API Read Access Tokens" are sent as `Authorization: Bearer <token>`.
    """

    resolved = (token or env_str("TMDB_BEARER", "TMDB_API_KEY") or "").strip()
    return resolved or None


def _require_bearer_token(token: str | None) -> str:
    resolved = resolve_bearer_token(token)
    if not resolved:
        raise TmdbClientError("TMDB_BEARER is not set.")
    return resolved


class RequestCache:
    """
    Per-run response cache shared between executor workers.

    With a `disk` layer, misses fall through to the on-disk cache and every stored
    payload is also written there, so later runs reuse responses until they expire.
    """

    def __init__(self, disk: FileResponseCache | None = None) -> None:
        self._entries: ResponseCache = {}
        self._lock = Lock()
        self.disk = disk

    @staticmethod
    def key(url: str, params: Mapping[str, Any] | None) -> tuple[str, tuple[tuple[str, str], ...]]:
        return url, tuple(sorted((str(k), str(v)) for k, v in (params or {}).items()))

    def get(self, url: str, params: Mapping[str, Any] | None) -> dict[str, Any] | None:
        with self._lock:
            payload = self._entries.get(self.key(url, params))
        if payload is not None or self.disk is None:
            return payload
        payload = self.disk.get(url, params)
        if payload is not None:
            with self._lock:
                self._entries[self.key(url, params)] = payload
        return payload

    def put(self, url: str, params: Mapping[str, Any] | None, payload: dict[str, Any]) -> None:
        with self._lock:
            self._entries[self.key(url, params)] = payload
        if self.disk is not None:
            self.disk.put(url, params, payload)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _request_json(
    session: requests.Session,
    url: str,
    *,
    bearer_token: str,
    params: Mapping[str, Any] | None = None,
    timeout_seconds: float = 20.0,
    max_attempts: int = 3,
    cache: RequestCache | None = None,
) -> dict[str, Any]:
    if cache is not None:
        cached = cache.get(url, params)
        if cached is not None:
            return cached

    headers = {
        "accept": "application/json",
        "authorization": f"Bearer {bearer_token}",
    }

    last_response: requests.Response | None = None
    for attempt in range(max_attempts):
        try:
            resp = session.get(url, params=params, headers=headers, timeout=timeout_seconds)
        except requests.RequestException as exc:
            if attempt < max_attempts - 1:
                delay = 1.0 * (2**attempt)
                jitter = random.uniform(0.0, delay * 0.25)
                logger.debug(f"TMDb request error url={url} attempt={attempt + 1} retry_in={delay + jitter:.2f}s: {exc}")
                time.sleep(delay + jitter)
                continue
            raise TmdbClientError(f"TMDb request failed: {exc}") from exc

        last_response = resp
        if resp.status_code == 200:
            break

        retryable = resp.status_code == 429 or 500 <= resp.status_code < 600
        if retryable and attempt < max_attempts - 1:
            delay = 1.0 * (2**attempt)
            retry_after = (resp.headers.get("Retry-After") or "").strip()
            if retry_after.isdigit():
                delay = max(delay, float(retry_after))
            jitter = random.uniform(0.0, delay * 0.25)
            logger.debug(f"TMDb HTTP {resp.status_code} url={url} attempt={attempt + 1} retry_in={delay + jitter:.2f}s")
            time.sleep(delay + jitter)
            continue

        raise TmdbClientError(
            f"TMDb request failed with HTTP {resp.status_code}.",
            status_code=resp.status_code,
            body_snippet=(resp.text or "")[:400],
        )

    if last_response is None:
        raise TmdbClientError("TMDb request failed (no response).")
    resp = last_response

    try:
        payload = resp.json()
    except ValueError as exc:
        raise TmdbClientError(
            "TMDb returned non-JSON response.",
            status_code=resp.status_code,
            body_snippet=(resp.text or "")[:400],
        ) from exc

    if not isinstance(payload, dict):
        raise TmdbClientError("TMDb returned unexpected JSON shape (not an object).")
    if cache is not None:
        cache.put(url, params, payload)
    return payload


def _get(
    path: str,
    *,
    params: Mapping[str, Any] | None = None,
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
) -> dict[str, Any]:
    token = _require_bearer_token(bearer_token)
    session = session or requests.Session()
    return _request_json(session, f"{TMDB_API_BASE_URL}{path}", bearer_token=token, params=params, cache=cache)


def search_tv(
    query: str,
    *,
    language: str = "en-US",
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
) -> list[dict[str, Any]]:
    """
    Search TMDb TV series by name.

    Returns the first result page in provider order; callers pick the match.
    """

    payload = _get(
        "/search/tv",
        params={"query": query, "language": language},
        bearer_token=bearer_token,
        session=session,
        cache=cache,
    )
    results = payload.get("results")
    return [r for r in results if isinstance(r, dict)] if isinstance(results, list) else []


def search_movie(
    query: str,
    *,
    year: int | None = None,
    language: str = "en-US",
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
) -> list[dict[str, Any]]:
    params: dict[str, Any] = {"query": query, "language": language}
    if year is not None:
        params["year"] = int(year)
    payload = _get(
        "/search/movie",
        params=params,
        bearer_token=bearer_token,
        session=session,
        cache=cache,
    )
    results = payload.get("results")
    return [r for r in results if isinstance(r, dict)] if isinstance(results, list) else []


def fetch_tv_details(
    tv_id: int,
    *,
    language: str = "en-US",
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
) -> dict[str, Any]:
    """Fetch `/3/tv/{id}` (includes the `seasons` summary list)."""

    return _get(
        f"/tv/{int(tv_id)}",
        params={"language": language},
        bearer_token=bearer_token,
        session=session,
        cache=cache,
    )


def fetch_tv_season_details(
    tv_id: int,
    season_number: int,
    *,
    language: str = "en-US",
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
) -> dict[str, Any]:
    return _get(
        f"/tv/{int(tv_id)}/season/{int(season_number)}",
        params={"language": language},
        bearer_token=bearer_token,
        session=session,
        cache=cache,
    )


def fetch_tv_episode_details(
    tv_id: int,
    season_number: int,
    episode_number: int,
    *,
    language: str = "en-US",
    append_to_response: list[str] | None = None,
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
) -> dict[str, Any]:
    """
    Fetch `/3/tv/{id}/season/{n}/episode/{e}`.

    Pass `append_to_response=["credits"]` to include crew and guest stars in one call.
    """

    params: dict[str, Any] = {"language": language}
    append_parts = sorted({p.strip() for p in (append_to_response or []) if isinstance(p, str) and p.strip()})
    if append_parts:
        params["append_to_response"] = ",".join(append_parts)
    return _get(
        f"/tv/{int(tv_id)}/season/{int(season_number)}/episode/{int(episode_number)}",
        params=params,
        bearer_token=bearer_token,
        session=session,
        cache=cache,
    )


def fetch_movie_details(
    movie_id: int,
    *,
    language: str = "en-US",
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
) -> dict[str, Any]:
    return _get(
        f"/movie/{int(movie_id)}",
        params={"language": language},
        bearer_token=bearer_token,
        session=session,
        cache=cache,
    )


def fetch_movie_credits(
    movie_id: int,
    *,
    bearer_token: str | None = None,
    session: requests.Session | None = None,
    cache: RequestCache | None = None,
) -> dict[str, Any]:
    return _get(
        f"/movie/{int(movie_id)}/credits",
        bearer_token=bearer_token,
        session=session,
        cache=cache,
    )
