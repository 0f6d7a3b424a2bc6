"""
TMDb integration clients.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trek_catalog.integrations.tmdb.client import (
        RequestCache,
        TmdbClientError,
        fetch_movie_credits,
        fetch_movie_details,
        fetch_tv_details,
        fetch_tv_episode_details,
        fetch_tv_season_details,
        resolve_bearer_token,
        search_movie,
        search_tv,
    )

__all__ = [
    "RequestCache",
    "TmdbClientError",
    "fetch_movie_credits",
    "fetch_movie_details",
    "fetch_tv_details",
    "fetch_tv_episode_details",
    "fetch_tv_season_details",
    "resolve_bearer_token",
    "search_movie",
    "search_tv",
]


def __getattr__(name: str):
    if name in __all__:
        from trek_catalog.integrations.tmdb import client

        return getattr(client, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
