"""
Schema of the persisted catalog file.

Models only validate shape; `extra="allow"` keeps curated fields the pipeline
does not know about, and callers keep working with the raw dicts.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class EpisodeModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    title: str
    season: Optional[int] = None
    episode: Optional[int] = None
    airDate: Optional[str] = None
    stardate: Optional[str] = None
    synopsis: Optional[str] = None
    plotPoints: Optional[list[str]] = None
    guestStars: Optional[list[str]] = None
    connections: Optional[list[str]] = None


class ItemModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    title: str
    type: Optional[str] = None
    year: Optional[Union[str, int]] = None
    stardate: Optional[Union[str, float]] = None
    episodes: Optional[int] = None
    notes: Optional[str] = None
    episodeData: Optional[list[EpisodeModel]] = None


class EraModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    title: str
    years: Optional[str] = None
    stardates: Optional[str] = None
    description: Optional[str] = None
    items: list[ItemModel] = Field(default_factory=list)


CATALOG_ADAPTER: TypeAdapter[list[EraModel]] = TypeAdapter(list[EraModel])


def validate_catalog_payload(payload: Any) -> list[EraModel]:
    """Raise `pydantic.ValidationError` when `payload` is not a list of eras."""

    return CATALOG_ADAPTER.validate_python(payload)
