"""
Typed records shared by the ingestion stages and the catalog file repository.
"""

from trek_catalog.models.raw import RawEpisodeRecord, RawMovieRecord, RawSeasonRecord, RawSeriesRecord

__all__ = [
    "RawEpisodeRecord",
    "RawMovieRecord",
    "RawSeasonRecord",
    "RawSeriesRecord",
]
