"""
models.py

Pydantic models for movie summaries, details and gateway responses.
Serialized with camelCase keys (posterUrl, releaseDate, ...) so the proxy
routes and the persisted favorites share one wire format.
"""
import math
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class MovieSummary(_WireModel):
    id: int
    title: str
    overview: str
    poster_url: Optional[str] = None
    release_date: Optional[str] = None
    vote_average: Optional[float] = None

    @field_validator("vote_average")
    @classmethod
    def _finite_vote(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and not math.isfinite(value):
            return None
        return value


class MovieDetails(MovieSummary):
    backdrop_url: Optional[str] = None
    runtime: Optional[int] = None
    genres: List[str] = []
    tagline: Optional[str] = None

    def to_summary(self) -> MovieSummary:
        """Flatten to the summary projection stored in the entity cache."""
        return MovieSummary(
            id=self.id,
            title=self.title,
            overview=self.overview,
            poster_url=self.poster_url,
            release_date=self.release_date,
            vote_average=self.vote_average,
        )


class PagedMovies(_WireModel):
    page: int
    total_pages: int
    results: List[MovieSummary]


class SearchResults(_WireModel):
    query: str
    results: List[MovieSummary]
