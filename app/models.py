"""Pydantic models describing enrichment payloads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .utils import normalize_title

DEFAULT_TIER = "uncategorized"


class InputMovie(BaseModel):
    """A single watched movie handed over by the history importer."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    watched_date: str | None = Field(
        default=None,
        validation_alias=AliasChoices("watchedDate", "watched_date"),
        serialization_alias="watchedDate",
    )

    @field_validator("title")
    @classmethod
    def _title_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Movie title must not be blank")
        return value


class CatalogRecord(BaseModel):
    """Represents an enriched movie ready for tier assignment."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str | None = None
    title: str
    poster_url: str | None = Field(default=None, alias="posterUrl")
    catalog_id: int | None = Field(
        default=None,
        validation_alias=AliasChoices("catalogId", "catalog_id", "tmdbId"),
        serialization_alias="catalogId",
    )
    release_year: int | None = Field(default=None, alias="releaseYear")
    genres: tuple[int, ...] = ()
    current_tier: str = Field(default=DEFAULT_TIER, alias="currentTier")
    position_in_tier: int = Field(default=0, alias="positionInTier")

    @classmethod
    def unmatched(cls, title: str, *, record_id: str | None = None) -> "CatalogRecord":
        """Return a record carrying only the original title."""

        return cls(id=record_id, title=title)

    def dedup_key(self) -> str:
        """Return the key used to collapse records pointing at one movie."""

        if self.catalog_id is not None:
            return f"catalog-{self.catalog_id}"
        return f"title-{normalize_title(self.title)}"

    def to_payload(self) -> dict[str, object]:
        """Return the camelCase JSON shape consumed by the tier UI."""

        return self.model_dump(mode="json", by_alias=True)


@dataclass(slots=True, frozen=True)
class Matched:
    """The catalog returned at least one result for the title."""

    record: CatalogRecord


@dataclass(slots=True, frozen=True)
class NoMatch:
    """The catalog answered successfully but had no result for the title."""

    record: CatalogRecord


@dataclass(slots=True, frozen=True)
class Failed:
    """The lookup could not complete; ``record`` is a fallback."""

    record: CatalogRecord
    reason: str


LookupOutcome = Union[Matched, NoMatch, Failed]


class EnrichmentSummary(BaseModel):
    """Counts describing how a request's titles were resolved."""

    requested: int = 0
    unique: int = 0
    matched: int = 0
    unmatched: int = 0
    failed: int = 0


class EnrichmentResult(BaseModel):
    """Final output of the enrichment pipeline for one request."""

    movies: list[CatalogRecord] = Field(default_factory=list)
    summary: EnrichmentSummary = Field(default_factory=EnrichmentSummary)

    def to_payload(self) -> dict[str, object]:
        return {
            "movies": [movie.to_payload() for movie in self.movies],
            "summary": self.summary.model_dump(mode="json"),
        }
