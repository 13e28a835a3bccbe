"""Batch orchestration for enriching imported watch history."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Sequence

from pydantic import ValidationError

from ..config import Settings
from ..models import (
    CatalogRecord,
    EnrichmentResult,
    EnrichmentSummary,
    Failed,
    InputMovie,
    LookupOutcome,
    Matched,
    NoMatch,
)
from ..utils import chunked, epoch_millis, normalize_title
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

MISSING_API_KEY_MESSAGE = (
    "TMDB API key not provided. Please provide your TMDB API key or configure "
    "TMDB_API_KEY environment variable."
)
INVALID_MOVIES_MESSAGE = "Invalid request: movies array required"


class InvalidRequestError(ValueError):
    """Raised when a request cannot be processed before any lookup starts."""


class MetadataEnrichmentService:
    """Turn a list of watched titles into deduplicated catalog records."""

    def __init__(
        self,
        settings: Settings,
        tmdb_client: TMDBClient,
        *,
        batch_size: int | None = None,
    ) -> None:
        self._settings = settings
        self._tmdb = tmdb_client
        self._batch_size = batch_size or settings.enrich_batch_size

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def resolve_api_key(self, user_api_key: str | None) -> str:
        """Return the caller's key, else the server key, else fail."""

        candidate = (user_api_key or "").strip() or self._settings.tmdb_api_key
        if not candidate:
            raise InvalidRequestError(MISSING_API_KEY_MESSAGE)
        return candidate

    async def enrich(
        self, movies: Any, api_key: str | None
    ) -> EnrichmentResult:
        """Resolve every distinct title in ``movies`` and collapse duplicates."""

        resolved_key = self.resolve_api_key(api_key)
        parsed = self._parse_movies(movies)
        unique = self._dedupe_titles(parsed)

        outcomes: list[LookupOutcome] = []
        batches = list(chunked(unique, self._batch_size))
        for index, batch in enumerate(batches, start=1):
            logger.info(
                "Enriching batch %s/%s (%s titles)", index, len(batches), len(batch)
            )
            results = await asyncio.gather(
                *(self._tmdb.lookup(movie.title, resolved_key) for movie in batch)
            )
            outcomes.extend(results)

        summary = EnrichmentSummary(requested=len(parsed), unique=len(unique))
        for outcome in outcomes:
            if isinstance(outcome, Matched):
                summary.matched += 1
            elif isinstance(outcome, NoMatch):
                summary.unmatched += 1
            elif isinstance(outcome, Failed):
                summary.failed += 1

        final = self._dedupe_records([outcome.record for outcome in outcomes])
        logger.info(
            "Enriched %s titles into %s records (%s matched, %s unmatched, %s failed)",
            summary.unique,
            len(final),
            summary.matched,
            summary.unmatched,
            summary.failed,
        )
        return EnrichmentResult(movies=final, summary=summary)

    @staticmethod
    def _parse_movies(movies: Any) -> list[InputMovie]:
        if movies is None or not isinstance(movies, (list, tuple)):
            raise InvalidRequestError(INVALID_MOVIES_MESSAGE)

        parsed: list[InputMovie] = []
        for position, entry in enumerate(movies):
            if isinstance(entry, InputMovie):
                parsed.append(entry)
                continue
            if not isinstance(entry, Mapping):
                raise InvalidRequestError(
                    f"Invalid request: movie at position {position} must be an object"
                )
            try:
                parsed.append(InputMovie.model_validate(dict(entry)))
            except ValidationError as exc:
                raise InvalidRequestError(
                    f"Invalid request: movie at position {position} needs a title"
                ) from exc
        return parsed

    @staticmethod
    def _dedupe_titles(movies: Sequence[InputMovie]) -> list[InputMovie]:
        seen: set[str] = set()
        unique: list[InputMovie] = []
        for movie in movies:
            key = normalize_title(movie.title)
            if key in seen:
                continue
            seen.add(key)
            unique.append(movie)
        return unique

    @staticmethod
    def _dedupe_records(records: Sequence[CatalogRecord]) -> list[CatalogRecord]:
        """Keep the first record per catalog id (or title) and fill in ids."""

        stamp = epoch_millis()
        seen: set[str] = set()
        final: list[CatalogRecord] = []
        for index, record in enumerate(records):
            key = record.dedup_key()
            if key in seen:
                continue
            seen.add(key)
            if not record.id:
                record = record.model_copy(update={"id": f"movie-{stamp}-{index}"})
            final.append(record)
        return final
