"""Resolve free-text movie titles against The Movie Database (TMDB)."""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Any, Awaitable, Callable

import httpx

from ..config import Settings
from ..models import CatalogRecord, Failed, LookupOutcome, Matched, NoMatch
from ..utils import epoch_millis, extract_release_year, normalize_title, parse_retry_after
from .lookup_cache import LookupCache
from .rate_limiter import RateLimiterRegistry

logger = logging.getLogger(__name__)

SEARCH_PATH = "/search/movie"


class TMDBError(RuntimeError):
    """Base class for failures talking to TMDB."""


class RateLimitExceeded(TMDBError):
    """TMDB answered 429 Too Many Requests."""

    def __init__(self, retry_after: float, message: str | None = None) -> None:
        super().__init__(
            message or "Rate limit exceeded. Please try again in a few seconds."
        )
        self.retry_after = retry_after


class CatalogApiError(TMDBError):
    """TMDB answered with an unexpected status or payload."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        super().__init__(message or f"TMDB API error: {status_code}")
        self.status_code = status_code


class NetworkError(TMDBError):
    """The request never produced an HTTP response."""


class TMDBClient:
    """Turn one title into one catalog record, whatever TMDB does.

    Every lookup goes through the same steps: the shared cache, the
    credential's admission window, a single ``/search/movie`` request and,
    on 429, a bounded number of delayed retries. Anything that goes wrong is
    folded into a fallback record so a single title never aborts a batch.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        rate_limiters: RateLimiterRegistry | None = None,
        cache: LookupCache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._client = http_client
        if rate_limiters is None:
            rate_limiters = RateLimiterRegistry(
                settings.rate_limit_max_requests,
                settings.rate_limit_window_seconds,
                safety_margin_seconds=settings.rate_limit_margin_seconds,
            )
        if cache is None:
            cache = LookupCache(
                settings.lookup_cache_size,
                failure_ttl_seconds=settings.failure_cache_ttl_seconds,
            )
        self._rate_limiters = rate_limiters
        self._cache = cache
        self._sleep = sleep
        self._image_base_url = settings.tmdb_image_base_url
        self._retry_limit = settings.throttle_retry_limit
        self._default_retry_delay = settings.throttle_default_delay_seconds
        self._inflight: dict[str, asyncio.Task[LookupOutcome]] = {}

    @property
    def cache(self) -> LookupCache:
        return self._cache

    @property
    def rate_limiters(self) -> RateLimiterRegistry:
        return self._rate_limiters

    async def resolve(
        self, title: str, api_key: str, *, attempt: int = 0
    ) -> CatalogRecord:
        """Return the catalog record for ``title``; never raises on lookup errors."""

        outcome = await self.lookup(title, api_key, attempt=attempt)
        return outcome.record

    async def lookup(
        self, title: str, api_key: str, *, attempt: int = 0
    ) -> LookupOutcome:
        """Return the tagged lookup outcome for ``title``."""

        key = normalize_title(title)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("TMDB cache hit for %s", key)
            return cached

        # Overlapping requests for the same title share one network call.
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._fetch(title, key, api_key, attempt))
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[LookupOutcome]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _fetch(
        self, title: str, key: str, api_key: str, attempt: int
    ) -> LookupOutcome:
        try:
            payload = await self._search_with_retries(title, api_key, attempt)
            outcome = self._outcome_from_payload(title, payload)
        except Exception as exc:
            logger.warning("TMDB lookup failed for %s: %s", title, exc)
            outcome = Failed(record=self._fallback_record(title), reason=str(exc))
        self._cache.put(key, outcome)
        return outcome

    async def _search_with_retries(
        self, title: str, api_key: str, attempt: int
    ) -> dict[str, Any]:
        while True:
            await self._rate_limiters.acquire_slot(api_key)
            try:
                return await self._search(title, api_key)
            except RateLimitExceeded as exc:
                if attempt >= self._retry_limit:
                    raise
                attempt += 1
                logger.info(
                    "TMDB throttled search for %s, retrying in %.1fs (attempt %s/%s)",
                    title,
                    exc.retry_after,
                    attempt,
                    self._retry_limit,
                )
                await self._sleep(exc.retry_after)

    async def _search(self, title: str, api_key: str) -> dict[str, Any]:
        """Issue one search request and interpret the HTTP status."""

        params = {"api_key": api_key, "query": title, "page": 1}
        try:
            response = await self._client.get(SEARCH_PATH, params=params)
        except httpx.HTTPError as exc:
            raise NetworkError(
                f"Network error: could not connect to TMDB ({exc.__class__.__name__})"
            ) from exc

        if response.status_code == 429:
            raise RateLimitExceeded(
                parse_retry_after(
                    response.headers.get("Retry-After"), self._default_retry_delay
                )
            )
        if not response.is_success:
            raise CatalogApiError(response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise CatalogApiError(
                response.status_code, "TMDB returned invalid JSON"
            ) from exc
        if not isinstance(payload, dict):
            raise CatalogApiError(response.status_code, "TMDB payload was not an object")
        return payload

    def _outcome_from_payload(
        self, title: str, payload: dict[str, Any]
    ) -> Matched | NoMatch:
        results = payload.get("results") or []
        if not isinstance(results, list):
            raise CatalogApiError(200, "TMDB results were not a list")
        if not results:
            return NoMatch(record=CatalogRecord.unmatched(title))

        best = results[0]
        if not isinstance(best, dict) or best.get("id") is None:
            raise CatalogApiError(200, "TMDB result is missing an id")
        tmdb_id = int(best["id"])
        poster_path = best.get("poster_path")
        genre_ids = best.get("genre_ids") or []

        record = CatalogRecord(
            id=f"catalog-{tmdb_id}",
            title=best.get("title") or title,
            poster_url=self._build_image_url(poster_path) if poster_path else None,
            catalog_id=tmdb_id,
            release_year=extract_release_year(best.get("release_date")),
            genres=tuple(
                genre for genre in genre_ids if isinstance(genre, int)
            ),
        )
        return Matched(record=record)

    def _build_image_url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self._image_base_url}{path}"

    @staticmethod
    def _fallback_record(title: str) -> CatalogRecord:
        return CatalogRecord.unmatched(
            title, record_id=f"fallback-{epoch_millis()}-{secrets.token_hex(6)}"
        )
