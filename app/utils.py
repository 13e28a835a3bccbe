"""Utility helpers for the ReelTiers service."""

from __future__ import annotations

import email.utils
import re
import time
from datetime import date, datetime, timezone
from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")

RELEASE_YEAR_RE = re.compile(r"\d{4}")


def normalize_title(title: str) -> str:
    """Return the cache and deduplication key for a title."""

    return (title or "").strip().lower()


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of ``items`` holding at most ``size`` entries."""

    if size < 1:
        raise ValueError("Chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def extract_release_year(value: object) -> int | None:
    """Return the year of a ``YYYY-MM-DD`` (or bare ``YYYY``) release date.

    Full dates must be real calendar dates; ``2010-13-45`` yields ``None``.
    """

    if not isinstance(value, str):
        return None
    text = value.strip()
    if len(text) >= 10 and text[4:5] == "-":
        try:
            year = date.fromisoformat(text[:10]).year
        except ValueError:
            return None
    elif RELEASE_YEAR_RE.fullmatch(text):
        year = int(text)
    else:
        return None
    if year < 1800:
        return None
    return year


def parse_retry_after(value: str | None, default_seconds: float) -> float:
    """Interpret a ``Retry-After`` header as a delay in seconds."""

    if not value:
        return default_seconds
    stripped = value.strip()
    try:
        return max(0.0, float(int(stripped)))
    except ValueError:
        pass
    try:
        retry_at = email.utils.parsedate_to_datetime(stripped)
    except (TypeError, ValueError):
        return default_seconds
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    delta = (retry_at - datetime.now(timezone.utc)).total_seconds()
    return max(0.0, delta)


def epoch_millis() -> int:
    """Return the current wall-clock time in milliseconds."""

    return int(time.time() * 1000)
