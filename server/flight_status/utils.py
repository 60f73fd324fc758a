from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

HOUR = timedelta(hours=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def reindex(
    items: Optional[Iterable[Dict[str, Any]]],
    key_field: str,
    value_field: Optional[str] = None,
) -> Dict[Any, Any]:
    """
    Index a list of dicts by one of their fields.

    The list is scanned from the end, so with duplicate keys the entry
    nearest the start of the list is written last and wins.
    """
    index: Dict[Any, Any] = {}
    if not items:
        return index
    for item in reversed(list(items)):
        index[item[key_field]] = item[value_field] if value_field else item
    return index


def to_minute(date_local: str) -> str:
    """2012-09-30T21:50:00.000 -> 2012-09-30T21:50"""
    return date_local[:16]


def to_day(date_local: str) -> str:
    """2012-09-30T21:50:00.000 -> 2012-09-30"""
    return date_local[:10]


class RateLimiter:
    """
    Token bucket shared by every window of every fan-out: `rate` calls per
    second on average, up to `burst` back to back.

    A caller takes its token immediately, even when that drives the bucket
    negative, and then sleeps until the debt is repaid. Callers therefore
    leave in the order they arrived.
    """

    def __init__(self, rate: float, burst: int) -> None:
        if rate <= 0 or burst < 1:
            raise ValueError(f"rate and burst must be positive, got {rate}/{burst}")
        self.rate = float(rate)
        self.capacity = float(burst)
        self._tokens = self.capacity
        self._updated: Optional[float] = None

    def _refill(self, now: float) -> None:
        if self._updated is not None:
            elapsed = now - self._updated
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    async def acquire(self) -> None:
        self._refill(asyncio.get_running_loop().time())
        self._tokens -= 1.0
        delay = -self._tokens / self.rate if self._tokens < 0 else 0.0
        if delay:
            await asyncio.sleep(delay)
