from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Set

from logging_utils import bind_rendezvous_key, log_event

from .errors import StoreError, VendorError
from .flightstats_client import FlightStatsClient
from .models import SENTINEL_ERROR, Direction, RequestPlan, WindowPlan
from .normalizer import flights_json
from .store import RendezvousStore, new_key
from .utils import HOUR, utc_now

logger = logging.getLogger("flightstatus.planner")

# With an airline filter the table covers now +/- 12h, otherwise now +/- 4h
_FILTERED_PLAN = WindowPlan(hours=6, count=4)
_UNFILTERED_PLAN = WindowPlan(hours=4, count=2)


def compute_window_plan(has_airline_filter: bool) -> WindowPlan:
    return _FILTERED_PLAN if has_airline_filter else _UNFILTERED_PLAN


def start_time_for(hours: int, count: int, now: Optional[datetime] = None) -> datetime:
    """Start of the first window, so that all windows are centred on `now`."""
    now = now or utc_now()
    return now - (hours * count / 2) * HOUR


class FanOutPlanner:
    """
    Issues the windowed FlightStats calls of one request and hands back the
    rendezvous key straight away. Every window appends exactly one partial
    result under that key, whatever happens to its call.
    """

    def __init__(
        self,
        client: FlightStatsClient,
        store: RendezvousStore,
        normalize: Callable[[str, Direction, Optional[str]], str] = flights_json,
    ) -> None:
        self._client = client
        self._store = store
        self._normalize = normalize
        self._tasks: Set[asyncio.Task] = set()

    def plan(
        self, iata: str, direction: Direction, airline: Optional[str] = None
    ) -> RequestPlan:
        window = compute_window_plan(bool(airline))
        return RequestPlan(
            iata=iata,
            direction=direction,
            airline=airline or None,
            window_hours=window.hours,
            window_count=window.count,
            start_time=start_time_for(window.hours, window.count),
        )

    async def dispatch(
        self, iata: str, direction: Direction, airline: Optional[str] = None
    ) -> str:
        """
        Open a rendezvous key, start all windows in the background and return
        the key. Raises StoreError when the key cannot be opened.
        """
        plan = self.plan(iata, direction, airline)
        key = new_key(plan.window_count)
        await self._store.open(key)

        for window, window_start in enumerate(plan.window_starts()):
            task = asyncio.create_task(
                self._run_window(key, plan, window, window_start)
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        log_event(
            logger,
            "fanout_dispatched",
            key=key,
            iata=plan.iata,
            direction=plan.direction.value,
            airline=plan.airline,
            windows=plan.window_count,
            window_hours=plan.window_hours,
            start_time=plan.start_time.isoformat(),
        )
        return key

    async def _run_window(
        self, key: str, plan: RequestPlan, window: int, window_start: datetime
    ) -> None:
        bind_rendezvous_key(key)
        try:
            payload = await self._client.fetch(
                plan.iata, plan.direction, window_start, plan.window_hours
            )
        except VendorError as e:
            log_event(
                logger,
                "fanout_window_vendor_error",
                level=logging.WARNING,
                key=key,
                window=window,
                window_start=window_start.isoformat(),
                reason=e.reason,
                status=e.status,
            )
            await self._append(key, window, SENTINEL_ERROR)
            return
        except Exception:
            logger.exception(f"Fetch crashed for {key} window {window_start}")
            await self._append(key, window, SENTINEL_ERROR)
            return

        try:
            partial = self._normalize(payload, plan.direction, plan.airline)
        except Exception:
            logger.exception(f"Normalizer crashed for {key} window {window_start}")
            partial = SENTINEL_ERROR

        if partial == SENTINEL_ERROR:
            log_event(
                logger,
                "fanout_window_unusable_payload",
                level=logging.WARNING,
                key=key,
                window=window,
                window_start=window_start.isoformat(),
                payload=payload[:200],
            )

        await self._append(key, window, partial)

    async def _append(self, key: str, window: int, value: str) -> None:
        try:
            await self._store.append(key, value, window)
            return
        except StoreError:
            logger.exception(f"Could not store partial result for {key} window {window}")

        # The key can no longer complete; let polls report it as failed
        try:
            await self._store.mark_failed(key)
        except StoreError:
            logger.exception(f"Could not flag {key} as failed, polls will see it expire")

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait for every window started so far to store its result."""
        while self._tasks:
            results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for r in results:
                if isinstance(r, Exception):
                    logger.error(f"Window task ended with {r!r}", exc_info=r)
