from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlencode

import aiohttp

from .config import (
    FLIGHTSTATS_APP_ID,
    FLIGHTSTATS_APP_KEY,
    FLIGHTSTATS_BASE_URL,
    FLIGHTSTATS_BURST,
    FLIGHTSTATS_MAX_RPS,
    HTTP_TIMEOUT_S,
    MAX_WINDOW_HOURS,
)
from .errors import VendorError
from .models import Direction
from .utils import RateLimiter

logger = logging.getLogger("flightstatus.flightstats")


class FlightStatsClient:
    """
    FlightStats Flex "airport status" client (read-only).

    Endpoint used:
      - GET /airport/status/{iata}/{dep|arr}/{year}/{month}/{day}/{hourOfDay}
            ?codeType=IATA&utc=true&numHours={1..6}&appId=..&appKey=..

    One call covers at most six hours starting at hourOfDay (UTC). Calls are
    never retried: a failed window is reported to the caller as VendorError.
    """

    def __init__(
        self,
        app_id: str = FLIGHTSTATS_APP_ID,
        app_key: str = FLIGHTSTATS_APP_KEY,
        *,
        base_url: str = FLIGHTSTATS_BASE_URL,
        timeout: float = HTTP_TIMEOUT_S,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._app_id = app_id
        self._app_key = app_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._limiter = RateLimiter(FLIGHTSTATS_MAX_RPS, FLIGHTSTATS_BURST)

    async def __aenter__(self) -> "FlightStatsClient":
        if self._session is None:
            connector = aiohttp.TCPConnector(
                limit=20,
                limit_per_host=10,
                ttl_dns_cache=300,
                keepalive_timeout=30,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={"Accept": "application/json"},
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    @staticmethod
    def request_path(iata: str, direction: Direction, start: datetime) -> str:
        t = start.astimezone(timezone.utc)
        return (
            f"/airport/status/{iata}/{Direction(direction).value}/"
            f"{t.year}/{t.month}/{t.day}/{t.hour}"
        )

    def request_url(
        self, iata: str, direction: Direction, start: datetime, hours: int
    ) -> str:
        """URL of one window, `hours` long, starting at the UTC hour of `start`."""
        if not 1 <= hours <= MAX_WINDOW_HOURS:
            raise ValueError(
                f"numHours must be between 1 and {MAX_WINDOW_HOURS}, got {hours}"
            )
        query = urlencode(
            [
                ("codeType", "IATA"),
                ("utc", "true"),
                ("numHours", str(hours)),
                ("appId", self._app_id),
                ("appKey", self._app_key),
            ]
        )
        return f"{self._base_url}{self.request_path(iata, direction, start)}?{query}"

    async def fetch(
        self, iata: str, direction: Direction, start: datetime, hours: int
    ) -> str:
        """Return the raw JSON text of one window, or raise VendorError."""
        if not self._session:
            raise VendorError("FlightStats session is not open")

        url = self.request_url(iata, direction, start, hours)
        path = self.request_path(iata, direction, start)

        await self._limiter.acquire()
        t0 = time.perf_counter()
        try:
            async with self._session.get(url) as r:
                status = r.status
                body = await r.text()
        except asyncio.TimeoutError as e:
            logger.warning(f"FlightStats GET {path} timed out after {self._timeout}s")
            raise VendorError(f"Timeout after {self._timeout}s") from e
        except aiohttp.ClientError as e:
            logger.warning(f"FlightStats GET {path} failed: {e!r}")
            raise VendorError(f"Transport error: {e}") from e
        except UnicodeDecodeError as e:
            logger.warning(f"FlightStats GET {path} returned an undecodable body: {e}")
            raise VendorError(f"Undecodable response body: {e.reason}", status=status) from e

        elapsed = time.perf_counter() - t0
        logger.info(
            f"FlightStats GET {path} numHours={hours} status={status} took={elapsed:.2f}s"
        )
        if status != 200:
            raise VendorError(f"Response status code is {status}", status=status)
        return body
