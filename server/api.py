from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from redis import asyncio as aioredis
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from flight_status import (
    CompletionPoller,
    FanOutPlanner,
    FlightStatsClient,
    InvalidKey,
    PollState,
    RendezvousStore,
    SENTINEL_BAD_AIRPORT,
    StoreError,
)
from flight_status.config import REDIS_URL, RENDEZVOUS_TTL_S
from logging_utils import configure_logging, log_event, new_request_id
from models import FlightStatusQuery

# ------------------------------------------------------------------------------
# APP + LOGGING SETUP
# ------------------------------------------------------------------------------

configure_logging()
logger = logging.getLogger("flightstatus.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    redis_client = aioredis.from_url(REDIS_URL, decode_responses=True)
    store = RendezvousStore(redis_client, ttl=RENDEZVOUS_TTL_S)
    try:
        async with FlightStatsClient() as client:
            app.state.planner = FanOutPlanner(client, store)
            app.state.poller = CompletionPoller(store)
            logger.info("Starting flight status server")
            try:
                yield
            finally:
                # Let running windows store their results before the session closes
                await app.state.planner.wait_idle()
    finally:
        await redis_client.aclose()


app = FastAPI(title="Flight Status Board", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


# ------------------------------------------------------------------------------
# ACCESS LOG
# ------------------------------------------------------------------------------

@app.middleware("http")
async def access_log_middleware(request: Request, call_next):
    """One `http_request` line per call, tagged with the request id."""
    rid = new_request_id()
    t0 = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-ID"] = rid
        return response
    finally:
        log_event(
            logger,
            "http_request",
            level=logging.WARNING if status_code >= 500 else logging.INFO,
            method=request.method,
            path=request.url.path,
            # Polls are correlated with their fan-out by the rendezvous key
            key=request.query_params.get("key"),
            status_code=status_code,
            duration_ms=round((time.perf_counter() - t0) * 1000, 1),
            client_ip=request.client.host if request.client else None,
        )


# ------------------------------------------------------------------------------
# ROUTES
# ------------------------------------------------------------------------------

@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "version": app.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/request", response_class=PlainTextResponse)
async def request_flights(
    request: Request,
    iata: str = Query("", description="Airport IATA code, e.g. JFK"),
    type_: str = Query("", alias="type", description="dep - departures, arr - arrivals"),
    airline: Optional[str] = Query(None, description="Airline IATA code, e.g. DL"),
) -> str:
    """
    Start the windowed FlightStats calls for the form and return the key under
    which /response will hand out the merged flights.
    """
    try:
        query = FlightStatusQuery(iata=iata, direction=type_, airline=airline)
    except ValidationError as e:
        log_event(
            logger,
            "flight_request_rejected",
            level=logging.WARNING,
            iata=iata,
            type=type_,
            airline=airline,
            errors={".".join(map(str, err["loc"])): err["msg"] for err in e.errors()},
        )
        raise HTTPException(HTTP_400_BAD_REQUEST, "Wrong params")

    planner: FanOutPlanner = request.app.state.planner
    try:
        return await planner.dispatch(query.iata, query.direction, query.airline)
    except StoreError:
        logger.exception(f"Rendezvous store failure while dispatching {query.iata}")
        raise HTTPException(HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


@app.get("/response")
async def poll_flights(
    request: Request,
    key: str = Query("", description="Key returned by /request"),
):
    """
    JSON body:
      - null           results are not complete yet, poll again
      - [...]          merged flights of all windows
      - "bad-airport"  FlightStats does not know the airport
    """
    poller: CompletionPoller = request.app.state.poller
    try:
        result = await poller.poll(key)
    except InvalidKey as e:
        log_event(logger, "flight_poll_invalid_key", level=logging.WARNING, key=key, error=str(e))
        raise HTTPException(HTTP_400_BAD_REQUEST, "Wrong key")
    except StoreError:
        logger.exception(f"Rendezvous store failure while polling {key}")
        raise HTTPException(HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")

    if result.state is PollState.PENDING:
        return JSONResponse(None)
    if result.state is PollState.BAD_AIRPORT:
        return JSONResponse(SENTINEL_BAD_AIRPORT)
    if result.state is PollState.ERROR:
        raise HTTPException(HTTP_502_BAD_GATEWAY, "Flight status provider error")
    return JSONResponse(result.flights)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=SERVER_HOST,
        port=SERVER_PORT,
        log_level="info",
        access_log=True,
    )
