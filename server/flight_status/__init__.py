from __future__ import annotations

"""
flight_status package

Public API:
    - FanOutPlanner, compute_window_plan, start_time_for
    - CompletionPoller, merge_partials
    - RendezvousStore, KeyStatus, new_key, is_valid_key, expected_count
    - FlightStatsClient
    - flights_json, build_records
    - FlightRecord, RequestPlan, PollResult, PollState, Direction
"""

from .errors import (
    FlightStatusError,
    InvalidKey,
    ParseError,
    StoreError,
    VendorError,
)
from .flightstats_client import FlightStatsClient
from .models import (
    SENTINEL_BAD_AIRPORT,
    SENTINEL_ERROR,
    Direction,
    FlightRecord,
    PollResult,
    PollState,
    RequestPlan,
    WindowPlan,
)
from .normalizer import build_records, flights_json
from .planner import FanOutPlanner, compute_window_plan, start_time_for
from .poller import CompletionPoller, merge_partials
from .store import (
    KeyStatus,
    RendezvousStore,
    expected_count,
    is_valid_key,
    new_key,
)

__all__ = [
    "CompletionPoller",
    "Direction",
    "FanOutPlanner",
    "FlightRecord",
    "FlightStatsClient",
    "FlightStatusError",
    "InvalidKey",
    "KeyStatus",
    "ParseError",
    "PollResult",
    "PollState",
    "RendezvousStore",
    "RequestPlan",
    "SENTINEL_BAD_AIRPORT",
    "SENTINEL_ERROR",
    "StoreError",
    "VendorError",
    "WindowPlan",
    "build_records",
    "compute_window_plan",
    "expected_count",
    "flights_json",
    "is_valid_key",
    "merge_partials",
    "new_key",
    "start_time_for",
]
