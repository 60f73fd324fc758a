from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

# Partial results that are not a JSON array of flights
SENTINEL_ERROR = "error"
SENTINEL_BAD_AIRPORT = "bad-airport"


class Direction(str, Enum):
    DEPARTURE = "dep"
    ARRIVAL = "arr"


class WindowPlan(NamedTuple):
    hours: int
    count: int


class RequestPlan(BaseModel):
    """Windows needed to cover the span around "now" for one request."""

    model_config = ConfigDict(frozen=True)

    iata: str
    direction: Direction
    airline: Optional[str] = None
    window_hours: int
    window_count: int
    start_time: datetime

    @property
    def span_hours(self) -> int:
        return self.window_hours * self.window_count

    def window_starts(self) -> List[datetime]:
        return [
            self.start_time + timedelta(hours=i * self.window_hours)
            for i in range(self.window_count)
        ]


class FlightRecord(BaseModel):
    """Flat flight row as consumed by the flights table."""

    airport: str
    flight: str
    airline: str
    schedule: str
    status: Optional[str] = None
    date: Optional[str] = None
    actual: Optional[str] = None
    termgate: Optional[str] = None
    codeshare: Optional[int] = None
    operator: Optional[str] = None

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class PollState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"
    BAD_AIRPORT = "bad-airport"


class PollResult(BaseModel):
    state: PollState
    flights: List[Any] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state is not PollState.PENDING
