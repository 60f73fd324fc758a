"""Pytest configuration and fixtures."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from redis.exceptions import TimeoutError as RedisTimeoutError

# Ensure server/ is on path when running tests without installed package
server = Path(__file__).resolve().parent.parent / "server"
if server.exists() and str(server) not in sys.path:
    sys.path.insert(0, str(server))


class FakePipeline:
    """Buffers commands and applies them together on execute()."""

    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._ops: List[tuple] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._ops.clear()

    def rpush(self, key, *values):
        self._ops.append(("rpush", key, values))
        return self

    def expire(self, key, seconds):
        self._ops.append(("expire", key, seconds))
        return self

    def lrange(self, key, start, end):
        self._ops.append(("lrange", key, start, end))
        return self

    def delete(self, *keys):
        self._ops.append(("delete", keys))
        return self

    def set(self, key, value, ex=None):
        self._ops.append(("set", key, value, ex))
        return self

    def llen(self, key):
        self._ops.append(("llen", key))
        return self

    def exists(self, *keys):
        self._ops.append(("exists", keys))
        return self

    async def execute(self) -> List[Any]:
        self._redis._check()
        ops, self._ops = self._ops, []
        results = [self._redis._apply(op) for op in ops]
        self._redis._lose_reply()
        return results


class FakeScript:
    """The append-once script, run atomically against the in-memory data."""

    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis

    async def __call__(self, keys=(), args=()) -> int:
        self._redis._check()
        key, marker = keys
        value, ttl = args
        added = 0
        if marker not in self._redis.values:
            self._redis._apply(("set", marker, 1, int(ttl)))
            self._redis._apply(("rpush", key, (value,)))
            self._redis._apply(("expire", key, int(ttl)))
            added = 1
        self._redis._lose_reply()
        return added


class FakeRedis:
    """In-memory stand-in for the handful of redis.asyncio calls the store makes."""

    def __init__(
        self,
        fail: Optional[Exception] = None,
        fail_times: int = 0,
        lost_replies: int = 0,
    ) -> None:
        self.lists: Dict[str, List[str]] = {}
        self.values: Dict[str, Any] = {}
        self.ttls: Dict[str, int] = {}
        self.fail = fail
        self.fail_times = fail_times
        self.executes = 0
        # Number of calls whose effect is applied but whose reply times out
        self.lost_replies = lost_replies

    def _check(self) -> None:
        self.executes += 1
        if self.fail is None:
            return
        if self.fail_times and self.executes > self.fail_times:
            return
        raise self.fail

    def _lose_reply(self) -> None:
        if self.lost_replies > 0:
            self.lost_replies -= 1
            raise RedisTimeoutError("Timeout reading from socket")

    def _apply(self, op: tuple) -> Any:
        name = op[0]
        if name == "rpush":
            _, key, values = op
            self.lists.setdefault(key, []).extend(str(v) for v in values)
            return len(self.lists[key])
        if name == "expire":
            _, key, seconds = op
            if key not in self.lists and key not in self.values:
                return False
            self.ttls[key] = seconds
            return True
        if name == "lrange":
            _, key, start, end = op
            items = self.lists.get(key, [])
            return list(items[start:] if end == -1 else items[start : end + 1])
        if name == "delete":
            _, keys = op
            removed = 0
            for k in keys:
                removed += int(self.lists.pop(k, None) is not None)
                removed += int(self.values.pop(k, None) is not None)
                self.ttls.pop(k, None)
            return removed
        if name == "llen":
            return len(self.lists.get(op[1], []))
        if name == "exists":
            return sum(1 for k in op[1] if k in self.lists or k in self.values)
        if name == "set":
            _, key, value, ex = op
            self.values[key] = str(value)
            if ex is not None:
                self.ttls[key] = ex
            return True
        raise AssertionError(f"unexpected op {name}")

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    def register_script(self, script: str) -> FakeScript:
        return FakeScript(self)

    async def set(self, key: str, value: Any, ex: Optional[int] = None) -> bool:
        self._check()
        result = self._apply(("set", key, value, ex))
        self._lose_reply()
        return result

    async def llen(self, key: str) -> int:
        self._check()
        return len(self.lists.get(key, []))

    async def exists(self, *keys: str) -> int:
        self._check()
        return sum(1 for k in keys if k in self.lists or k in self.values)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


DEPARTURES_PAYLOAD: Dict[str, Any] = {
    "appendix": {
        "airlines": [
            {"fs": "B6", "name": "JetBlue Airways"},
            {"fs": "DL", "name": "Delta Air Lines"},
            {"fs": "OK", "name": "Czech Airlines"},
            {"fs": "AM", "name": "Aeromexico"},
        ],
        "airports": [
            {"fs": "BUF", "city": "Buffalo"},
            {"fs": "JFK", "city": "New York"},
            {"fs": "BOS", "city": "Boston"},
        ],
    },
    "flightStatuses": [
        {
            "flightId": 276227628,
            "carrierFsCode": "DL",
            "flightNumber": "2390",
            "departureAirportFsCode": "JFK",
            "arrivalAirportFsCode": "BOS",
            "departureDate": {"dateLocal": "2012-09-30T21:50:00.000"},
            "arrivalDate": {"dateLocal": "2012-09-30T23:15:00.000"},
            "status": "A",
            "operationalTimes": {
                "actualGateDeparture": {"dateLocal": "2012-09-30T21:50:00.000"},
                "actualGateArrival": {"dateLocal": "2012-09-30T23:16:00.000"},
            },
            "codeshares": [
                {"fsCode": "AM", "flightNumber": "5350"},
                {"fsCode": "OK", "flightNumber": "3100"},
            ],
            "airportResources": {
                "departureTerminal": "2",
                "departureGate": "20",
                "arrivalTerminal": "A",
                "arrivalGate": "A20",
            },
        },
        {
            "flightId": 276227644,
            "carrierFsCode": "B6",
            "flightNumber": "10",
            "departureAirportFsCode": "JFK",
            "arrivalAirportFsCode": "BUF",
            "departureDate": {"dateLocal": "2012-09-30T21:10:00.000"},
            "arrivalDate": {"dateLocal": "2012-09-30T22:37:00.000"},
            "status": "L",
        },
    ],
}

ARRIVALS_PAYLOAD: Dict[str, Any] = {
    "appendix": {
        "airlines": [
            {"fs": "B6", "name": "JetBlue Airways"},
            {"fs": "AA", "name": "American Airlines"},
        ],
        "airports": [
            {"fs": "JFK", "city": "New York"},
            {"fs": "SFO", "city": "San Francisco"},
            {"fs": "SEA", "city": "Seattle"},
        ],
    },
    "flightStatuses": [
        {
            "flightId": 276258111,
            "carrierFsCode": "AA",
            "flightNumber": "16",
            "departureAirportFsCode": "SFO",
            "arrivalAirportFsCode": "JFK",
            "departureDate": {"dateLocal": "2012-09-30T12:30:00.000"},
            "arrivalDate": {"dateLocal": "2012-09-30T21:15:00.000"},
            "status": "L",
        },
        {
            "flightId": 276257569,
            "carrierFsCode": "B6",
            "flightNumber": "176",
            "departureAirportFsCode": "SEA",
            "arrivalAirportFsCode": "JFK",
            "departureDate": {"dateLocal": "2012-09-30T12:55:00.000"},
            "arrivalDate": {"dateLocal": "2012-09-30T21:12:00.000"},
            "status": "A",
            "operationalTimes": {
                "actualGateDeparture": {"dateLocal": "2012-09-30T12:49:00.000"},
                "actualGateArrival": {"dateLocal": "2012-09-30T20:52:00.000"},
            },
            "airportResources": {
                "departureTerminal": "A",
                "departureGate": "10",
                "arrivalTerminal": "5",
                "arrivalGate": "9",
            },
        },
    ],
}


@pytest.fixture
def departures_json() -> str:
    return json.dumps(DEPARTURES_PAYLOAD)


@pytest.fixture
def arrivals_json() -> str:
    return json.dumps(ARRIVALS_PAYLOAD)
