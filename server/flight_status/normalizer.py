"""
Turn one FlightStats airport-status payload into flat flight rows.

The payload lists flight statuses plus an appendix of airports and airlines
referenced by code. Each status becomes one row, and each of its codeshares
becomes one more row marked with the operating flight.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import ValidationError

from logging_utils import log_event

from .errors import ParseError
from .models import (
    SENTINEL_BAD_AIRPORT,
    SENTINEL_ERROR,
    Direction,
    FlightRecord,
)
from .utils import reindex, to_day, to_minute

logger = logging.getLogger("flightstatus.normalizer")

BAD_AIRPORT_CODE = "BAD_AIRPORT_CODE"


class FieldMap(NamedTuple):
    airport_code: str
    date: str
    actual_gate: str
    terminal: str
    gate: str


# Departures show where the flight goes, arrivals where it comes from.
# Times, terminal and gate are always taken at the requested airport.
FIELD_MAPS: Dict[Direction, FieldMap] = {
    Direction.DEPARTURE: FieldMap(
        airport_code="arrivalAirportFsCode",
        date="departureDate",
        actual_gate="actualGateDeparture",
        terminal="departureTerminal",
        gate="departureGate",
    ),
    Direction.ARRIVAL: FieldMap(
        airport_code="departureAirportFsCode",
        date="arrivalDate",
        actual_gate="actualGateArrival",
        terminal="arrivalTerminal",
        gate="arrivalGate",
    ),
}


def _termgate(resources: Optional[Dict[str, Any]], keys: FieldMap) -> Optional[str]:
    if not resources:
        return None
    parts: List[str] = []
    if resources.get(keys.terminal):
        parts.append(f"T-{resources[keys.terminal]}")
    if resources.get(keys.gate):
        parts.append(str(resources[keys.gate]))
    return " ".join(parts) if parts else None


def _lookup(table: Dict[str, Any], code: Any, what: str) -> Dict[str, Any]:
    try:
        return table[code]
    except KeyError:
        raise ParseError(f"{what} '{code}' is missing from the appendix") from None


def _expand(
    fs: Dict[str, Any],
    keys: FieldMap,
    airports: Dict[str, Any],
    airlines: Dict[str, Any],
    airline: Optional[str],
) -> List[FlightRecord]:
    airport_code = fs[keys.airport_code]
    carrier = fs["carrierFsCode"]
    date_local = fs[keys.date]["dateLocal"]

    base = FlightRecord(
        airport=f"{airport_code} {_lookup(airports, airport_code, 'Airport')['city']}",
        flight=f"{carrier} {fs['flightNumber']}",
        airline=_lookup(airlines, carrier, "Airline")["name"],
        schedule=to_minute(date_local),
        status=fs.get("status"),
    )

    if airline:
        base.date = to_day(date_local)

    actual = (fs.get("operationalTimes") or {}).get(keys.actual_gate)
    if actual:
        base.actual = to_minute(actual["dateLocal"])

    base.termgate = _termgate(fs.get("airportResources"), keys)

    out: List[FlightRecord] = []
    if not airline or airline == carrier:
        out.append(base)

    operator = f"{base.flight} {base.airline}"
    for cs in fs.get("codeshares") or []:
        if airline and airline != cs.get("fsCode"):
            continue
        out.append(
            base.model_copy(
                update={
                    "codeshare": 1,
                    "operator": operator,
                    "flight": f"{cs['fsCode']} {cs['flightNumber']}",
                    "airline": _lookup(airlines, cs["fsCode"], "Airline")["name"],
                }
            )
        )
    return out


def build_records(
    data: Dict[str, Any],
    direction: Direction,
    airline: Optional[str] = None,
) -> List[FlightRecord]:
    """
    Build the rows of one payload.

    With `airline` set, only rows whose own carrier code equals it are kept
    (base flights and codeshares are matched independently) and every row
    carries its local date. Raises ParseError on an unexpected shape.
    """
    keys = FIELD_MAPS[Direction(direction)]
    try:
        appendix = data.get("appendix") or {}
        airports = reindex(appendix.get("airports"), "fs")
        airlines = reindex(appendix.get("airlines"), "fs")
    except (KeyError, TypeError, AttributeError) as e:
        raise ParseError(f"Malformed appendix: {e!r}") from e

    records: List[FlightRecord] = []
    for fs in data.get("flightStatuses") or []:
        try:
            records.extend(_expand(fs, keys, airports, airlines, airline))
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise ParseError(f"Unexpected flight status shape: {e!r}") from e
    return records


def flights_json(
    payload: str,
    direction: Direction,
    airline: Optional[str] = None,
) -> str:
    """
    Normalize one raw payload into the partial result stored for its window:
    a JSON array of rows, or one of the `error` / `bad-airport` sentinels.
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        log_event(
            logger,
            "flightstats_payload_not_json",
            level=logging.ERROR,
            error=str(e),
            payload=(payload or "")[:200],
        )
        return SENTINEL_ERROR

    if not isinstance(data, dict):
        log_event(
            logger,
            "flightstats_payload_unexpected_shape",
            level=logging.ERROR,
            payload_type=type(data).__name__,
        )
        return SENTINEL_ERROR

    if data.get("error"):
        error = data["error"]
        if isinstance(error, dict) and error.get("errorCode") == BAD_AIRPORT_CODE:
            return SENTINEL_BAD_AIRPORT
        log_event(
            logger,
            "flightstats_payload_error_field",
            level=logging.ERROR,
            vendor_error=error,
        )
        return SENTINEL_ERROR

    try:
        records = build_records(data, direction, airline)
    except ParseError as e:
        log_event(
            logger,
            "flightstats_payload_unexpected_shape",
            level=logging.ERROR,
            error=str(e),
        )
        return SENTINEL_ERROR

    return json.dumps([r.to_json_dict() for r in records])
