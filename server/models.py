# models.py
import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from flight_status.models import Direction

_IATA_AIRPORT_RE = re.compile(r"[A-Z]{3}")
# IATA airline codes are 2 characters; 3-letter codes are reserved but unassigned
_IATA_AIRLINE_RE = re.compile(r"[A-Z0-9]{2,3}")


class FlightStatusQuery(BaseModel):
    """Query of the flight status form."""

    iata: str = Field(..., description="Airport IATA code, e.g. JFK")
    direction: Direction = Field(..., description="dep - departures, arr - arrivals")
    airline: Optional[str] = Field(default=None, description="Airline IATA code, e.g. DL")

    @field_validator("iata")
    @classmethod
    def _validate_iata(cls, v: str) -> str:
        if v == "":
            raise ValueError("Required!")
        if not _IATA_AIRPORT_RE.fullmatch(v):
            raise ValueError("Invalid!")
        return v

    @field_validator("airline")
    @classmethod
    def _validate_airline(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not _IATA_AIRLINE_RE.fullmatch(v):
            raise ValueError("Invalid!")
        return v
