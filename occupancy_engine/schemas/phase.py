# occupancy_engine/schemas/phase.py
from __future__ import annotations

from datetime import date, time
from enum import Enum

from pydantic import BaseModel, Field


class Phase(str, Enum):
    OCCUPIED = "occupied"
    UNOCCUPIED = "unoccupied"


class HoursSource(str, Enum):
    BASE_HOURS = "base_hours"
    EXCEPTION = "exception"


class PhaseResult(BaseModel):
    """
    Occupancy decision for a site at one instant, plus the inputs used.
    """

    site_id: int
    phase: Phase = Field(..., examples=["occupied"])
    timezone: str = Field(..., examples=["America/Chicago"])
    local_date: date
    local_time: time
    is_closed: bool
    open_time: time | None = None
    close_time: time | None = None
    source: HoursSource
    rule_id: int | None = Field(None, description="Rule whose occurrence replaced base hours, if any.")
    occurrence_name: str | None = None
