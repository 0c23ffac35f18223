# occupancy_engine/schemas/occurrence.py
from __future__ import annotations

from datetime import date, time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class OccurrenceOrigin(str, Enum):
    """
    Where an occurrence's values came from.
    """

    LIVE = "live"          # projected from the current rule, not persisted
    FROZEN = "frozen"      # materialized history, immutable
    OVERRIDE = "override"  # manual correction for that date


class Occurrence(BaseModel):
    """
    A rule resolved to one concrete calendar date.
    """

    model_config = ConfigDict(frozen=True)

    rule_id: int = Field(..., examples=[7])
    site_id: int = Field(..., examples=[1])
    occurrence_date: date = Field(..., examples=["2024-11-28"])
    day_of_week: str = Field(..., examples=["thursday"])
    name: str = Field(..., examples=["Thanksgiving"])
    rule_type: str = Field(..., examples=["nth_weekday"])

    is_closed: bool = False
    open_time: time | None = None
    close_time: time | None = None

    is_override: bool = False
    origin: OccurrenceOrigin = OccurrenceOrigin.LIVE
    is_past: bool = Field(
        False,
        description="True if the date is strictly before the site-local today.",
    )


class OccurrenceListing(BaseModel):
    """
    Response payload for GET /sites/{site_id}/occurrences.
    """

    site_id: int
    today: date = Field(..., description="Site-local date used as the past/upcoming boundary.")
    start_date: date
    end_date: date
    occurrences: list[Occurrence] = Field(..., description="All occurrences, ordered by date then rule.")
    past: list[Occurrence]
    upcoming: list[Occurrence]


class OccurrenceOverride(BaseModel):
    """
    Manual correction for a single (rule, date).
    """

    name: str | None = Field(None, description="Defaults to the rule name.")
    is_closed: bool = False
    open_time: time | None = None
    close_time: time | None = None
    changed_by: str | None = None
