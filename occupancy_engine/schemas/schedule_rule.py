# occupancy_engine/schemas/schedule_rule.py
from __future__ import annotations

from datetime import date, time

from pydantic import BaseModel, ConfigDict, Field

from occupancy_engine.schemas.recurrence import RecurrenceSpec


# --------------------------------------------------------------------------
# Create schema (POST /sites/{site_id}/rules)
# --------------------------------------------------------------------------

class ScheduleRuleCreate(BaseModel):
    """
    Payload for creating an exception rule.

    Supply either `recurrence` or a one-off `exception_date`, not both.
    `open_time`/`close_time` are required unless `is_closed` is true or the
    recurrence is a `date_range_daily` span (which carries its own hours).
    """

    name: str = Field(..., min_length=1, description="Human-readable rule name.", examples=["Thanksgiving"])
    is_closed: bool = Field(False, description="Whether the site is closed all day.")
    open_time: time | None = Field(None, examples=["10:00:00"])
    close_time: time | None = Field(None, examples=["16:00:00"])

    recurrence: RecurrenceSpec | None = Field(
        None,
        description="Tagged recurrence definition; `type` selects the variant.",
    )
    exception_date: date | None = Field(
        None,
        description="One-off date; shorthand for a `single` recurrence.",
        examples=["2025-07-03"],
    )

    effective_from_date: date | None = Field(
        None,
        description=(
            "First date the rule may project. Defaults to the site-local today "
            "(or to the date itself for one-off and range rules)."
        ),
    )
    created_by: str | None = Field(None, examples=["ops@example.com"])


# --------------------------------------------------------------------------
# Update schema (PATCH /rules/{rule_id})
# --------------------------------------------------------------------------

class ScheduleRuleUpdate(BaseModel):
    """
    Forward-only edit of a rule. Only provided fields are changed.
    """

    name: str | None = Field(default=None, min_length=1)
    is_closed: bool | None = Field(default=None)
    open_time: time | None = Field(default=None)
    close_time: time | None = Field(default=None)
    recurrence: RecurrenceSpec | None = Field(default=None)
    effective_from_date: date | None = Field(default=None)
    changed_by: str | None = Field(default=None)


# --------------------------------------------------------------------------
# Read schema
# --------------------------------------------------------------------------

class ScheduleRuleRead(BaseModel):
    """
    Response schema for a stored rule.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., examples=[7])
    site_id: int = Field(..., examples=[1])
    name: str
    is_closed: bool
    open_time: time | None = None
    close_time: time | None = None
    is_recurring: bool
    exception_date: date | None = None
    rule_type: str = Field(..., examples=["nth_weekday"])
    recurrence: RecurrenceSpec
    effective_from_date: date
    effective_to_date: date | None = None
    retired: bool = False
