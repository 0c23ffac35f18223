# occupancy_engine/schemas/store_hours.py
from __future__ import annotations

from datetime import time

from pydantic import BaseModel, ConfigDict, Field

from occupancy_engine.schemas.recurrence import Weekday


class StoreHoursDay(BaseModel):
    """
    Base hours for one weekday.
    """

    model_config = ConfigDict(from_attributes=True)

    day_of_week: Weekday = Field(..., examples=["monday"])
    open_time: time | None = Field(None, examples=["09:00:00"])
    close_time: time | None = Field(None, examples=["21:00:00"])
    is_closed: bool = False


class StoreHoursUpdate(BaseModel):
    """
    Replacement base hours for some or all weekdays of a site.
    """

    days: list[StoreHoursDay] = Field(..., min_length=1)
    changed_by: str | None = None
