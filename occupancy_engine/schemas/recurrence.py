# occupancy_engine/schemas/recurrence.py
from __future__ import annotations

from datetime import date as date_type, time
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer, field_validator, model_validator


class Weekday(str, Enum):
    """
    Day of the week, ordered Monday-first to match `date.weekday()`.
    """

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def number(self) -> int:
        return list(Weekday).index(self)

    @classmethod
    def of(cls, day: date_type) -> "Weekday":
        return list(cls)[day.weekday()]


class IntervalUnit(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"


START_OF_DAY = time(0, 0)
END_OF_DAY = time(23, 59)


class DayHours(BaseModel):
    """
    Resolved hours for a single calendar date.
    """

    model_config = ConfigDict(frozen=True)

    is_closed: bool = False
    open_time: time | None = None
    close_time: time | None = None


class _Spec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class FixedDate(_Spec):
    """Same month/day every year, e.g. Dec 25."""

    type: Literal["fixed_date"] = "fixed_date"
    month: int = Field(..., ge=1, le=12, examples=[12])
    day: int = Field(..., ge=1, le=31, examples=[25])


class NthWeekday(_Spec):
    """
    The k-th weekday of a month (k = 1..5), or the last one (k = -1).

    A k that does not exist in a given month simply yields no date.
    """

    type: Literal["nth_weekday"] = "nth_weekday"
    month: int = Field(..., ge=1, le=12, examples=[11])
    weekday: Weekday = Field(..., examples=["thursday"])
    occurrence: int = Field(..., examples=[4])

    @field_validator("occurrence")
    @classmethod
    def _check_occurrence(cls, value: int) -> int:
        if value == -1 or 1 <= value <= 5:
            return value
        raise ValueError("occurrence must be 1-5, or -1 for the last matching weekday")


class WeeklyDays(_Spec):
    """Every listed weekday, all year round."""

    type: Literal["weekly_days"] = "weekly_days"
    days: frozenset[Weekday] = Field(..., min_length=1, examples=[["saturday", "sunday"]])

    @field_serializer("days")
    def _serialize_days(self, days: frozenset[Weekday]) -> list[str]:
        return [d.value for d in sorted(days, key=lambda d: d.number)]


class DateRangeDaily(_Spec):
    """
    A contiguous span of dates with separate hours for the first day, the
    last day and every day in between.
    """

    type: Literal["date_range_daily"] = "date_range_daily"
    start: date_type = Field(..., examples=["2024-12-24"])
    end: date_type = Field(..., examples=["2024-12-26"])

    start_day_open: time = Field(..., examples=["15:00"])
    start_day_close: time = END_OF_DAY

    middle_days_closed: bool = False
    middle_days_open: time | None = START_OF_DAY
    middle_days_close: time | None = END_OF_DAY

    end_day_open: time = START_OF_DAY
    end_day_close: time = Field(..., examples=["11:00"])

    @model_validator(mode="after")
    def _check_range(self) -> "DateRangeDaily":
        if self.end < self.start:
            raise ValueError("end must be on or after start")
        if not self.middle_days_closed and (
            self.middle_days_open is None or self.middle_days_close is None
        ):
            raise ValueError("middle_days_open and middle_days_close are required unless middle_days_closed")

        if self.start == self.end:
            pairs = [("start_day_open", "end_day_close")]
        else:
            pairs = [("start_day_open", "start_day_close"), ("end_day_open", "end_day_close")]
            if not self.middle_days_closed:
                pairs.append(("middle_days_open", "middle_days_close"))
        for open_field, close_field in pairs:
            if getattr(self, close_field) <= getattr(self, open_field):
                raise ValueError(f"{close_field} must be after {open_field}")
        return self

    @classmethod
    def hotel_stay(
        cls,
        start: date_type,
        end: date_type,
        check_in: time,
        check_out: time,
    ) -> "DateRangeDaily":
        """
        Occupied from check-in on the first day through check-out on the last.
        """
        return cls(
            start=start,
            end=end,
            start_day_open=check_in,
            start_day_close=END_OF_DAY,
            middle_days_closed=False,
            middle_days_open=START_OF_DAY,
            middle_days_close=END_OF_DAY,
            end_day_open=START_OF_DAY,
            end_day_close=check_out,
        )

    def hours_for(self, day: date_type) -> DayHours:
        """
        Pick the first-day, last-day or middle-day hours for `day`.

        A one-day range opens at the first-day open and closes at the
        last-day close.
        """
        if day == self.start and day == self.end:
            return DayHours(open_time=self.start_day_open, close_time=self.end_day_close)
        if day == self.start:
            return DayHours(open_time=self.start_day_open, close_time=self.start_day_close)
        if day == self.end:
            return DayHours(open_time=self.end_day_open, close_time=self.end_day_close)
        if self.middle_days_closed:
            return DayHours(is_closed=True)
        return DayHours(open_time=self.middle_days_open, close_time=self.middle_days_close)


class Interval(_Spec):
    """Every N days or weeks counting from an anchor date."""

    type: Literal["interval"] = "interval"
    every: int = Field(..., ge=1, examples=[2])
    unit: IntervalUnit = Field(IntervalUnit.WEEKS, examples=["weeks"])
    anchor: date_type = Field(..., examples=["2024-01-06"])


class Single(_Spec):
    """A one-off date."""

    type: Literal["single"] = "single"
    date: date_type = Field(..., examples=["2024-07-03"])


RecurrenceSpec = Annotated[
    Union[FixedDate, NthWeekday, WeeklyDays, DateRangeDaily, Interval, Single],
    Field(discriminator="type"),
]

_RECURRENCE_ADAPTER: TypeAdapter[Any] = TypeAdapter(RecurrenceSpec)


def parse_recurrence(raw: Any) -> RecurrenceSpec:
    """
    Parse a stored JSON payload (or an already-built spec) into the union.
    """
    return _RECURRENCE_ADAPTER.validate_python(raw)


def dump_recurrence(spec: RecurrenceSpec) -> dict:
    """
    JSON-safe representation used for persistence.
    """
    return _RECURRENCE_ADAPTER.dump_python(spec, mode="json")
