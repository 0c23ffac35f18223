# tests/test_edit_policy.py
from datetime import date

import pytest

from occupancy_engine.core.errors import ValidationError
from occupancy_engine.models.schedule_rule import ScheduleRule
from occupancy_engine.schemas.edit_policy import DeleteMode
from occupancy_engine.schemas.recurrence import (
    FixedDate,
    Single,
    WeeklyDays,
    Weekday,
    dump_recurrence,
)
from occupancy_engine.services.edit_policy import EditPolicyGuard

TODAY = date(2024, 6, 12)


def _rule(spec, effective_from=date(2024, 1, 1), effective_to=None, retired=False) -> ScheduleRule:
    return ScheduleRule(
        id=1,
        site_id=1,
        name="Rule",
        is_closed=True,
        rule_type=spec.type,
        recurrence=dump_recurrence(spec),
        effective_from_date=effective_from,
        effective_to_date=effective_to,
        retired=retired,
    )


def test_unknown_rule_is_reported_not_raised():
    result = EditPolicyGuard.classify_delete(None, None, TODAY)
    assert result.mode == DeleteMode.RULE_NOT_FOUND


def test_single_rule_is_always_full_delete():
    rule = _rule(Single(date=date(2024, 7, 3)))

    assert EditPolicyGuard.classify_delete(rule, None, TODAY).mode == DeleteMode.FULL_DELETE
    # from_date is ignored for one-offs, even if it lies in the past.
    assert EditPolicyGuard.classify_delete(rule, date(2020, 1, 1), TODAY).mode == DeleteMode.FULL_DELETE


def test_recurring_rule_without_from_date_is_full_delete():
    rule = _rule(FixedDate(month=12, day=25))
    result = EditPolicyGuard.classify_delete(rule, None, TODAY)

    assert result.mode == DeleteMode.FULL_DELETE
    assert result.cap_date is None


def test_recurring_rule_with_from_date_is_capped_the_day_before():
    rule = _rule(WeeklyDays(days={Weekday.SUNDAY}))
    result = EditPolicyGuard.classify_delete(rule, date(2024, 9, 1), TODAY)

    assert result.mode == DeleteMode.PARTIAL_DELETE
    assert result.cap_date == date(2024, 8, 31)


def test_from_date_today_is_allowed():
    rule = _rule(WeeklyDays(days={Weekday.SUNDAY}))
    result = EditPolicyGuard.classify_delete(rule, TODAY, TODAY)
    assert result.cap_date == date(2024, 6, 11)


def test_from_date_in_the_past_is_rejected():
    rule = _rule(WeeklyDays(days={Weekday.SUNDAY}))

    with pytest.raises(ValidationError) as excinfo:
        EditPolicyGuard.classify_delete(rule, date(2024, 6, 11), TODAY)
    assert excinfo.value.field == "from_date"


def test_edit_of_retired_rule_is_rejected():
    rule = _rule(FixedDate(month=12, day=25), retired=True)
    with pytest.raises(ValidationError):
        EditPolicyGuard.check_edit(rule, {"name": "New"}, TODAY)


def test_edit_of_rule_that_already_ended_is_rejected():
    rule = _rule(FixedDate(month=12, day=25), effective_to=date(2024, 6, 1))
    with pytest.raises(ValidationError):
        EditPolicyGuard.check_edit(rule, {"name": "New"}, TODAY)


def test_started_rule_cannot_move_effective_from():
    rule = _rule(FixedDate(month=12, day=25), effective_from=date(2024, 1, 1))
    with pytest.raises(ValidationError) as excinfo:
        EditPolicyGuard.check_edit(rule, {"effective_from_date": date(2024, 7, 1)}, TODAY)
    assert excinfo.value.field == "effective_from_date"


def test_future_rule_can_move_effective_from_forward_only():
    rule = _rule(FixedDate(month=12, day=25), effective_from=date(2024, 7, 1))

    EditPolicyGuard.check_edit(rule, {"effective_from_date": date(2024, 8, 1)}, TODAY)

    with pytest.raises(ValidationError):
        EditPolicyGuard.check_edit(rule, {"effective_from_date": date(2024, 6, 1)}, TODAY)


def test_single_cannot_move_into_the_past():
    rule = _rule(Single(date=date(2024, 7, 3)), effective_from=date(2024, 7, 3), effective_to=date(2024, 7, 3))
    with pytest.raises(ValidationError) as excinfo:
        EditPolicyGuard.check_edit(rule, {"recurrence": Single(date=date(2024, 6, 1))}, TODAY)
    assert excinfo.value.field == "recurrence"


def test_forward_edit_of_hours_is_allowed():
    rule = _rule(WeeklyDays(days={Weekday.SUNDAY}))
    EditPolicyGuard.check_edit(rule, {"is_closed": False}, TODAY)
