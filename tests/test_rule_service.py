# tests/test_rule_service.py
from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy import select

from occupancy_engine.core.errors import NotFoundError, ValidationError
from occupancy_engine.models.change_log import ScheduleChangeLog
from occupancy_engine.models.ledger_entry import LedgerEntry
from occupancy_engine.models.schedule_rule import ScheduleRule
from occupancy_engine.schemas.edit_policy import DeleteMode
from occupancy_engine.schemas.occurrence import OccurrenceOrigin
from occupancy_engine.schemas.recurrence import DateRangeDaily, FixedDate, WeeklyDays, Weekday
from occupancy_engine.schemas.schedule_rule import ScheduleRuleCreate, ScheduleRuleUpdate
from occupancy_engine.services.rule_service import (
    create_rule,
    delete_rule,
    list_occurrences,
    list_rules,
    update_rule,
)

# 2024-06-12 12:00 in Chicago.
NOW = datetime(2024, 6, 12, 17, 0, tzinfo=timezone.utc)
TODAY = date(2024, 6, 12)


def _sunday_rule(**overrides) -> ScheduleRuleCreate:
    payload = {
        "name": "Sunday Hours",
        "is_closed": False,
        "open_time": time(12, 0),
        "close_time": time(17, 0),
        "recurrence": WeeklyDays(days={Weekday.SUNDAY}),
        "effective_from_date": date(2024, 5, 1),
        "created_by": "ops@example.com",
    }
    payload.update(overrides)
    return ScheduleRuleCreate(**payload)


async def _journal(db, action: str) -> list[ScheduleChangeLog]:
    result = await db.execute(select(ScheduleChangeLog).where(ScheduleChangeLog.action == action))
    return list(result.scalars().all())


# --------------------------------------------------------------------------
# create_rule
# --------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_recurring_rule_defaults_and_journal(db_session, site):
    rule = await create_rule(
        db_session,
        site.id,
        ScheduleRuleCreate(name="Christmas", is_closed=True, recurrence=FixedDate(month=12, day=25)),
        NOW,
    )

    assert rule.rule_type == "fixed_date"
    assert rule.is_recurring is True
    assert rule.effective_from_date == TODAY
    assert rule.effective_to_date is None
    assert rule.open_time is None

    entries = await _journal(db_session, "rule_created")
    assert len(entries) == 1
    assert entries[0].rule_id == rule.id


@pytest.mark.asyncio
async def test_exception_date_creates_a_single_rule(db_session, site):
    rule = await create_rule(
        db_session,
        site.id,
        ScheduleRuleCreate(
            name="Early Close",
            open_time=time(9, 0),
            close_time=time(14, 0),
            exception_date=date(2024, 7, 3),
        ),
        NOW,
    )

    assert rule.rule_type == "single"
    assert rule.is_recurring is False
    assert rule.exception_date == date(2024, 7, 3)
    assert (rule.effective_from_date, rule.effective_to_date) == (date(2024, 7, 3), date(2024, 7, 3))


@pytest.mark.asyncio
async def test_create_requires_exactly_one_definition(db_session, site):
    with pytest.raises(ValidationError) as excinfo:
        await create_rule(db_session, site.id, ScheduleRuleCreate(name="Nothing", is_closed=True), NOW)
    assert excinfo.value.field == "recurrence"

    with pytest.raises(ValidationError):
        await create_rule(
            db_session,
            site.id,
            ScheduleRuleCreate(
                name="Both",
                is_closed=True,
                exception_date=date(2024, 7, 3),
                recurrence=FixedDate(month=7, day=3),
            ),
            NOW,
        )


@pytest.mark.asyncio
async def test_open_rule_requires_ordered_hours(db_session, site):
    with pytest.raises(ValidationError) as excinfo:
        await create_rule(db_session, site.id, _sunday_rule(open_time=None), NOW)
    assert excinfo.value.field == "open_time"

    with pytest.raises(ValidationError) as excinfo:
        await create_rule(db_session, site.id, _sunday_rule(open_time=time(18, 0)), NOW)
    assert excinfo.value.field == "close_time"

    assert await list_rules(db_session, site.id) == []


@pytest.mark.asyncio
async def test_date_range_rule_needs_no_rule_hours(db_session, site):
    spec = DateRangeDaily.hotel_stay(date(2024, 6, 20), date(2024, 6, 23), time(15, 0), time(11, 0))
    rule = await create_rule(db_session, site.id, ScheduleRuleCreate(name="Conference", recurrence=spec), NOW)

    assert (rule.effective_from_date, rule.effective_to_date) == (spec.start, spec.end)
    assert rule.recurrence == spec


@pytest.mark.asyncio
async def test_create_for_unknown_site(db_session):
    with pytest.raises(NotFoundError):
        await create_rule(db_session, 404, _sunday_rule(), NOW)


# --------------------------------------------------------------------------
# update_rule
# --------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_edit_only_shapes_today_and_later(db_session, site):
    rule = await create_rule(db_session, site.id, _sunday_rule(), NOW)

    await update_rule(
        db_session,
        rule.id,
        ScheduleRuleUpdate(close_time=time(15, 0), changed_by="mgr@example.com"),
        NOW,
    )

    listing = await list_occurrences(db_session, site.id, NOW, date(2024, 6, 1), date(2024, 6, 30))

    assert {o.close_time for o in listing.past} == {time(17, 0)}
    assert {o.origin for o in listing.past} == {OccurrenceOrigin.FROZEN}
    assert {o.close_time for o in listing.upcoming} == {time(15, 0)}

    entries = await _journal(db_session, "rule_edited")
    assert entries[0].changed_by == "mgr@example.com"
    assert entries[0].details == {"close_time": "15:00:00"}


@pytest.mark.asyncio
async def test_recurrence_change_keeps_old_history(db_session, site):
    rule = await create_rule(db_session, site.id, _sunday_rule(), NOW)

    updated = await update_rule(
        db_session,
        rule.id,
        ScheduleRuleUpdate(recurrence=WeeklyDays(days={Weekday.SATURDAY})),
        NOW,
    )
    assert updated.recurrence == WeeklyDays(days={Weekday.SATURDAY})

    listing = await list_occurrences(db_session, site.id, NOW, date(2024, 6, 1), date(2024, 6, 30))

    assert [o.occurrence_date.weekday() for o in listing.past] == [6, 6]
    assert [o.occurrence_date.weekday() for o in listing.upcoming] == [5, 5, 5]


@pytest.mark.asyncio
async def test_edit_keeps_history_older_than_the_default_window(db_session, site):
    rule = await create_rule(
        db_session,
        site.id,
        ScheduleRuleCreate(
            name="Christmas",
            is_closed=True,
            recurrence=FixedDate(month=12, day=25),
            effective_from_date=date(2020, 1, 1),
        ),
        NOW,
    )

    await update_rule(db_session, rule.id, ScheduleRuleUpdate(name="Christmas Day"), NOW)

    listing = await list_occurrences(db_session, site.id, NOW, date(2020, 1, 1), date(2024, 12, 31))

    assert [(o.occurrence_date.year, o.name) for o in listing.past] == [
        (2020, "Christmas"),
        (2021, "Christmas"),
        (2022, "Christmas"),
        (2023, "Christmas"),
    ]
    assert {o.origin for o in listing.past} == {OccurrenceOrigin.FROZEN}
    assert [o.name for o in listing.upcoming] == ["Christmas Day"]


@pytest.mark.asyncio
async def test_edit_rejects_start_after_the_rule_end(db_session, site):
    rule = await create_rule(
        db_session,
        site.id,
        ScheduleRuleCreate(name="Holiday Close", is_closed=True, exception_date=date(2024, 12, 25)),
        NOW,
    )

    with pytest.raises(ValidationError) as excinfo:
        await update_rule(
            db_session,
            rule.id,
            ScheduleRuleUpdate(effective_from_date=date(2025, 1, 5)),
            NOW,
        )
    assert excinfo.value.field == "effective_from_date"

    stored = await db_session.get(ScheduleRule, rule.id)
    assert stored.effective_from_date == date(2024, 12, 25)
    assert stored.frozen_through is None


@pytest.mark.asyncio
async def test_empty_edit_is_rejected(db_session, site):
    rule = await create_rule(db_session, site.id, _sunday_rule(), NOW)
    with pytest.raises(ValidationError):
        await update_rule(db_session, rule.id, ScheduleRuleUpdate(changed_by="x"), NOW)


# --------------------------------------------------------------------------
# delete_rule
# --------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_full_delete_retires_and_keeps_history(db_session, site):
    rule = await create_rule(db_session, site.id, _sunday_rule(), NOW)

    result = await delete_rule(db_session, rule.id, None, NOW, changed_by="ops@example.com")

    assert result.mode == DeleteMode.FULL_DELETE
    assert result.retired is True
    # Sundays from 2024-06-16 through the end of the lookahead year (2025).
    assert result.removed_count == 29 + 52

    listing = await list_occurrences(db_session, site.id, NOW, date(2024, 5, 1), date(2024, 6, 30))
    assert listing.upcoming == []
    assert [o.occurrence_date for o in listing.past] == [
        date(2024, 5, 5),
        date(2024, 5, 12),
        date(2024, 5, 19),
        date(2024, 5, 26),
        date(2024, 6, 2),
        date(2024, 6, 9),
    ]

    journal = await _journal(db_session, "rule_deleted")
    assert journal[0].removed_count == result.removed_count
    assert journal[0].range_start == TODAY


@pytest.mark.asyncio
async def test_partial_delete_caps_the_rule(db_session, site):
    rule = await create_rule(db_session, site.id, _sunday_rule(), NOW)

    result = await delete_rule(db_session, rule.id, date(2024, 7, 1), NOW)

    assert result.mode == DeleteMode.PARTIAL_DELETE
    assert result.cap_date == date(2024, 6, 30)
    assert result.retired is False

    stored = await db_session.get(ScheduleRule, rule.id)
    assert stored.effective_to_date == date(2024, 6, 30)

    listing = await list_occurrences(db_session, site.id, NOW, date(2024, 6, 1), date(2024, 7, 31))
    assert [o.occurrence_date for o in listing.upcoming] == [date(2024, 6, 16), date(2024, 6, 23), date(2024, 6, 30)]


@pytest.mark.asyncio
async def test_partial_delete_that_leaves_nothing_retires(db_session, site):
    rule = await create_rule(
        db_session,
        site.id,
        _sunday_rule(effective_from_date=date(2024, 7, 1)),
        NOW,
    )

    result = await delete_rule(db_session, rule.id, date(2024, 7, 1), NOW)

    assert result.mode == DeleteMode.PARTIAL_DELETE
    assert result.retired is True


@pytest.mark.asyncio
async def test_partial_delete_removes_ledger_rows_from_boundary(db_session, site):
    rule = await create_rule(db_session, site.id, _sunday_rule(), NOW)
    db_session.add(
        LedgerEntry(
            rule_id=rule.id,
            site_id=site.id,
            occurrence_date=date(2024, 7, 7),
            name="Override",
            is_closed=True,
            is_override=True,
        )
    )
    await db_session.commit()

    await delete_rule(db_session, rule.id, date(2024, 7, 1), NOW)

    remaining = await db_session.execute(
        select(LedgerEntry.occurrence_date).where(
            LedgerEntry.rule_id == rule.id,
            LedgerEntry.occurrence_date >= date(2024, 7, 1),
        )
    )
    assert remaining.scalars().all() == []


@pytest.mark.asyncio
async def test_delete_with_past_from_date_is_rejected(db_session, site):
    rule = await create_rule(db_session, site.id, _sunday_rule(), NOW)
    with pytest.raises(ValidationError):
        await delete_rule(db_session, rule.id, date(2024, 6, 1), NOW)


@pytest.mark.asyncio
async def test_delete_unknown_rule(db_session):
    with pytest.raises(NotFoundError):
        await delete_rule(db_session, 12345, None, NOW)
