# occupancy_engine/services/rule_service.py
from __future__ import annotations

from datetime import date as date_type, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.core.config import get_settings
from occupancy_engine.core.errors import NotFoundError, ValidationError
from occupancy_engine.core.logging import get_logger
from occupancy_engine.models.schedule_rule import ScheduleRule
from occupancy_engine.schemas.edit_policy import DeleteMode, DeleteResult
from occupancy_engine.schemas.occurrence import Occurrence, OccurrenceListing, OccurrenceOverride
from occupancy_engine.schemas.recurrence import (
    DateRangeDaily,
    RecurrenceSpec,
    Single,
    dump_recurrence,
    parse_recurrence,
)
from occupancy_engine.schemas.schedule_rule import (
    ScheduleRuleCreate,
    ScheduleRuleRead,
    ScheduleRuleUpdate,
)
from occupancy_engine.services.change_log import record_change
from occupancy_engine.services.edit_policy import EditPolicyGuard
from occupancy_engine.services.occurrence_ledger import (
    OccurrenceLedger,
    default_window,
    rule_window,
    validate_hours,
)
from occupancy_engine.services.recurrence_expander import expand_between
from occupancy_engine.services.site_clock import LocalToday, site_today

logger = get_logger(__name__)


def _derived_window(spec: RecurrenceSpec, today: date_type) -> tuple[date_type, date_type | None]:
    """
    Default effective window for a spec: one-offs and ranges bound themselves,
    everything else starts today and runs open-ended.
    """
    if isinstance(spec, Single):
        return spec.date, spec.date
    if isinstance(spec, DateRangeDaily):
        return spec.start, spec.end
    return today, None


def _check_rule_hours(spec: RecurrenceSpec, is_closed: bool, open_time, close_time) -> None:
    # Date ranges carry their own per-day hours.
    if isinstance(spec, DateRangeDaily):
        return
    validate_hours(is_closed, open_time, close_time)


def _json_safe(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


async def load_rule(db: AsyncSession, rule_id: int) -> ScheduleRule:
    rule = await db.get(ScheduleRule, rule_id)
    if rule is None:
        raise NotFoundError("Rule", rule_id)
    return rule


# ----------------------------------------------------------------------
# Listing
# ----------------------------------------------------------------------

async def list_rules(
    db: AsyncSession,
    site_id: int,
    include_retired: bool = False,
) -> list[ScheduleRuleRead]:
    stmt = select(ScheduleRule).where(ScheduleRule.site_id == site_id)
    if not include_retired:
        stmt = stmt.where(ScheduleRule.retired.is_(False))
    result = await db.execute(stmt.order_by(ScheduleRule.id))
    return [ScheduleRuleRead.model_validate(rule) for rule in result.scalars().all()]


async def list_occurrences(
    db: AsyncSession,
    site_id: int,
    now_utc: datetime,
    start_date: date_type | None = None,
    end_date: date_type | None = None,
) -> OccurrenceListing:
    """
    Resolve a site's occurrences and split them around the site-local today.

    A missing bound falls back to the default window edge.
    """
    _, local = await site_today(db, site_id, now_utc)
    today = local.date
    window_start, window_end = default_window(today)
    start = start_date or window_start
    end = end_date or window_end

    occurrences = await OccurrenceLedger(db).resolve(site_id, start, end, today=today)
    return OccurrenceListing(
        site_id=site_id,
        today=today,
        start_date=start,
        end_date=end,
        occurrences=occurrences,
        past=[occ for occ in occurrences if occ.is_past],
        upcoming=[occ for occ in occurrences if not occ.is_past],
    )


# ----------------------------------------------------------------------
# Create
# ----------------------------------------------------------------------

async def create_rule(
    db: AsyncSession,
    site_id: int,
    payload: ScheduleRuleCreate,
    now_utc: datetime,
) -> ScheduleRuleRead:
    """
    Validate and persist a new exception rule.

    Nothing is written if validation fails.
    """
    _, local = await site_today(db, site_id, now_utc)

    if (payload.recurrence is None) == (payload.exception_date is None):
        raise ValidationError(
            "Provide exactly one of recurrence or exception_date.",
            field="recurrence",
        )
    spec: RecurrenceSpec = payload.recurrence or Single(date=payload.exception_date)

    _check_rule_hours(spec, payload.is_closed, payload.open_time, payload.close_time)

    default_from, effective_to = _derived_window(spec, local.date)
    effective_from = payload.effective_from_date or default_from
    if effective_to is not None and effective_to < effective_from:
        raise ValidationError(
            "effective_from_date is after the last date this rule can produce.",
            field="effective_from_date",
        )

    is_date_range = isinstance(spec, DateRangeDaily)
    rule = ScheduleRule(
        site_id=site_id,
        name=payload.name,
        is_closed=payload.is_closed and not is_date_range,
        open_time=None if payload.is_closed or is_date_range else payload.open_time,
        close_time=None if payload.is_closed or is_date_range else payload.close_time,
        is_recurring=not isinstance(spec, Single),
        exception_date=spec.date if isinstance(spec, Single) else None,
        rule_type=spec.type,
        recurrence=dump_recurrence(spec),
        effective_from_date=effective_from,
        effective_to_date=effective_to,
        retired=False,
        created_by=payload.created_by,
    )
    db.add(rule)
    await db.commit()
    await db.refresh(rule)

    created = ScheduleRuleRead.model_validate(rule)
    logger.info(
        "rule_created",
        rule_id=rule.id,
        site_id=site_id,
        rule_type=rule.rule_type,
        effective_from=effective_from.isoformat(),
    )
    await record_change(
        db,
        action="rule_created",
        message=f'Created {rule.rule_type} rule "{rule.name}"',
        site_id=site_id,
        rule_id=rule.id,
        changed_by=payload.created_by,
        range_start=effective_from,
        range_end=effective_to,
        details={"recurrence": rule.recurrence},
    )
    return created


# ----------------------------------------------------------------------
# Forward-only edit
# ----------------------------------------------------------------------

async def update_rule(
    db: AsyncSession,
    rule_id: int,
    payload: ScheduleRuleUpdate,
    now_utc: datetime,
) -> ScheduleRuleRead:
    """
    Apply a forward-only edit.

    Past occurrences are frozen first, so the new definition only shapes
    dates on or after the site-local today.
    """
    rule = await load_rule(db, rule_id)
    _, local = await site_today(db, rule.site_id, now_utc)
    today = local.date

    changes: dict[str, Any] = {
        field: getattr(payload, field)
        for field in payload.model_fields_set
        if field != "changed_by"
    }
    # These columns are not nullable; an explicit null means "unchanged".
    for field in ("name", "is_closed", "recurrence", "effective_from_date"):
        if field in changes and changes[field] is None:
            del changes[field]
    if not changes:
        raise ValidationError("No valid fields to update.")

    EditPolicyGuard.check_edit(rule, changes, today)

    old_spec = parse_recurrence(rule.recurrence)
    new_spec: RecurrenceSpec = changes.get("recurrence", old_spec)
    is_closed = changes.get("is_closed", rule.is_closed)
    open_time = changes.get("open_time", rule.open_time)
    close_time = changes.get("close_time", rule.close_time)
    _check_rule_hours(new_spec, is_closed, open_time, close_time)

    effective_from = changes.get("effective_from_date", rule.effective_from_date)
    effective_to = rule.effective_to_date
    if "recurrence" in changes:
        _, derived_to = _derived_window(new_spec, today)
        if derived_to is not None:
            effective_to = derived_to
        elif isinstance(old_spec, (Single, DateRangeDaily)):
            # The old bound came from the recurrence itself, not from a delete.
            effective_to = None
    if effective_to is not None and effective_to < effective_from:
        raise ValidationError(
            "effective_from_date is after the last date this rule can produce.",
            field="effective_from_date",
        )

    await OccurrenceLedger(db).freeze_past(rule, today)

    is_date_range = isinstance(new_spec, DateRangeDaily)
    rule.name = changes.get("name", rule.name)
    rule.is_closed = bool(is_closed) and not is_date_range
    rule.open_time = None if is_closed or is_date_range else open_time
    rule.close_time = None if is_closed or is_date_range else close_time

    if "recurrence" in changes:
        rule.recurrence = dump_recurrence(new_spec)
        rule.rule_type = new_spec.type
        rule.is_recurring = not isinstance(new_spec, Single)
        rule.exception_date = new_spec.date if isinstance(new_spec, Single) else None

    rule.effective_from_date = effective_from
    rule.effective_to_date = effective_to

    await db.commit()
    await db.refresh(rule)

    updated = ScheduleRuleRead.model_validate(rule)
    logger.info("rule_edited", rule_id=rule.id, fields=sorted(changes))
    await record_change(
        db,
        action="rule_edited",
        message=f'Edited rule "{rule.name}" ({", ".join(sorted(changes))})',
        site_id=rule.site_id,
        rule_id=rule.id,
        changed_by=payload.changed_by,
        range_start=today,
        details={field: _json_safe(value) for field, value in changes.items()},
    )
    return updated


# ----------------------------------------------------------------------
# Delete / retire
# ----------------------------------------------------------------------

async def delete_rule(
    db: AsyncSession,
    rule_id: int,
    from_date: date_type | None,
    now_utc: datetime,
    changed_by: str | None = None,
) -> DeleteResult:
    """
    Fully or partially delete a rule without touching its history.

    Full delete
        Remove every occurrence from today on and retire the rule.
    Partial delete
        Remove every occurrence from `from_date` on and cap
        `effective_to_date` at `from_date - 1`. A rule left with nothing to
        produce is retired as well.
    """
    rule = await db.get(ScheduleRule, rule_id)
    if rule is None:
        local = LocalToday.at(get_settings().DEFAULT_SITE_TIMEZONE, now_utc)
    else:
        _, local = await site_today(db, rule.site_id, now_utc)
    today = local.date

    classification = EditPolicyGuard.classify_delete(rule, from_date, today)
    if classification.mode == DeleteMode.RULE_NOT_FOUND:
        raise NotFoundError("Rule", rule_id)
    if rule.retired:
        raise ValidationError("Rule is already retired.", field="rule_id")

    ledger = OccurrenceLedger(db)
    await ledger.freeze_past(rule, today)

    if classification.mode == DeleteMode.FULL_DELETE:
        boundary = today
    else:
        boundary = from_date

    horizon = default_window(today)[1]
    spec = parse_recurrence(rule.recurrence)
    projected = {
        item.day for item in expand_between(spec, *rule_window(rule, boundary, horizon))
    }
    ledgered = set(await ledger.entry_dates(rule.id, start_date=boundary))
    removed_count = len(projected | ledgered)

    await ledger.remove_from(rule.id, boundary)

    if classification.mode == DeleteMode.FULL_DELETE:
        rule.retired = True
    else:
        cap = classification.cap_date
        if rule.effective_to_date is None or rule.effective_to_date > cap:
            rule.effective_to_date = cap
        kept_history = await ledger.entry_dates(rule.id, end_date=cap)
        live_start, live_end = rule_window(rule, today, cap)
        kept_live = expand_between(spec, live_start, live_end)
        if not kept_history and not kept_live:
            rule.retired = True

    await db.commit()
    await db.refresh(rule)

    result = DeleteResult(
        rule_id=rule.id,
        mode=classification.mode,
        cap_date=classification.cap_date,
        removed_count=removed_count,
        retired=rule.retired,
    )
    logger.info(
        "rule_deleted",
        rule_id=rule.id,
        mode=classification.mode.value,
        boundary=boundary.isoformat(),
        removed=removed_count,
        retired=rule.retired,
    )
    await record_change(
        db,
        action="rule_deleted",
        message=(
            f'{classification.mode.value.replace("_", " ").capitalize()} of rule "{rule.name}": '
            f"{removed_count} occurrence(s) removed from {boundary.isoformat()}"
        ),
        site_id=rule.site_id,
        rule_id=rule.id,
        changed_by=changed_by,
        range_start=boundary,
        range_end=horizon,
        removed_count=removed_count,
        details={"mode": classification.mode.value, "retired": result.retired},
    )

    return result


# ----------------------------------------------------------------------
# Manual override
# ----------------------------------------------------------------------

async def override_occurrence(
    db: AsyncSession,
    rule_id: int,
    occurrence_date: date_type,
    payload: OccurrenceOverride,
    now_utc: datetime,
) -> Occurrence:
    rule = await load_rule(db, rule_id)
    _, local = await site_today(db, rule.site_id, now_utc)

    occurrence = await OccurrenceLedger(db).override(rule_id, occurrence_date, payload, today=local.date)

    await record_change(
        db,
        action="occurrence_override",
        message=f'Overrode "{occurrence.name}" on {occurrence_date.isoformat()}',
        site_id=rule.site_id,
        rule_id=rule.id,
        changed_by=payload.changed_by,
        range_start=occurrence_date,
        range_end=occurrence_date,
        details=occurrence.model_dump(mode="json"),
    )
    return occurrence
