# occupancy_engine/services/store_hours.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.core.errors import ValidationError
from occupancy_engine.core.logging import get_logger
from occupancy_engine.models.site import StoreHours
from occupancy_engine.schemas.recurrence import Weekday
from occupancy_engine.schemas.store_hours import StoreHoursDay, StoreHoursUpdate
from occupancy_engine.services.change_log import record_change
from occupancy_engine.services.occurrence_ledger import validate_hours
from occupancy_engine.services.site_clock import load_site

logger = get_logger(__name__)


def _fmt(value) -> str | None:
    return value.strftime("%H:%M") if value is not None else None


def _snapshot(row: StoreHours | None) -> dict | None:
    if row is None:
        return None
    return {
        "open_time": _fmt(row.open_time),
        "close_time": _fmt(row.close_time),
        "is_closed": bool(row.is_closed),
    }


async def get_store_hours(db: AsyncSession, site_id: int) -> list[StoreHoursDay]:
    """
    A site's configured base hours, Monday first.
    """
    await load_site(db, site_id)
    result = await db.execute(select(StoreHours).where(StoreHours.site_id == site_id))
    days = [StoreHoursDay.model_validate(row) for row in result.scalars().all()]
    return sorted(days, key=lambda day: day.day_of_week.number)


async def replace_store_hours(
    db: AsyncSession,
    site_id: int,
    payload: StoreHoursUpdate,
) -> list[StoreHoursDay]:
    """
    Upsert the supplied weekdays' base hours and journal each changed day.

    Weekdays not present in the payload are left as they are.
    """
    await load_site(db, site_id)

    seen: set[Weekday] = set()
    for day in payload.days:
        if day.day_of_week in seen:
            raise ValidationError(
                f"{day.day_of_week.value} appears more than once.",
                field="day_of_week",
            )
        seen.add(day.day_of_week)
        validate_hours(day.is_closed, day.open_time, day.close_time)

    result = await db.execute(select(StoreHours).where(StoreHours.site_id == site_id))
    existing = {row.day_of_week: row for row in result.scalars().all()}

    changes: list[dict] = []
    for day in payload.days:
        row = existing.get(day.day_of_week.value)
        before = _snapshot(row)
        if row is None:
            row = StoreHours(site_id=site_id, day_of_week=day.day_of_week.value)
            db.add(row)
        row.is_closed = day.is_closed
        row.open_time = None if day.is_closed else day.open_time
        row.close_time = None if day.is_closed else day.close_time
        after = _snapshot(row)
        if before != after:
            changes.append({"day_of_week": day.day_of_week.value, "old": before, "new": after})

    await db.commit()
    hours = await get_store_hours(db, site_id)

    if changes:
        logger.info("base_hours_updated", site_id=site_id, days=[c["day_of_week"] for c in changes])
        await record_change(
            db,
            action="base_hours_updated",
            message=f"Base hours updated for {', '.join(c['day_of_week'] for c in changes)}",
            site_id=site_id,
            changed_by=payload.changed_by,
            details={"changes": changes},
        )
    return hours
