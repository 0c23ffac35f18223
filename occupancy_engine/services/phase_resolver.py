# occupancy_engine/services/phase_resolver.py
from __future__ import annotations

from datetime import datetime, time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.core.logging import get_logger
from occupancy_engine.models.site import StoreHours
from occupancy_engine.schemas.occurrence import Occurrence
from occupancy_engine.schemas.phase import HoursSource, Phase, PhaseResult
from occupancy_engine.schemas.recurrence import DayHours, Weekday
from occupancy_engine.services.occurrence_ledger import OccurrenceLedger
from occupancy_engine.services.site_clock import LocalToday, site_today

logger = get_logger(__name__)


def decide_phase(hours: DayHours, at: time) -> Phase:
    """
    Occupied iff the day is open and `open <= at < close`.

    An open day with a missing open or close time is a data error; it
    resolves to UNOCCUPIED instead of raising.
    """
    if hours.is_closed:
        return Phase.UNOCCUPIED

    if hours.open_time is None or hours.close_time is None:
        logger.warning(
            "phase_hours_incomplete",
            open_time=str(hours.open_time),
            close_time=str(hours.close_time),
        )
        return Phase.UNOCCUPIED

    if hours.open_time <= at < hours.close_time:
        return Phase.OCCUPIED
    return Phase.UNOCCUPIED


def pick_occurrence(occurrences: list[Occurrence]) -> Occurrence | None:
    """
    Choose the occurrence that governs a date when several rules land on it:
    manual overrides first, then the lowest rule id.
    """
    if not occurrences:
        return None
    return min(occurrences, key=lambda occ: (not occ.is_override, occ.rule_id))


async def base_hours_for(db: AsyncSession, site_id: int, weekday: Weekday) -> DayHours:
    result = await db.execute(
        select(StoreHours).where(
            StoreHours.site_id == site_id,
            StoreHours.day_of_week == weekday.value,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        # No base hours configured for this weekday: treat as closed.
        return DayHours(is_closed=True)
    return DayHours(
        is_closed=bool(row.is_closed),
        open_time=row.open_time,
        close_time=row.close_time,
    )


async def phase_for_local(
    db: AsyncSession,
    site_id: int,
    local: LocalToday,
) -> PhaseResult:
    """
    Resolve the phase for an already-localized instant.
    """
    occurrences = await OccurrenceLedger(db).resolve(
        site_id,
        local.date,
        local.date,
        today=local.date,
    )
    occurrence = pick_occurrence(occurrences)

    if occurrence is not None:
        # Exceptions replace base hours for the day; they are never merged.
        hours = DayHours(
            is_closed=occurrence.is_closed,
            open_time=occurrence.open_time,
            close_time=occurrence.close_time,
        )
        source = HoursSource.EXCEPTION
    else:
        hours = await base_hours_for(db, site_id, Weekday.of(local.date))
        source = HoursSource.BASE_HOURS

    phase = decide_phase(hours, local.time)
    return PhaseResult(
        site_id=site_id,
        phase=phase,
        timezone=local.timezone,
        local_date=local.date,
        local_time=local.time,
        is_closed=hours.is_closed,
        open_time=hours.open_time,
        close_time=hours.close_time,
        source=source,
        rule_id=occurrence.rule_id if occurrence else None,
        occurrence_name=occurrence.name if occurrence else None,
    )


async def current_phase(
    db: AsyncSession,
    site_id: int,
    now_utc: datetime,
) -> PhaseResult:
    """
    Decide whether a site is occupied at `now_utc`.

    The instant is converted to the site's IANA timezone first; the local
    calendar date (not the UTC date) selects both the base weekly hours and
    any exception occurrence.
    """
    _, local = await site_today(db, site_id, now_utc)
    return await phase_for_local(db, site_id, local)
