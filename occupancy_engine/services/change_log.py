# occupancy_engine/services/change_log.py
from __future__ import annotations

from datetime import date as date_type
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.core.logging import get_logger
from occupancy_engine.models.change_log import ScheduleChangeLog
from occupancy_engine.schemas.change_log import ChangeLogRead

logger = get_logger(__name__)

CHANGE_LOG_LIMIT = 100


async def record_change(
    db: AsyncSession,
    *,
    action: str,
    message: str,
    site_id: int | None = None,
    rule_id: int | None = None,
    zone_id: int | None = None,
    changed_by: str | None = None,
    range_start: date_type | None = None,
    range_end: date_type | None = None,
    removed_count: int | None = None,
    details: dict[str, Any] | None = None,
) -> bool:
    """
    Append a row to the change log and commit it.

    Called after the core mutation has already been committed, so this is
    best-effort: a failed write is rolled back and logged, never raised.

    Returns
    -------
    bool
        True if the row was written.
    """
    try:
        db.add(
            ScheduleChangeLog(
                site_id=site_id,
                rule_id=rule_id,
                zone_id=zone_id,
                action=action,
                changed_by=changed_by or "system",
                range_start=range_start,
                range_end=range_end,
                removed_count=removed_count,
                message=message,
                details=details,
            )
        )
        await db.commit()
        return True
    except SQLAlchemyError:
        await db.rollback()
        logger.warning(
            "change_log_write_failed",
            action=action,
            site_id=site_id,
            rule_id=rule_id,
            exc_info=True,
        )
        return False


async def list_changes(
    db: AsyncSession,
    site_id: int,
    limit: int = CHANGE_LOG_LIMIT,
) -> list[ChangeLogRead]:
    """
    Most recent change-log rows for a site, newest first.
    """
    stmt = (
        select(ScheduleChangeLog)
        .where(ScheduleChangeLog.site_id == site_id)
        .order_by(ScheduleChangeLog.changed_at.desc(), ScheduleChangeLog.id.desc())
        .limit(min(limit, CHANGE_LOG_LIMIT))
    )
    result = await db.execute(stmt)
    return [ChangeLogRead.model_validate(row) for row in result.scalars().all()]
