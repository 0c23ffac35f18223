# occupancy_engine/api/routes/sites.py
from datetime import datetime

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.api.dependencies.clock import get_now
from occupancy_engine.db.session import get_db
from occupancy_engine.schemas.change_log import ChangeLogRead
from occupancy_engine.schemas.phase import PhaseResult
from occupancy_engine.schemas.store_hours import StoreHoursDay, StoreHoursUpdate
from occupancy_engine.services.change_log import CHANGE_LOG_LIMIT, list_changes
from occupancy_engine.services.phase_resolver import current_phase
from occupancy_engine.services.site_clock import load_site
from occupancy_engine.services.store_hours import get_store_hours, replace_store_hours

router = APIRouter(prefix="/sites", tags=["Sites"])


@router.get(
    "/{site_id}/phase",
    response_model=PhaseResult,
    summary="Occupancy phase of a site",
    description=(
        "Resolve whether the site is occupied at `at` (default: now). The "
        "instant is converted to the site's timezone before any lookup, so an "
        "evening event near UTC midnight lands on the correct local day."
    ),
    responses={
        200: {
            "description": "Phase resolved.",
            "content": {
                "application/json": {
                    "example": {
                        "site_id": 1,
                        "phase": "occupied",
                        "timezone": "America/Chicago",
                        "local_date": "2024-02-29",
                        "local_time": "23:30:00",
                        "is_closed": False,
                        "open_time": "00:00:00",
                        "close_time": "23:59:00",
                        "source": "exception",
                        "rule_id": 3,
                        "occurrence_name": "Leap Day Lock-in",
                    }
                }
            },
        },
        404: {"description": "Site not found."},
    },
)
async def get_site_phase(
    site_id: int = Path(..., ge=1),
    at: datetime | None = Query(None, description="UTC instant; defaults to now."),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
) -> PhaseResult:
    return await current_phase(db, site_id, at or now)


@router.get(
    "/{site_id}/store-hours",
    response_model=list[StoreHoursDay],
    summary="Base weekly hours",
)
async def get_site_store_hours(
    site_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
) -> list[StoreHoursDay]:
    return await get_store_hours(db, site_id)


@router.put(
    "/{site_id}/store-hours",
    response_model=list[StoreHoursDay],
    summary="Replace base weekly hours",
    description="Upsert the listed weekdays. Each changed day is journaled with its old and new hours.",
    responses={
        404: {"description": "Site not found."},
        422: {"description": "Duplicate weekday or invalid hours."},
    },
)
async def put_site_store_hours(
    payload: StoreHoursUpdate,
    site_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
) -> list[StoreHoursDay]:
    return await replace_store_hours(db, site_id, payload)


@router.get(
    "/{site_id}/change-log",
    response_model=list[ChangeLogRead],
    summary="Schedule and setpoint change log",
    description="Most recent change-log rows for the site, newest first.",
)
async def get_site_change_log(
    site_id: int = Path(..., ge=1),
    limit: int = Query(CHANGE_LOG_LIMIT, ge=1, le=CHANGE_LOG_LIMIT),
    db: AsyncSession = Depends(get_db),
) -> list[ChangeLogRead]:
    await load_site(db, site_id)
    return await list_changes(db, site_id, limit=limit)
