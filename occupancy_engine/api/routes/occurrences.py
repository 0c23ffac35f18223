# occupancy_engine/api/routes/occurrences.py
from datetime import date as date_type, datetime

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.api.dependencies.clock import get_now
from occupancy_engine.db.session import get_db
from occupancy_engine.schemas.occurrence import Occurrence, OccurrenceListing, OccurrenceOverride
from occupancy_engine.services.rule_service import list_occurrences, override_occurrence

router = APIRouter(tags=["Occurrences"])


@router.get(
    "/sites/{site_id}/occurrences",
    response_model=OccurrenceListing,
    summary="List resolved occurrences for a site",
    description=(
        "Expand every rule of the site over the requested range and return one "
        "entry per (rule, date).\n\n"
        "- Dates before the site-local today come from the ledger; the first "
        "request for an unrecorded past date freezes it.\n"
        "- Dates from today on are projected from the live rule.\n"
        "- Without a range, the configured lookback/lookahead years are used."
    ),
    responses={
        404: {"description": "Site not found."},
        422: {"description": "to_date is before from_date."},
    },
)
async def get_site_occurrences(
    site_id: int = Path(..., ge=1),
    from_date: date_type | None = Query(None, description="First date (inclusive)."),
    to_date: date_type | None = Query(None, description="Last date (inclusive)."),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
) -> OccurrenceListing:
    return await list_occurrences(db, site_id, now, start_date=from_date, end_date=to_date)


@router.put(
    "/rules/{rule_id}/occurrences/{occurrence_date}",
    response_model=Occurrence,
    summary="Manually override one occurrence",
    description=(
        "Record a correction for a single date of a rule. The override is "
        "stored in the ledger and used verbatim from then on, for past or "
        "future dates alike."
    ),
    responses={
        404: {"description": "Rule not found."},
        422: {"description": "The rule does not produce this date, or the hours are invalid."},
    },
)
async def put_occurrence_override(
    payload: OccurrenceOverride,
    rule_id: int = Path(..., ge=1),
    occurrence_date: date_type = Path(...),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
) -> Occurrence:
    return await override_occurrence(db, rule_id, occurrence_date, payload, now)
