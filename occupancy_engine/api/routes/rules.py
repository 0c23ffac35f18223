# occupancy_engine/api/routes/rules.py
from datetime import date as date_type, datetime
from http import HTTPStatus

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.api.dependencies.clock import get_now
from occupancy_engine.db.session import get_db
from occupancy_engine.schemas.edit_policy import DeleteResult
from occupancy_engine.schemas.schedule_rule import (
    ScheduleRuleCreate,
    ScheduleRuleRead,
    ScheduleRuleUpdate,
)
from occupancy_engine.services.rule_service import (
    create_rule,
    delete_rule,
    list_rules,
    update_rule,
)
from occupancy_engine.services.site_clock import load_site

router = APIRouter(tags=["Rules"])


@router.get(
    "/sites/{site_id}/rules",
    response_model=list[ScheduleRuleRead],
    summary="List a site's exception rules",
)
async def get_site_rules(
    site_id: int = Path(..., ge=1),
    include_retired: bool = Query(False, description="Also return retired rules."),
    db: AsyncSession = Depends(get_db),
) -> list[ScheduleRuleRead]:
    await load_site(db, site_id)
    return await list_rules(db, site_id, include_retired=include_retired)


@router.post(
    "/sites/{site_id}/rules",
    response_model=ScheduleRuleRead,
    status_code=HTTPStatus.CREATED,
    summary="Create an exception rule",
    description=(
        "Create a holiday, weekly, range or one-off exception to base hours.\n\n"
        "Supply exactly one of `recurrence` or `exception_date`. Open and close "
        "times are required unless the rule closes the site or is a "
        "`date_range_daily` span."
    ),
    responses={
        201: {
            "description": "Rule created.",
            "content": {
                "application/json": {
                    "example": {
                        "id": 7,
                        "site_id": 1,
                        "name": "Thanksgiving",
                        "is_closed": True,
                        "open_time": None,
                        "close_time": None,
                        "is_recurring": True,
                        "exception_date": None,
                        "rule_type": "nth_weekday",
                        "recurrence": {
                            "type": "nth_weekday",
                            "month": 11,
                            "weekday": "thursday",
                            "occurrence": 4,
                        },
                        "effective_from_date": "2024-01-01",
                        "effective_to_date": None,
                        "retired": False,
                    }
                }
            },
        },
        404: {"description": "Site not found."},
        422: {"description": "Invalid rule definition."},
    },
)
async def post_site_rule(
    payload: ScheduleRuleCreate,
    site_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ScheduleRuleRead:
    return await create_rule(db, site_id, payload, now)


@router.patch(
    "/rules/{rule_id}",
    response_model=ScheduleRuleRead,
    summary="Edit a rule (forward-only)",
    description=(
        "Change a rule's name, hours or recurrence. Occurrences before the "
        "site-local today are frozen first and keep their old values."
    ),
    responses={
        404: {"description": "Rule not found."},
        422: {"description": "The edit would change history or is malformed."},
    },
)
async def patch_rule(
    payload: ScheduleRuleUpdate,
    rule_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ScheduleRuleRead:
    return await update_rule(db, rule_id, payload, now)


@router.delete(
    "/rules/{rule_id}",
    response_model=DeleteResult,
    summary="Delete or retire a rule",
    description=(
        "Without `from_date`, or for a one-off rule: remove every occurrence "
        "from today on and retire the rule.\n\n"
        "With `from_date` on a recurring rule: remove occurrences from that "
        "date on and cap the rule the day before."
    ),
    responses={
        404: {"description": "Rule not found."},
        422: {"description": "from_date is in the past, or the rule is already retired."},
    },
)
async def remove_rule(
    rule_id: int = Path(..., ge=1),
    from_date: date_type | None = Query(None, description="First date to remove."),
    changed_by: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
) -> DeleteResult:
    return await delete_rule(db, rule_id, from_date, now, changed_by=changed_by)
