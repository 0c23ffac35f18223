# occupancy_engine/api/routes/setpoints.py
from datetime import datetime

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.api.dependencies.clock import get_now
from occupancy_engine.db.session import get_db
from occupancy_engine.schemas.setpoints import (
    ActiveSetpoints,
    BatchResolveRequest,
    ProfilePushResult,
    ZoneResolution,
    ZoneSetpointsRead,
    ZoneSetpointsUpdate,
)
from occupancy_engine.services.phase_resolver import current_phase
from occupancy_engine.services.setpoint_resolver import (
    active_setpoints,
    resolve_many,
    resolve_site_zones,
    resolve_zone,
)
from occupancy_engine.services.site_clock import load_site
from occupancy_engine.services.zone_settings import push_profile, update_zone_setpoints

router = APIRouter(tags=["Setpoints"])


@router.get(
    "/zones/{zone_id}/setpoints",
    response_model=ZoneSetpointsRead,
    summary="Resolved setpoints for a zone",
    description=(
        "Resolve the zone through the cascade: zone override, then linked "
        "profile, then defaults. `source` says which level won."
    ),
)
async def get_zone_setpoints(
    zone_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
) -> ZoneSetpointsRead:
    return await resolve_zone(db, zone_id)


@router.patch(
    "/zones/{zone_id}/setpoints",
    response_model=ZoneSetpointsRead,
    summary="Update a zone's setpoints or profile link",
    description=(
        "- Any setpoint value field marks the zone overridden.\n"
        "- Fan/mode-only changes leave the override flag alone.\n"
        "- `profile_id` without `is_override: true` re-links the zone and "
        "clears the override."
    ),
    responses={
        404: {"description": "Zone or profile not found."},
        422: {"description": "No valid fields to update."},
    },
)
async def patch_zone_setpoints(
    payload: ZoneSetpointsUpdate,
    zone_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
) -> ZoneSetpointsRead:
    return await update_zone_setpoints(db, zone_id, payload)


@router.get(
    "/zones/{zone_id}/active-setpoints",
    response_model=ActiveSetpoints,
    summary="Setpoints that apply to a zone right now",
)
async def get_zone_active_setpoints(
    zone_id: int = Path(..., ge=1),
    at: datetime | None = Query(None, description="UTC instant; defaults to now."),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ActiveSetpoints:
    zone = await resolve_zone(db, zone_id)
    phase = await current_phase(db, zone.site_id, at or now)
    return active_setpoints(zone.zone_id, zone.resolved_setpoints, phase.phase)


@router.post(
    "/setpoints/resolve",
    response_model=list[ZoneResolution],
    summary="Resolve pre-loaded zones without touching the database",
)
async def post_resolve_setpoints(payload: BatchResolveRequest) -> list[ZoneResolution]:
    profiles = {profile.id: profile for profile in payload.profiles if profile.id is not None}
    return resolve_many(payload.zones, profiles)


@router.get(
    "/sites/{site_id}/zone-setpoints",
    response_model=list[ZoneSetpointsRead],
    summary="Resolved setpoints for every zone of a site",
)
async def get_site_zone_setpoints(
    site_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
) -> list[ZoneSetpointsRead]:
    await load_site(db, site_id)
    return await resolve_site_zones(db, site_id)


@router.post(
    "/profiles/{profile_id}/push",
    response_model=ProfilePushResult,
    summary="Copy a profile into its linked zones",
    description=(
        "Every linked zone that is not overridden receives the profile's "
        "values. Zones are processed independently; the response lists the "
        "outcome per zone."
    ),
    responses={404: {"description": "Profile not found."}},
)
async def post_profile_push(
    profile_id: int = Path(..., ge=1),
    changed_by: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> ProfilePushResult:
    return await push_profile(db, profile_id, changed_by=changed_by)
