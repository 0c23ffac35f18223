# occupancy_engine/services/setpoint_resolver.py
from __future__ import annotations

from typing import Any, Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.core.errors import NotFoundError
from occupancy_engine.core.logging import get_logger
from occupancy_engine.models.hvac import HvacZone, ThermostatProfile
from occupancy_engine.schemas.phase import Phase
from occupancy_engine.schemas.setpoints import (
    LEGACY_MODE_FALLBACK,
    OWN_VALUE_FIELDS,
    SETPOINT_FIELDS,
    ActiveSetpoints,
    ProfileSetpointsInput,
    ResolvedSetpoints,
    SetpointSource,
    ZoneResolution,
    ZoneSetpointsInput,
    ZoneSetpointsRead,
)

logger = get_logger(__name__)

DEFAULT_SETPOINTS: dict[str, Any] = {
    "occupied_heat_f": 68.0,
    "occupied_cool_f": 76.0,
    "unoccupied_heat_f": 55.0,
    "unoccupied_cool_f": 85.0,
    "occupied_fan_mode": "auto",
    "occupied_hvac_mode": "auto",
    "unoccupied_fan_mode": "auto",
    "unoccupied_hvac_mode": "auto",
    "guardrail_min_f": 45.0,
    "guardrail_max_f": 95.0,
    "manager_offset_up_f": 4.0,
    "manager_offset_down_f": 4.0,
    "manager_override_reset_minutes": 120,
}


def _has_own_values(zone: ZoneSetpointsInput) -> bool:
    return any(getattr(zone, field) is not None for field in OWN_VALUE_FIELDS)


def _fill(level: Any | None) -> dict[str, Any]:
    """
    Take every setpoint field from `level`, falling back to the default
    for each one it leaves empty. Mode fields try the level's legacy
    `fan_mode`/`hvac_mode` column before the default.
    """
    values: dict[str, Any] = {}
    for field in SETPOINT_FIELDS:
        value = getattr(level, field, None) if level is not None else None
        if value is None and field in LEGACY_MODE_FALLBACK and level is not None:
            value = getattr(level, LEGACY_MODE_FALLBACK[field], None)
        values[field] = DEFAULT_SETPOINTS[field] if value is None else value
    return values


def resolve_setpoints(
    zone: ZoneSetpointsInput,
    profile: ProfileSetpointsInput | None = None,
) -> ResolvedSetpoints:
    """
    Pure cascade: zone override -> linked profile -> zone fallback -> defaults.

    Parameters
    ----------
    zone:
        Zone row (or equivalent) with its own optional setpoint fields.
    profile:
        The zone's linked profile if the caller has loaded it. A profile whose
        id does not match `zone.profile_id` is ignored.

    Returns
    -------
    ResolvedSetpoints
        Every field filled in, with `source` naming the level that won.
    """
    own_values = _has_own_values(zone)
    profile_loaded = (
        zone.profile_id is not None
        and profile is not None
        and (profile.id is None or profile.id == zone.profile_id)
    )

    if (zone.is_override or zone.profile_id is None) and own_values:
        return ResolvedSetpoints(**_fill(zone), source=SetpointSource.ZONE_OVERRIDE)

    if profile_loaded:
        return ResolvedSetpoints(
            **_fill(profile),
            source=SetpointSource.PROFILE,
            profile_id=zone.profile_id,
            profile_name=profile.name,
        )

    if own_values:
        # Linked to a profile that could not be loaded.
        return ResolvedSetpoints(**_fill(zone), source=SetpointSource.ZONE_OVERRIDE)

    return ResolvedSetpoints(**_fill(None), source=SetpointSource.DEFAULT)


def resolve_many(
    zones: Iterable[ZoneSetpointsInput],
    profiles: Mapping[int, ProfileSetpointsInput],
) -> list[ZoneResolution]:
    """
    Resolve a batch of zones against a pre-loaded profile map, no I/O.
    """
    results: list[ZoneResolution] = []
    for zone in zones:
        profile = profiles.get(zone.profile_id) if zone.profile_id is not None else None
        results.append(
            ZoneResolution(zone_id=zone.id, resolved_setpoints=resolve_setpoints(zone, profile))
        )
    return results


def active_setpoints(zone_id: int, resolved: ResolvedSetpoints, phase: Phase) -> ActiveSetpoints:
    """
    Select the occupied or unoccupied slice of the resolved setpoints.
    """
    prefix = "occupied" if phase == Phase.OCCUPIED else "unoccupied"
    return ActiveSetpoints(
        zone_id=zone_id,
        phase=phase,
        heat_f=getattr(resolved, f"{prefix}_heat_f"),
        cool_f=getattr(resolved, f"{prefix}_cool_f"),
        fan_mode=getattr(resolved, f"{prefix}_fan_mode"),
        hvac_mode=getattr(resolved, f"{prefix}_hvac_mode"),
        guardrail_min_f=resolved.guardrail_min_f,
        guardrail_max_f=resolved.guardrail_max_f,
        source=resolved.source,
        profile_name=resolved.profile_name,
    )


# ----------------------------------------------------------------------
# I/O wrappers
# ----------------------------------------------------------------------

async def load_zone(db: AsyncSession, zone_id: int) -> HvacZone:
    zone = await db.get(HvacZone, zone_id)
    if zone is None:
        raise NotFoundError("Zone", zone_id)
    return zone


async def load_profile(db: AsyncSession, profile_id: int) -> ThermostatProfile:
    profile = await db.get(ThermostatProfile, profile_id)
    if profile is None:
        raise NotFoundError("Profile", profile_id)
    return profile


def zone_setpoints_read(
    zone: HvacZone,
    profile: ThermostatProfile | None,
) -> ZoneSetpointsRead:
    resolved = resolve_setpoints(
        ZoneSetpointsInput.model_validate(zone),
        ProfileSetpointsInput.model_validate(profile) if profile is not None else None,
    )
    return ZoneSetpointsRead(
        zone_id=zone.id,
        site_id=zone.site_id,
        name=zone.name,
        profile_id=zone.profile_id,
        is_override=bool(zone.is_override),
        resolved_setpoints=resolved,
    )


async def resolve_zone(db: AsyncSession, zone_id: int) -> ZoneSetpointsRead:
    """
    Load a zone and its linked profile, then resolve.

    A dangling `profile_id` is not an error here: the cascade falls back to
    the zone's own values or the defaults.
    """
    zone = await load_zone(db, zone_id)
    profile = None
    if zone.profile_id is not None:
        profile = await db.get(ThermostatProfile, zone.profile_id)
        if profile is None:
            logger.warning("zone_profile_missing", zone_id=zone.id, profile_id=zone.profile_id)
    return zone_setpoints_read(zone, profile)


async def resolve_site_zones(db: AsyncSession, site_id: int) -> list[ZoneSetpointsRead]:
    """
    Resolve every zone of a site with one zone query and one profile query.
    """
    zones_result = await db.execute(
        select(HvacZone).where(HvacZone.site_id == site_id).order_by(HvacZone.id)
    )
    zones = list(zones_result.scalars().all())

    profile_ids = {zone.profile_id for zone in zones if zone.profile_id is not None}
    profiles: dict[int, ThermostatProfile] = {}
    if profile_ids:
        profiles_result = await db.execute(
            select(ThermostatProfile).where(ThermostatProfile.id.in_(profile_ids))
        )
        profiles = {profile.id: profile for profile in profiles_result.scalars().all()}

    return [zone_setpoints_read(zone, profiles.get(zone.profile_id)) for zone in zones]
