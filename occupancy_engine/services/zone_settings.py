# occupancy_engine/services/zone_settings.py
from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.core.errors import ValidationError
from occupancy_engine.core.logging import get_logger
from occupancy_engine.models.hvac import HvacZone
from occupancy_engine.schemas.setpoints import (
    SETPOINT_FIELDS,
    SETPOINT_VALUE_FIELDS,
    ProfilePushResult,
    ZonePushOutcome,
    ZoneSetpointsRead,
    ZoneSetpointsUpdate,
)
from occupancy_engine.services.change_log import record_change
from occupancy_engine.services.setpoint_resolver import (
    load_profile,
    load_zone,
    resolve_zone,
)

logger = get_logger(__name__)


def plan_zone_update(payload: ZoneSetpointsUpdate) -> dict[str, Any]:
    """
    Translate a PATCH payload into the column values to write.

    - `profile_id` without `is_override: true` re-links the zone to that
      profile and clears the override.
    - Otherwise every provided setpoint/mode field is copied; the zone becomes
      overridden only if a setpoint *value* is among them.
    """
    provided = payload.model_fields_set

    if "profile_id" in provided and not payload.is_override:
        return {"profile_id": payload.profile_id, "is_override": False}

    update: dict[str, Any] = {
        field: getattr(payload, field)
        for field in SETPOINT_FIELDS
        if field in provided
    }
    if any(field in provided for field in SETPOINT_VALUE_FIELDS):
        update["is_override"] = True
    return update


def _describe_update(zone_name: str, update: dict[str, Any]) -> tuple[str, str]:
    if "profile_id" in update and not update.get("is_override"):
        return "zone_profile_changed", f"{zone_name}: assigned profile {update['profile_id']}"

    if update.get("is_override"):
        parts = []
        if "occupied_heat_f" in update:
            parts.append(f"heat: {update['occupied_heat_f']}°F")
        if "occupied_cool_f" in update:
            parts.append(f"cool: {update['occupied_cool_f']}°F")
        if "occupied_hvac_mode" in update:
            parts.append(f"mode: {update['occupied_hvac_mode']}")
        if "occupied_fan_mode" in update:
            parts.append(f"fan: {update['occupied_fan_mode']}")
        suffix = f", {', '.join(parts)}" if parts else ""
        return "zone_override", f"{zone_name}: manual override{suffix}"

    return "zone_updated", f"{zone_name}: zone settings updated"


async def update_zone_setpoints(
    db: AsyncSession,
    zone_id: int,
    payload: ZoneSetpointsUpdate,
) -> ZoneSetpointsRead:
    """
    Apply a PATCH to a zone and return its freshly resolved setpoints.
    """
    zone = await load_zone(db, zone_id)

    update = plan_zone_update(payload)
    if not update:
        raise ValidationError("No valid fields to update.")

    if update.get("profile_id") is not None:
        await load_profile(db, update["profile_id"])

    for field, value in update.items():
        setattr(zone, field, value)
    await db.commit()
    await db.refresh(zone)

    site_id, zone_name = zone.site_id, zone.name
    event, message = _describe_update(zone_name, update)
    logger.info(event, zone_id=zone_id, fields=sorted(update))

    resolved = await resolve_zone(db, zone_id)
    await record_change(
        db,
        action=event,
        message=message,
        site_id=site_id,
        zone_id=zone_id,
        changed_by=payload.changed_by,
        details={"fields": sorted(update)},
    )
    return resolved


# ----------------------------------------------------------------------
# Profile push (batch)
# ----------------------------------------------------------------------

async def _apply_profile(db: AsyncSession, zone: HvacZone, values: dict[str, Any]) -> None:
    for field, value in values.items():
        setattr(zone, field, value)
    await db.flush()


async def push_profile(
    db: AsyncSession,
    profile_id: int,
    changed_by: str | None = None,
) -> ProfilePushResult:
    """
    Copy a profile's values into every linked, non-overridden zone.

    Each zone is written inside its own savepoint; a failure on one zone is
    recorded in the result and the batch moves on.
    """
    profile = await load_profile(db, profile_id)
    values = {field: getattr(profile, field) for field in SETPOINT_FIELDS}

    zones_result = await db.execute(
        select(HvacZone)
        .where(
            HvacZone.profile_id == profile_id,
            HvacZone.is_override.is_(False),
        )
        .order_by(HvacZone.id)
    )
    zones = list(zones_result.scalars().all())
    zone_sites = {zone.id: zone.site_id for zone in zones}

    outcomes: list[ZonePushOutcome] = []
    for zone in zones:
        zone_id = zone.id
        try:
            async with db.begin_nested():
                await _apply_profile(db, zone, values)
        except Exception as exc:
            logger.warning(
                "profile_push_zone_failed",
                profile_id=profile_id,
                zone_id=zone_id,
                error=str(exc),
                exc_info=True,
            )
            outcomes.append(ZonePushOutcome(zone_id=zone_id, ok=False, error=str(exc)))
        else:
            outcomes.append(ZonePushOutcome(zone_id=zone_id, ok=True))

    await db.commit()

    updated = sum(1 for outcome in outcomes if outcome.ok)
    result = ProfilePushResult(
        profile_id=profile_id,
        zones_total=len(outcomes),
        zones_updated=updated,
        zones_failed=len(outcomes) - updated,
        results=outcomes,
    )
    logger.info(
        "profile_pushed",
        profile_id=profile_id,
        zones_total=result.zones_total,
        zones_failed=result.zones_failed,
    )

    for site_id in sorted(set(zone_sites.values())):
        await record_change(
            db,
            action="profile_pushed",
            message=f"Profile {profile_id} pushed to linked zones",
            site_id=site_id,
            changed_by=changed_by,
            details={
                "profile_id": profile_id,
                "zones": [
                    outcome.model_dump()
                    for outcome in outcomes
                    if zone_sites[outcome.zone_id] == site_id
                ],
            },
        )
    return result
