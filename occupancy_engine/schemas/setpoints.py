# occupancy_engine/schemas/setpoints.py
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from occupancy_engine.schemas.phase import Phase

# Numeric setpoint values; writing any of these on a zone marks it overridden.
SETPOINT_VALUE_FIELDS = (
    "occupied_heat_f",
    "occupied_cool_f",
    "unoccupied_heat_f",
    "unoccupied_cool_f",
    "guardrail_min_f",
    "guardrail_max_f",
    "manager_offset_up_f",
    "manager_offset_down_f",
    "manager_override_reset_minutes",
)

# Fan/mode settings; changing only these does not mark a zone overridden.
MODE_FIELDS = (
    "occupied_fan_mode",
    "occupied_hvac_mode",
    "unoccupied_fan_mode",
    "unoccupied_hvac_mode",
)

SETPOINT_FIELDS = SETPOINT_VALUE_FIELDS + MODE_FIELDS

# Legacy single-phase column each mode field falls back to when empty.
LEGACY_MODE_FALLBACK = {
    "occupied_fan_mode": "fan_mode",
    "occupied_hvac_mode": "hvac_mode",
    "unoccupied_fan_mode": "fan_mode",
    "unoccupied_hvac_mode": "hvac_mode",
}

# Fields whose presence means a zone "carries its own values".
OWN_VALUE_FIELDS = (
    "occupied_heat_f",
    "occupied_cool_f",
    "unoccupied_heat_f",
    "unoccupied_cool_f",
)


class SetpointSource(str, Enum):
    PROFILE = "profile"
    ZONE_OVERRIDE = "zone_override"
    DEFAULT = "default"


class SetpointFields(BaseModel):
    """
    The setpoint columns shared by zones and profiles, all optional.
    """

    occupied_heat_f: float | None = Field(None, examples=[68])
    occupied_cool_f: float | None = Field(None, examples=[76])
    unoccupied_heat_f: float | None = Field(None, examples=[55])
    unoccupied_cool_f: float | None = Field(None, examples=[85])

    occupied_fan_mode: str | None = Field(None, examples=["auto"])
    occupied_hvac_mode: str | None = Field(None, examples=["auto"])
    unoccupied_fan_mode: str | None = Field(None, examples=["auto"])
    unoccupied_hvac_mode: str | None = Field(None, examples=["auto"])

    guardrail_min_f: float | None = Field(None, examples=[45])
    guardrail_max_f: float | None = Field(None, examples=[95])

    manager_offset_up_f: float | None = Field(None, examples=[4])
    manager_offset_down_f: float | None = Field(None, examples=[4])
    manager_override_reset_minutes: int | None = Field(None, examples=[120])


class ZoneSetpointsInput(SetpointFields):
    """
    A zone row as seen by the setpoint resolver.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    profile_id: int | None = None
    is_override: bool = False

    fan_mode: str | None = None
    hvac_mode: str | None = None


class ProfileSetpointsInput(SetpointFields):
    """
    A profile row as seen by the setpoint resolver.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    name: str | None = None

    fan_mode: str | None = None
    hvac_mode: str | None = None


class ResolvedSetpoints(BaseModel):
    """
    Final setpoints for a zone with every field filled in.

    `source` records which level of the cascade supplied the values.
    """

    occupied_heat_f: float
    occupied_cool_f: float
    unoccupied_heat_f: float
    unoccupied_cool_f: float

    occupied_fan_mode: str
    occupied_hvac_mode: str
    unoccupied_fan_mode: str
    unoccupied_hvac_mode: str

    guardrail_min_f: float
    guardrail_max_f: float

    manager_offset_up_f: float
    manager_offset_down_f: float
    manager_override_reset_minutes: int

    source: SetpointSource
    profile_id: int | None = None
    profile_name: str | None = None


class ActiveSetpoints(BaseModel):
    """
    The phase-appropriate slice of a zone's resolved setpoints.
    """

    zone_id: int
    phase: Phase
    heat_f: float
    cool_f: float
    fan_mode: str
    hvac_mode: str
    guardrail_min_f: float
    guardrail_max_f: float
    source: SetpointSource
    profile_name: str | None = None


class ZoneSetpointsRead(BaseModel):
    """
    Zone identity plus its resolved setpoints.
    """

    zone_id: int
    site_id: int
    name: str
    profile_id: int | None = None
    is_override: bool
    resolved_setpoints: ResolvedSetpoints


class ZoneSetpointsUpdate(SetpointFields):
    """
    PATCH payload for a zone's setpoints.

    Sending `profile_id` without `is_override: true` re-links the zone to that
    profile and clears the override.
    """

    profile_id: int | None = None
    is_override: bool | None = None
    changed_by: str | None = None


class BatchResolveRequest(BaseModel):
    """
    Pre-loaded zones and profiles for pure, no-I/O resolution.
    """

    zones: list[ZoneSetpointsInput] = Field(..., min_length=1)
    profiles: list[ProfileSetpointsInput] = Field(default_factory=list)


class ZoneResolution(BaseModel):
    zone_id: int | None = None
    resolved_setpoints: ResolvedSetpoints


class ZonePushOutcome(BaseModel):
    zone_id: int
    ok: bool
    error: str | None = None


class ProfilePushResult(BaseModel):
    """
    Per-zone outcome of copying a profile into its linked zones.
    """

    profile_id: int
    zones_total: int
    zones_updated: int
    zones_failed: int
    results: list[ZonePushOutcome]
