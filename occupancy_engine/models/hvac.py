# occupancy_engine/models/hvac.py
from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
)

from occupancy_engine.db.base import Base


class ThermostatProfile(Base):
    """
    Reusable bundle of occupied/unoccupied setpoints shared across zones.
    """

    __tablename__ = "thermostat_profiles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)

    # Null for org-wide profiles.
    site_id = Column(
        Integer,
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    occupied_heat_f = Column(Float, nullable=True)
    occupied_cool_f = Column(Float, nullable=True)
    unoccupied_heat_f = Column(Float, nullable=True)
    unoccupied_cool_f = Column(Float, nullable=True)

    occupied_fan_mode = Column(String(32), nullable=True)
    occupied_hvac_mode = Column(String(32), nullable=True)
    unoccupied_fan_mode = Column(String(32), nullable=True)
    unoccupied_hvac_mode = Column(String(32), nullable=True)

    # Legacy single-phase modes, read only as a fallback for the phase columns.
    fan_mode = Column(String(32), nullable=True)
    hvac_mode = Column(String(32), nullable=True)

    guardrail_min_f = Column(Float, nullable=True)
    guardrail_max_f = Column(Float, nullable=True)

    manager_offset_up_f = Column(Float, nullable=True)
    manager_offset_down_f = Column(Float, nullable=True)
    manager_override_reset_minutes = Column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<ThermostatProfile id={self.id} name={self.name!r}>"


class HvacZone(Base):
    """
    Site-scoped HVAC control unit.

    The setpoint columns mirror the profile columns. They are authoritative
    only when `is_override` is set or no profile is linked.
    """

    __tablename__ = "hvac_zones"

    id = Column(Integer, primary_key=True, index=True)

    site_id = Column(
        Integer,
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String(255), nullable=False)
    thermostat_device_id = Column(String(128), nullable=True)

    profile_id = Column(
        Integer,
        ForeignKey("thermostat_profiles.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_override = Column(Boolean, nullable=False, default=False)

    occupied_heat_f = Column(Float, nullable=True)
    occupied_cool_f = Column(Float, nullable=True)
    unoccupied_heat_f = Column(Float, nullable=True)
    unoccupied_cool_f = Column(Float, nullable=True)

    occupied_fan_mode = Column(String(32), nullable=True)
    occupied_hvac_mode = Column(String(32), nullable=True)
    unoccupied_fan_mode = Column(String(32), nullable=True)
    unoccupied_hvac_mode = Column(String(32), nullable=True)

    # Legacy single-phase modes, read only as a fallback for the phase columns.
    fan_mode = Column(String(32), nullable=True)
    hvac_mode = Column(String(32), nullable=True)

    guardrail_min_f = Column(Float, nullable=True)
    guardrail_max_f = Column(Float, nullable=True)

    manager_offset_up_f = Column(Float, nullable=True)
    manager_offset_down_f = Column(Float, nullable=True)
    manager_override_reset_minutes = Column(Integer, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<HvacZone id={self.id} site_id={self.site_id} "
            f"profile_id={self.profile_id} override={self.is_override}>"
        )
