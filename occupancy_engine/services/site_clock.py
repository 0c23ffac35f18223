# occupancy_engine/services/site_clock.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date as date_type, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.core.config import get_settings
from occupancy_engine.core.errors import NotFoundError, ValidationError
from occupancy_engine.models.site import Site


@dataclass(frozen=True)
class LocalToday:
    """
    A UTC instant pinned to a site's IANA timezone.

    Computed once per request and passed down, so the ledger and the phase
    resolver agree on which calendar day "today" is.
    """

    timezone: str
    now_utc: datetime
    local_now: datetime

    @classmethod
    def at(cls, tz_name: str, now_utc: datetime) -> "LocalToday":
        try:
            zone = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError(f"Unknown timezone {tz_name!r}.", field="timezone")

        if now_utc.tzinfo is None:
            now_utc = now_utc.replace(tzinfo=timezone.utc)
        now_utc = now_utc.astimezone(timezone.utc)
        return cls(timezone=tz_name, now_utc=now_utc, local_now=now_utc.astimezone(zone))

    @property
    def date(self) -> date_type:
        return self.local_now.date()

    @property
    def time(self) -> time:
        """Local wall-clock time truncated to the minute."""
        return self.local_now.time().replace(second=0, microsecond=0, tzinfo=None)


def site_timezone(site: Site) -> str:
    return site.timezone or get_settings().DEFAULT_SITE_TIMEZONE


async def load_site(db: AsyncSession, site_id: int) -> Site:
    site = await db.get(Site, site_id)
    if site is None:
        raise NotFoundError("Site", site_id)
    return site


async def site_today(db: AsyncSession, site_id: int, now_utc: datetime) -> tuple[Site, LocalToday]:
    """
    Load a site and compute its local "today" for the given instant.
    """
    site = await load_site(db, site_id)
    return site, LocalToday.at(site_timezone(site), now_utc)
