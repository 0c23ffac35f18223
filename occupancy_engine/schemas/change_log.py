# occupancy_engine/schemas/change_log.py
from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class ChangeLogRead(BaseModel):
    """
    Public representation of a change-log row.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    site_id: int | None = None
    rule_id: int | None = None
    zone_id: int | None = None
    action: str
    changed_by: str
    changed_at: datetime
    range_start: date | None = None
    range_end: date | None = None
    removed_count: int | None = None
    message: str
    details: dict[str, Any] | None = None
