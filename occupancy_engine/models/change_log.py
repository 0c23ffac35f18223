# occupancy_engine/models/change_log.py
from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Text,
    func,
)

from occupancy_engine.db.base import Base


class ScheduleChangeLog(Base):
    """
    Append-only audit trail of schedule and setpoint mutations.

    Written by the engine, read only for display. Rows are never updated.
    """

    __tablename__ = "schedule_change_log"

    id = Column(Integer, primary_key=True, index=True)

    site_id = Column(Integer, nullable=True, index=True)
    rule_id = Column(Integer, nullable=True, index=True)
    zone_id = Column(Integer, nullable=True)

    action = Column(String(48), nullable=False)
    changed_by = Column(String(255), nullable=False, default="system")
    changed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    range_start = Column(Date, nullable=True)
    range_end = Column(Date, nullable=True)
    removed_count = Column(Integer, nullable=True)

    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<ScheduleChangeLog id={self.id} action={self.action} site_id={self.site_id}>"
