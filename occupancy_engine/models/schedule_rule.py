# occupancy_engine/models/schedule_rule.py
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Time,
    func,
)

from occupancy_engine.db.base import Base


class ScheduleRule(Base):
    """
    A named exception to a site's base hours.

    The recurrence itself is stored as JSON in `recurrence` and parsed back
    into the `RecurrenceSpec` union by the schema layer. Rules are never
    hard-deleted: a full delete flips `retired`, a partial delete caps
    `effective_to_date`.
    """

    __tablename__ = "schedule_rules"

    id = Column(Integer, primary_key=True, index=True)

    site_id = Column(
        Integer,
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String(255), nullable=False)

    is_closed = Column(Boolean, nullable=False, default=False)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)

    is_recurring = Column(Boolean, nullable=False, default=True)
    exception_date = Column(Date, nullable=True)
    rule_type = Column(String(32), nullable=False)
    recurrence = Column(JSON, nullable=False)

    effective_from_date = Column(Date, nullable=False)
    effective_to_date = Column(Date, nullable=True)

    retired = Column(Boolean, nullable=False, default=False, index=True)

    # Every occurrence up to this date is in the ledger; past dates not
    # found there are not produced anymore.
    frozen_through = Column(Date, nullable=True)

    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduleRule id={self.id} site_id={self.site_id} type={self.rule_type} "
            f"from={self.effective_from_date} to={self.effective_to_date} retired={self.retired}>"
        )
