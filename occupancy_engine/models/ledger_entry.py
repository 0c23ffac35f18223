# occupancy_engine/models/ledger_entry.py
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Time,
    UniqueConstraint,
    func,
)

from occupancy_engine.db.base import Base


class LedgerEntry(Base):
    """
    A persisted occurrence of a rule on one calendar date.

    Rows are either frozen history (written once, the first time a past date
    is resolved) or manual overrides (`is_override = True`). The unique key
    on (rule_id, occurrence_date) is what makes materialization a keyed
    insert-if-absent.
    """

    __tablename__ = "occurrence_ledger"

    id = Column(Integer, primary_key=True, index=True)

    rule_id = Column(
        Integer,
        ForeignKey("schedule_rules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    site_id = Column(
        Integer,
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    occurrence_date = Column(Date, nullable=False, index=True)

    name = Column(String(255), nullable=False)
    is_closed = Column(Boolean, nullable=False, default=False)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)

    is_override = Column(Boolean, nullable=False, default=False)

    recorded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "rule_id",
            "occurrence_date",
            name="uq_occurrence_ledger_rule_date",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry rule_id={self.rule_id} date={self.occurrence_date} "
            f"override={self.is_override}>"
        )
