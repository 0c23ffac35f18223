# occupancy_engine/models/site.py
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Time,
    UniqueConstraint,
    func,
)

from occupancy_engine.db.base import Base


class Site(Base):
    """
    A physical location whose operating schedule is resolved by the engine.

    Only the fields the engine needs are mapped here; the rest of the site
    record belongs to the surrounding platform.
    """

    __tablename__ = "sites"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<Site id={self.id} name={self.name!r} tz={self.timezone}>"


class StoreHours(Base):
    """
    Base weekly operating hours for one weekday of a site.
    """

    __tablename__ = "store_hours"

    id = Column(Integer, primary_key=True, index=True)

    site_id = Column(
        Integer,
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    day_of_week = Column(String(16), nullable=False)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)
    is_closed = Column(Boolean, nullable=False, default=False)

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "site_id",
            "day_of_week",
            name="uq_store_hours_site_day",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<StoreHours site_id={self.site_id} day={self.day_of_week} "
            f"open={self.open_time} close={self.close_time} closed={self.is_closed}>"
        )
