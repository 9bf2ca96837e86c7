"""
Slot model for persisted busy/free intervals on a schedule.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, UTCDateTime


class Slot(Base):
    """
    A persisted slot.

    Blocked time is a slot with status 'busy-unavailable'. Booking a search
    result may also persist 'busy' slots. Virtual availability slots are
    never stored.
    """

    __tablename__ = "slots"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    schedule_id: Mapped[int] = mapped_column(ForeignKey("schedules.id", ondelete="CASCADE"))

    status: Mapped[str] = mapped_column(String(32))
    """One of: free, busy, busy-unavailable, busy-tentative, entered-in-error."""

    start: Mapped[datetime] = mapped_column(UTCDateTime)
    end: Mapped[datetime] = mapped_column(UTCDateTime)

    comment: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    schedule = relationship("Schedule", back_populates="slots")

    __table_args__ = (
        CheckConstraint('"start" < "end"', name="check_slot_time_range"),
        Index("idx_slots_schedule_start", "schedule_id", "start"),
    )
