"""
Appointment model for bookings on a schedule.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, UTCDateTime


class Appointment(Base):
    """
    A booking on a schedule.

    Occurrences of a recurring booking share ``series_id``; the first
    occurrence of a series carries none.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    schedule_id: Mapped[int] = mapped_column(ForeignKey("schedules.id", ondelete="CASCADE"))

    status: Mapped[str] = mapped_column(String(32), default="booked")
    """One of: proposed, pending, booked, arrived, fulfilled, cancelled, noshow."""

    start: Mapped[datetime] = mapped_column(UTCDateTime)
    end: Mapped[datetime] = mapped_column(UTCDateTime)

    series_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    schedule = relationship("Schedule", back_populates="appointments")

    __table_args__ = (
        CheckConstraint('"start" < "end"', name="check_appointment_time_range"),
        Index("idx_appointments_schedule_start", "schedule_id", "start"),
    )
