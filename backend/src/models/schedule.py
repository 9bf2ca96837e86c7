"""
Schedule model: the calendar a provider's availability, slots and appointments
belong to.
"""

from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, JSONType, UTCDateTime


class Schedule(Base):
    """
    A bookable schedule.

    The availability configuration is not normalized into columns: the
    scheduling-parameters extension blocks are stored as the schedule's raw
    extension tree and decoded by the scheduling parameters service.
    """

    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    actor: Mapped[str] = mapped_column(String(255))
    """Display reference of the provider owning the schedule."""

    active: Mapped[bool] = mapped_column(Boolean, default=True)

    extensions: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    """Raw extension tree, including scheduling-parameters blocks."""

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    slots = relationship("Slot", back_populates="schedule", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="schedule", cascade="all, delete-orphan")
