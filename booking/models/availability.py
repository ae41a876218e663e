"""Availability model definitions."""

from sqlalchemy import JSON, Column, Float, ForeignKey, Integer, String, Time
from booking.database import Base


class Availability(Base):
    """Stored scheduling policy for a single user."""
    __tablename__ = "availability_profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    working_days = Column(JSON, default=lambda: [1, 2, 3, 4, 5])
    start_time = Column(Time)
    end_time = Column(Time)
    slot_duration_minutes = Column(Integer, default=30)
    buffer_minutes = Column(Integer, default=15)
    max_per_day = Column(Integer, default=5)
    break_windows = Column(JSON, default=list)  # [{"start": "12:00", "end": "13:00"}]
    min_lead_time_hours = Column(Float, default=0)
    cancel_notice_hours = Column(Float, default=0)
    min_duration_minutes = Column(Integer, default=15)
    max_duration_minutes = Column(Integer, default=120)
    default_reminder_minutes = Column(Integer, default=15)
    status = Column(String, default="available")
