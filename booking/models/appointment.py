"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from booking.database import Base


class Appointment(Base):
    """Represents a booked appointment between a creator and a recipient."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, default="pending", nullable=False)
    title = Column(String, default="Appointment")
    description = Column(String, default="")
    meeting_type = Column(String, default="Video Call")
    location = Column(String, default="")
    declined_reason = Column(String)
    cancelled_reason = Column(String)
    attended_by = Column(JSON, default=list)
    availability_snapshot = Column(JSON, default=dict)
    reminder_minutes = Column(Integer, default=15)
    reminded = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    ratings = relationship(
        "AppointmentRating",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentRating.created_at",
    )


class AppointmentRating(Base):
    """Rating left by one participant after an appointment completed."""
    __tablename__ = "appointment_ratings"
    __table_args__ = (UniqueConstraint("appointment_id", "user_id", name="uq_appointment_rating_user"),)

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    feedback = Column(String, default="")
    created_at = Column(DateTime, default=datetime.now)

    appointment = relationship("Appointment", back_populates="ratings")
