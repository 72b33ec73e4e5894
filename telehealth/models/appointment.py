"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from telehealth.database import Base


class Appointment(Base):
    """Represents a booked appointment. Times are naive UTC."""
    __tablename__ = "appointments"

    id = Column(String, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    service = Column(String, nullable=False)
    scheduled_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String, nullable=False)
    meet_link = Column(String)
    note = Column(String)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)
