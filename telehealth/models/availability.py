"""Availability model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Time
from telehealth.database import Base


class AvailabilityRule(Base):
    """Recurring weekly open window for a professional (0 = Sunday)."""
    __tablename__ = "availability_rules"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    weekday = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)


class AvailabilityOverride(Base):
    """Date-specific extra window (is_available) or removal (not is_available)."""
    __tablename__ = "availability_overrides"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    for_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)


class BlockedSlot(Base):
    """Ad-hoc block over an absolute instant range, stored as naive UTC."""
    __tablename__ = "blocked_slots"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    reason = Column(String)
