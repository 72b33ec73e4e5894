"""System configuration model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from telehealth.database import Base


class SystemConfiguration(Base):
    """Admin-editable key/value setting."""
    __tablename__ = "system_configurations"

    id = Column(Integer, primary_key=True)
    config_key = Column(String, unique=True, nullable=False, index=True)
    config_value = Column(String, nullable=False)
    data_type = Column(String, default="string")
    is_active = Column(Boolean, default=True)
    description = Column(String)
