"""User model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from telehealth.database import Base

ROLE_PATIENT = "patient"
ROLE_PROFESSIONAL = "professional"
ROLE_ADMIN = "admin"


class User(Base):
    """Represents an application user, linked to the auth provider's account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    auth_user_id = Column(String, unique=True, index=True)
    email = Column(String, unique=True, index=True)
    full_name = Column(String)
    role = Column(String)  # patient/professional/admin
    is_active = Column(Boolean, default=True)
