"""User model definitions."""

from sqlalchemy import Column, Integer, String
from booking.database import Base


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    full_name = Column(String, default="")
    role = Column(String, default="user")  # user/admin
