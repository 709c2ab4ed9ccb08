"""User model"""
import uuid

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from parley.database import Base
from parley.utils.clock import utcnow


class User(Base):
    """A registered account.

    ``access_failed_count`` and ``lockout_end`` back the login lockout
    maintained by :class:`parley.services.user_directory.UserDirectory`.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)  # stored lower-cased
    user_name = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    access_failed_count = Column(Integer, default=0, nullable=False)
    lockout_end = Column(DateTime, nullable=True)

    # Relationships
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")
