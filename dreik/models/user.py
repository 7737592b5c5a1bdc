"""User model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String

from dreik.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Application account."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(256), unique=True, nullable=False, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(256), nullable=False)
    avatar_url = Column(String(512), nullable=False, default="")
    password_hash = Column(String(256), nullable=False)
    is_private = Column(Boolean, nullable=False, default=False)
    is_confirmed = Column(Boolean, nullable=False, default=False)
    confirmation_token = Column(String(128), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
