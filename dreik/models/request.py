"""Single-use request model (password reset, email confirmation)."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String

from dreik.database import Base

KIND_PASSWORD_RESET = "password_reset"
KIND_EMAIL_CONFIRMATION = "email_confirmation"


class Request(Base):
    """Token tied to an email and a purpose. Valid iff not used and not expired."""

    __tablename__ = "requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    kind = Column(String(32), nullable=False)
    email = Column(String(256), nullable=False, index=True)
    token = Column(String(128), nullable=False, unique=True, index=True)
    is_used = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at
