"""Request store: single-use expiring tokens for password reset and email confirmation."""

from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from dreik.models.request import Request
from dreik.stores.errors import RequestAlreadyUsed, RequestNotFound


class RequestStore:
    """Data access for requests. Flushes only; callers own the transaction."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(self, kind: str, email: str, token: str, ttl: timedelta) -> Request:
        request = Request(
            kind=kind,
            email=email,
            token=token,
            is_used=False,
            expires_at=datetime.utcnow() + ttl,
        )
        self.db.add(request)
        self.db.flush()
        return request

    def get_by_token(self, token: str, kind: str) -> Request:
        request = self.db.query(Request).filter(Request.token == token, Request.kind == kind).first()
        if request is None:
            raise RequestNotFound()
        return request

    def mark_used(self, token: str) -> None:
        """Mark a pending request consumed. Used is never reset.

        Raises RequestAlreadyUsed when another transaction consumed it first.
        """
        updated = (
            self.db.query(Request)
            .filter(Request.token == token, Request.is_used.is_(False))
            .update({Request.is_used: True})
        )
        if not updated:
            raise RequestAlreadyUsed()
