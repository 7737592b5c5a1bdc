"""JWT Token Service."""

import secrets
from datetime import datetime, timedelta

from jose import JWTError, jwt

REQUEST_TOKEN_LENGTH = 64


class InvalidToken(Exception):
    """Token failed signature, structure, expiry or claim checks."""


class TokenManager:
    """Issues and verifies identity tokens signed with an owned secret."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 0) -> None:
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, user_id: str) -> str:
        """Create a signed token for the given user."""
        now = datetime.utcnow()
        payload = {
            "id": user_id,
            "iat": now,
        }
        if self.expire_minutes > 0:
            payload["exp"] = now + timedelta(minutes=self.expire_minutes)
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> str:
        """Return the user id carried by a token. Raises InvalidToken."""
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise InvalidToken(str(e)) from e

        user_id = claims.get("id")
        if not isinstance(user_id, str) or not user_id:
            raise InvalidToken("no `id` claim found in token")
        return user_id

    def long(self) -> str:
        """Random URL-safe string for single-use request tokens."""
        return secrets.token_urlsafe(48)[:REQUEST_TOKEN_LENGTH]
