"""Password hashing."""

import hashlib
import hmac
from typing import Protocol

import bcrypt


class PasswordHasher(Protocol):
    def hash(self, password: str) -> str: ...

    def verify(self, password: str, password_hash: str) -> bool: ...


class Sha256Hasher:
    """Hex SHA-256 digest. Deterministic and unsalted, matching stored credentials."""

    def hash(self, password: str) -> str:
        return hashlib.sha256(password.encode("utf-8")).hexdigest()

    def verify(self, password: str, password_hash: str) -> bool:
        return hmac.compare_digest(self.hash(password), password_hash)


class BcryptHasher:
    """Salted bcrypt hashes."""

    def hash(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            # Stored value is not a bcrypt hash
            return False


_HASHERS: dict[str, type] = {
    "sha256": Sha256Hasher,
    "bcrypt": BcryptHasher,
}


def get_password_hasher(name: str) -> PasswordHasher:
    """Build the hasher named in settings."""
    try:
        return _HASHERS[name.lower()]()
    except KeyError:
        raise ValueError(f"unknown password hasher '{name}'. Allowed: {', '.join(sorted(_HASHERS))}") from None
