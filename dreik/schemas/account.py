"""Pydantic schemas for account endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from dreik.models.user import User

RFC3339 = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(value: datetime) -> str:
    return value.strftime(RFC3339)


class AccountResponse(BaseModel):
    id: str
    email: str
    username: str
    name: str
    avatar_url: str
    is_private: bool
    is_confirmed: bool
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "AccountResponse":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            name=user.name,
            avatar_url=user.avatar_url or "",
            is_private=user.is_private,
            is_confirmed=user.is_confirmed,
            created_at=format_timestamp(user.created_at),
        )


class UpdateAccountRequest(BaseModel):
    """Partial update: only fields present in the payload are applied."""

    email: str | None = Field(default=None, min_length=1)
    username: str | None = Field(default=None, min_length=1)
    name: str | None = Field(default=None, min_length=1)
    password: str | None = Field(default=None, min_length=1)
    is_private: bool | None = None
