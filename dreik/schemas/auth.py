"""Pydantic schemas for authentication endpoints."""

from pydantic import BaseModel, Field, model_validator


class RegisterRequest(BaseModel):
    email: str = Field(min_length=1)
    username: str | None = Field(default=None, min_length=1)
    name: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    """Credentials. `login` takes an email or a username; `email` is accepted too."""

    login: str | None = Field(default=None, min_length=1)
    email: str | None = Field(default=None, min_length=1)
    password: str = Field(min_length=1)

    @model_validator(mode="after")
    def require_login(self) -> "LoginRequest":
        if not self.login and not self.email:
            raise ValueError("login or email is required")
        return self

    @property
    def identifier(self) -> str:
        return self.login or self.email or ""


class TokenResponse(BaseModel):
    token: str


class ResetPasswordRequest(BaseModel):
    email: str = Field(min_length=1)


class UpdatePasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ConfirmAccountRequest(BaseModel):
    token: str = Field(min_length=1)


class TokenStatusResponse(BaseModel):
    valid: bool


class MessageResponse(BaseModel):
    message: str
