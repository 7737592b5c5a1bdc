"""Configuration settings for Dreik API."""

import os
import secrets
from functools import lru_cache
from typing import Any

import yaml
from dotenv import load_dotenv

load_dotenv()

ENV_LOCAL = "local"
ENV_DEVELOPMENT = "dev"
ENV_PRODUCTION = "prod"


def _flatten(data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested YAML sections into SECTION_KEY names."""
    flat: dict[str, Any] = {}
    for key, value in data.items():
        name = f"{prefix}_{key}".upper() if prefix else str(key).upper()
        if isinstance(value, dict):
            flat.update(_flatten(value, name))
        else:
            flat[name] = value
    return flat


def load_yaml_config(path: str | None) -> dict[str, Any]:
    """Read a YAML config file. Returns an empty mapping when no path is given."""
    if not path:
        return {}
    if not os.path.exists(path):
        raise FileNotFoundError(f"config file does not exist: {path}")
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config file must contain a mapping: {path}")
    return _flatten(data)


class Settings:
    """Application settings.

    Values are resolved from keyword overrides, then environment variables,
    then the YAML file named by CONFIG_PATH, then the defaults below.
    """

    def __init__(self, **overrides: Any) -> None:
        self._file = load_yaml_config(overrides.pop("CONFIG_PATH", None) or os.getenv("CONFIG_PATH"))
        self._overrides = overrides

        # Application
        self.ENV: str = self._str("ENV", ENV_LOCAL)
        self.DEBUG: bool = self._bool("DEBUG", False)
        self.LOG_LEVEL: str = self._str("LOG_LEVEL", "")

        # Server
        self.SERVER_HOST: str = self._str("SERVER_HOST", "0.0.0.0")
        self.SERVER_PORT: int = self._int("SERVER_PORT", 8080)
        self.SERVER_TIMEOUT: int = self._int("SERVER_TIMEOUT", 4)
        self.SERVER_IDLE_TIMEOUT: int = self._int("SERVER_IDLE_TIMEOUT", 60)
        self.BASE_PATH: str = self._str("BASE_PATH", "http://localhost:8080").rstrip("/")

        # Storage
        self.DATABASE_URL: str = self._str("DATABASE_URL", "sqlite:///./dreik.db")
        self.REDIS_URL: str = self._str("REDIS_URL", "")

        # Token
        self.TOKEN_SECRET: str = self._str("TOKEN_SECRET", "")
        self.JWT_ALGORITHM: str = self._str("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_MINUTES: int = self._int("JWT_EXPIRE_MINUTES", 480)
        self.PASSWORD_HASHER: str = self._str("PASSWORD_HASHER", "sha256")

        # Requests
        self.RESET_TOKEN_EXPIRE_MINUTES: int = self._int("RESET_TOKEN_EXPIRE_MINUTES", 5)
        self.CONFIRMATION_TOKEN_EXPIRE_HOURS: int = self._int("CONFIRMATION_TOKEN_EXPIRE_HOURS", 24)
        self.REQUIRE_EMAIL_CONFIRMATION: bool = self._bool("REQUIRE_EMAIL_CONFIRMATION", False)

        # Mail
        self.MAIL_ADDRESS: str = self._str("MAIL_ADDRESS", "")
        self.MAIL_PASSWORD: str = self._str("MAIL_PASSWORD", "")
        self.MAIL_SMTP_ADDRESS: str = self._str("MAIL_SMTP_ADDRESS", "")
        self.MAIL_SMTP_PORT: int = self._int("MAIL_SMTP_PORT", 587)
        self.MAIL_QUEUE_SIZE: int = self._int("MAIL_QUEUE_SIZE", 100)
        self.MAIL_RETRIES: int = self._int("MAIL_RETRIES", 3)
        self.MAIL_RETRY_BACKOFF: float = float(self._value("MAIL_RETRY_BACKOFF", 1.0))

        # Upload
        self.AVATAR_DIR: str = self._str("AVATAR_DIR", "./.database/avatars")
        self.MAX_AVATAR_SIZE_BYTES: int = self._int("MAX_AVATAR_SIZE_BYTES", 2 * 1024 * 1024)

        self._generated_secret = not self.TOKEN_SECRET
        if self._generated_secret:
            self.TOKEN_SECRET = secrets.token_urlsafe(32)

    def _value(self, name: str, default: Any) -> Any:
        if name in self._overrides:
            return self._overrides[name]
        env = os.getenv(name)
        if env is not None:
            return env
        return self._file.get(name, default)

    def _str(self, name: str, default: str) -> str:
        value = self._value(name, default)
        return "" if value is None else str(value)

    def _int(self, name: str, default: int) -> int:
        return int(self._value(name, default))

    def _bool(self, name: str, default: bool) -> bool:
        value = self._value(name, default)
        if isinstance(value, bool):
            return value
        return str(value).lower() in ("1", "true", "yes", "on")

    @property
    def docs_enabled(self) -> bool:
        return self.ENV in (ENV_LOCAL, ENV_DEVELOPMENT)

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        errors = []
        if self._generated_secret:
            errors.append("TOKEN_SECRET is not set - using auto-generated key (not persistent across restarts)")
        if self.ENV not in (ENV_LOCAL, ENV_DEVELOPMENT, ENV_PRODUCTION):
            errors.append(f"ENV '{self.ENV}' is unknown - expected one of local, dev, prod")
        if not self.MAIL_SMTP_ADDRESS:
            errors.append("MAIL_SMTP_ADDRESS is not set - emails are written to the log instead of sent")
        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
