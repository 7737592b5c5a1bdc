"""Request-scoped dependencies: identity and the services built at startup."""

import logging
from dataclasses import dataclass

from fastapi import Depends, Request

from dreik.errors import Unauthorized
from dreik.services.account import AccountService
from dreik.services.auth import AuthService
from dreik.services.jwt import InvalidToken, TokenManager
from dreik.services.workout import WorkoutService

logger = logging.getLogger("dreik.identity")


@dataclass
class CurrentUser:
    """Authenticated user context."""

    user_id: str


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.token_manager


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_account_service(request: Request) -> AccountService:
    return request.app.state.account_service


def get_workout_service(request: Request) -> WorkoutService:
    return request.app.state.workout_service


def get_current_user(
    request: Request,
    tokens: TokenManager = Depends(get_token_manager),
) -> CurrentUser:
    """Require an `Authorization: Bearer <token>` header. Raises 401 if invalid."""
    header = request.headers.get("Authorization", "")
    parts = header.split(" ")
    if len(parts) != 2:
        logger.info("incorrect authorization header")
        raise Unauthorized("empty authorization header")

    scheme, token = parts
    if scheme != "Bearer":
        logger.info("incorrect type of authorization token: %s", scheme)
        raise Unauthorized("invalid authorization token type")

    try:
        user_id = tokens.verify(token)
    except InvalidToken as e:
        logger.info("can't parse access token: %s", e)
        raise Unauthorized("invalid authorization token") from None

    request.state.user_id = user_id
    return CurrentUser(user_id=user_id)
