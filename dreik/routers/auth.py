"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from dreik.database import get_db
from dreik.dependencies import get_auth_service
from dreik.errors import NotFound
from dreik.rate_limit import limiter
from dreik.schemas.account import AccountResponse
from dreik.schemas.auth import (
    ConfirmAccountRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    TokenStatusResponse,
    UpdatePasswordRequest,
)
from dreik.services.auth import AuthService

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/account", response_model=AccountResponse, status_code=201)
@limiter.limit("5/minute")
def create_account(
    request: Request,
    body: RegisterRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> AccountResponse:
    """Create a new account and send the confirmation email."""
    user = auth.register(db, body.email, body.name, body.password, body.username)
    return AccountResponse.from_user(user)


@router.post("/session", response_model=TokenResponse)
@limiter.limit("10/minute")
def create_session(
    request: Request,
    body: LoginRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Check an email or username and password, and return an access token."""
    return TokenResponse(token=auth.authenticate(db, body.identifier, body.password))


@router.post("/account/confirm", response_model=MessageResponse)
@limiter.limit("5/minute")
def confirm_account(
    request: Request,
    body: ConfirmAccountRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Confirm an account's email with the emailed token."""
    auth.confirm_account(db, body.token)
    return MessageResponse(message="account confirmed")


@router.post("/password/reset", response_model=MessageResponse)
@limiter.limit("3/minute")
def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Send an email with a recovery link."""
    auth.request_password_reset(db, body.email)
    return MessageResponse(message="recovery link sent")


@router.get("/password/reset/{token}", response_model=TokenStatusResponse)
def check_reset_token(
    token: str,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> TokenStatusResponse:
    """Tell whether a recovery link can still be used."""
    if not auth.is_reset_token_pending(db, token):
        raise NotFound("password reset request not found")
    return TokenStatusResponse(valid=True)


@router.patch("/password", response_model=MessageResponse)
@limiter.limit("5/minute")
def update_password(
    request: Request,
    body: UpdatePasswordRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set a new password using a recovery token."""
    auth.update_password(db, body.token, body.password)
    return MessageResponse(message="password updated")
