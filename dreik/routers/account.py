"""Account API endpoints for the signed-in user."""

from fastapi import APIRouter, Depends, File, Request, UploadFile
from sqlalchemy.orm import Session

from dreik.database import get_db
from dreik.dependencies import CurrentUser, get_account_service, get_auth_service, get_current_user
from dreik.rate_limit import limiter
from dreik.schemas.account import AccountResponse, UpdateAccountRequest
from dreik.schemas.auth import MessageResponse, UpdatePasswordRequest
from dreik.services.account import AccountService
from dreik.services.auth import AuthService

router = APIRouter(prefix="/api/account", tags=["account"])


@router.get("", response_model=AccountResponse)
def get_current_account(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> AccountResponse:
    """Return the signed-in user's account."""
    return AccountResponse.from_user(accounts.get_account(db, user.user_id))


@router.patch("", response_model=AccountResponse)
def update_account(
    body: UpdateAccountRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> AccountResponse:
    """Update only the fields present in the request body."""
    return AccountResponse.from_user(accounts.update_account(db, user.user_id, body))


@router.patch("/avatar", response_model=AccountResponse)
async def upload_avatar(
    avatar: UploadFile | None = File(None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> AccountResponse:
    """Upload a PNG or JPEG avatar, replacing the previous one."""
    updated = await accounts.upload_avatar(db, user.user_id, avatar)
    return AccountResponse.from_user(updated)


@router.delete("/avatar", response_model=AccountResponse)
def delete_avatar(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> AccountResponse:
    """Remove the avatar image."""
    return AccountResponse.from_user(accounts.delete_avatar(db, user.user_id))


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
