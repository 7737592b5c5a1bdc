"""Authentication service: registration, login, password reset and email confirmation."""

import logging
import re
from datetime import timedelta

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.orm import Session

from dreik.config import Settings
from dreik.errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationError
from dreik.models.request import KIND_EMAIL_CONFIRMATION, KIND_PASSWORD_RESET, Request
from dreik.models.user import User
from dreik.services.jwt import TokenManager
from dreik.services.mailer import MailQueue
from dreik.services.password import PasswordHasher
from dreik.stores.cache import TokenCache
from dreik.stores.errors import RequestAlreadyUsed, RequestNotFound, UserAlreadyExists, UserNotFound
from dreik.stores.request import RequestStore
from dreik.stores.user import UserStore

logger = logging.getLogger("dreik.auth")

USERNAME_MAX_LENGTH = 64
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def normalize_email(email: str) -> str:
    """Validate email syntax and return its stored form. Raises ValidationError."""
    email = email.strip()
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        logger.debug("email is invalid: %s", email)
        raise ValidationError("invalid email format") from None
    return email.lower()


def normalize_username(username: str) -> str:
    """Usernames never contain "@", so a login string is either an email or a username."""
    username = username.strip()
    if len(username) > USERNAME_MAX_LENGTH or not USERNAME_PATTERN.match(username):
        logger.debug("username is invalid: %s", username)
        raise ValidationError("invalid username format")
    return username


def available_username(users: UserStore, email: str) -> str:
    """Derive a free username from the local part of an email."""
    base = re.sub(r"[^a-z0-9_.-]", "", email.split("@", 1)[0].lower())[: USERNAME_MAX_LENGTH - 8] or "user"
    candidate, suffix = base, 0
    while users.username_taken(candidate):
        suffix += 1
        candidate = f"{base}{suffix}"
    return candidate


class AuthService:
    """Orchestrates hasher, token manager and stores for the auth flows."""

    def __init__(
        self,
        settings: Settings,
        tokens: TokenManager,
        hasher: PasswordHasher,
        mail_queue: MailQueue,
        cache: TokenCache,
    ) -> None:
        self.settings = settings
        self.tokens = tokens
        self.hasher = hasher
        self.mail_queue = mail_queue
        self.cache = cache
        self.reset_ttl = timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
        self.confirmation_ttl = timedelta(hours=settings.CONFIRMATION_TOKEN_EXPIRE_HOURS)

    def register(self, db: Session, email: str, name: str, password: str, username: str | None = None) -> User:
        """Create a user and its confirmation request in one transaction.

        Without an explicit username one is derived from the email.
        """
        email = normalize_email(email)
        users = UserStore(db)
        username = normalize_username(username) if username is not None else available_username(users, email)
        token = self.tokens.long()

        try:
            user = users.create(email, username, name.strip(), self.hasher.hash(password), token)
        except UserAlreadyExists:
            logger.info("user already exists: %s", email)
            raise Conflict("user already exists") from None
        RequestStore(db).create(KIND_EMAIL_CONFIRMATION, email, token, self.confirmation_ttl)
        db.commit()
        db.refresh(user)

        logger.info("created a user id=%s email=%s", user.id, user.email)
        self.mail_queue.send_confirmation(user.email, token)
        return user

    def authenticate(self, db: Session, login: str, password: str) -> str:
        """Return an identity token for an email or username.

        Unknown login and wrong password fail the same way.
        """
        login = login.strip()
        users = UserStore(db)
        try:
            user = users.get_by_email(login.lower()) if "@" in login else users.get_by_username(login)
        except UserNotFound:
            user = None

        if user is None or not self.hasher.verify(password, user.password_hash):
            logger.debug("user not found: %s", login)
            raise Unauthorized("user not found")

        if self.settings.REQUIRE_EMAIL_CONFIRMATION and not user.is_confirmed:
            logger.debug("user's email not confirmed: %s", user.id)
            token = self.reissue_confirmation(db, user)
            db.commit()
            self.mail_queue.send_confirmation(user.email, token)
            raise Forbidden("email confirmation needed")

        return self.tokens.issue(user.id)

    def reissue_confirmation(self, db: Session, user: User) -> str:
        """Give the user a fresh confirmation token and request. Caller commits."""
        token = self.tokens.long()
        user.is_confirmed = False
        user.confirmation_token = token
        RequestStore(db).create(KIND_EMAIL_CONFIRMATION, user.email, token, self.confirmation_ttl)
        return token

    def request_password_reset(self, db: Session, email: str) -> Request:
        """Create a password reset request and send the recovery link."""
        email = email.strip().lower()
        try:
            UserStore(db).get_by_email(email)
        except UserNotFound:
            logger.debug("user not found: %s", email)
            raise NotFound("user not found") from None

        request = RequestStore(db).create(KIND_PASSWORD_RESET, email, self.tokens.long(), self.reset_ttl)
        db.commit()

        self.cache.set(request.token, email, int(self.reset_ttl.total_seconds()))
        self.mail_queue.send_recovery(email, request.token)
        return request

    def is_reset_token_pending(self, db: Session, token: str) -> bool:
        if self.cache.get(token) is not None:
            return True
        try:
            request = RequestStore(db).get_by_token(token, KIND_PASSWORD_RESET)
        except RequestNotFound:
            return False
        return not request.is_used and not request.is_expired()

    def update_password(self, db: Session, token: str, password: str) -> None:
        """Consume a reset request: set the new password and mark the token used together."""
        requests = RequestStore(db)
        request = self._consumable(
            requests,
            token,
            KIND_PASSWORD_RESET,
            not_found="password reset request not found",
            expired="recovery token expired",
            used="this recovery token has been used",
        )

        try:
            UserStore(db).update_password_by_email(request.email, self.hasher.hash(password))
        except UserNotFound:
            db.rollback()
            logger.info("password reset for a missing user: %s", request.email)
            raise NotFound("user not found") from None
        self._mark_used(db, requests, request.token, "this recovery token has been used")
        db.commit()

        self.cache.delete(request.token)
        logger.info("password updated for %s", request.email)

    def confirm_account(self, db: Session, token: str) -> None:
        """Consume a confirmation request and mark the account confirmed."""
        requests = RequestStore(db)
        request = self._consumable(
            requests,
            token,
            KIND_EMAIL_CONFIRMATION,
            not_found="confirmation request not found",
            expired="confirmation token expired",
            used="this confirmation token has been used",
        )

        try:
            UserStore(db).set_confirmed(request.email, request.token)
        except UserNotFound:
            db.rollback()
            logger.info("confirmation for a missing or changed account: %s", request.email)
            raise NotFound("user not found") from None
        self._mark_used(db, requests, request.token, "this confirmation token has been used")
        db.commit()

        logger.info("email confirmed for %s", request.email)

    @staticmethod
    def _mark_used(db: Session, requests: RequestStore, token: str, used: str) -> None:
        try:
            requests.mark_used(token)
        except RequestAlreadyUsed:
            db.rollback()
            logger.info("request consumed concurrently")
            raise Forbidden(used) from None

    @staticmethod
    def _consumable(
        requests: RequestStore, token: str, kind: str, not_found: str, expired: str, used: str
    ) -> Request:
        try:
            request = requests.get_by_token(token, kind)
        except RequestNotFound:
            logger.debug("%s request not found", kind)
            raise NotFound(not_found) from None

        if request.is_expired():
            logger.debug("%s token already expired", kind)
            raise Forbidden(expired)
        if request.is_used:
            logger.debug("%s token already used", kind)
            raise Forbidden(used)
        return request
