"""Account service for profile reads, partial updates and avatar storage."""

import logging
import uuid
from pathlib import Path

from fastapi import UploadFile
from sqlalchemy.orm import Session

from dreik.config import Settings
from dreik.errors import Conflict, NotFound, Unauthorized, ValidationError
from dreik.models.user import User
from dreik.schemas.account import UpdateAccountRequest
from dreik.services.auth import AuthService, normalize_email, normalize_username
from dreik.stores.errors import UserAlreadyExists, UserNotFound
from dreik.stores.user import UserStore

logger = logging.getLogger("dreik.account")

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg"}
AVATAR_ROUTE = "/api/avatar"


class AvatarTooLarge(ValueError):
    pass


def _format_size(size: int) -> str:
    if size >= 1024 * 1024:
        return f"{size // (1024 * 1024)}Mb"
    return f"{size // 1024}Kb"


class AccountService:
    """Handles the signed-in user's account and avatar."""

    def __init__(self, settings: Settings, auth: AuthService) -> None:
        self.auth = auth
        self.hasher = auth.hasher
        self.mail_queue = auth.mail_queue
        self.base_path = settings.BASE_PATH
        self.avatar_dir = Path(settings.AVATAR_DIR)
        self.max_avatar_bytes = settings.MAX_AVATAR_SIZE_BYTES

    def get_account(self, db: Session, user_id: str) -> User:
        """Load the caller's account. A token for a vanished user counts as invalid."""
        try:
            return UserStore(db).get_by_id(user_id)
        except UserNotFound:
            logger.debug("user not found: %s", user_id)
            raise Unauthorized("invalid authorization token") from None

    def update_account(self, db: Session, user_id: str, changes: UpdateAccountRequest) -> User:
        """Apply only the fields present in the payload."""
        users = UserStore(db)
        user = self._load(users, user_id)
        fields = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if v is not None}

        email_changed = False
        if "email" in fields:
            email = normalize_email(fields["email"])
            if email != user.email:
                user.email = email
                email_changed = True
        if "username" in fields:
            user.username = normalize_username(fields["username"])
        if "name" in fields:
            user.name = fields["name"].strip()
        if "password" in fields:
            user.password_hash = self.hasher.hash(fields["password"])
        if "is_private" in fields:
            user.is_private = fields["is_private"]

        try:
            users.save(user)
        except UserAlreadyExists:
            logger.info("email or username already taken: %s %s", fields.get("email"), fields.get("username"))
            raise Conflict("user already exists") from None
        confirmation_token = self.auth.reissue_confirmation(db, user) if email_changed else None
        db.commit()
        db.refresh(user)

        if confirmation_token:
            self.mail_queue.send_confirmation(user.email, confirmation_token)
        logger.info("updated user %s fields=%s", user.id, sorted(fields))
        return user

    async def upload_avatar(self, db: Session, user_id: str, upload: UploadFile | None) -> User:
        """Validate and store a new avatar image, replacing the previous one."""
        users = UserStore(db)
        user = self._load(users, user_id)

        if upload is None or not upload.filename:
            raise ValidationError("no avatar image provided")

        ext = Path(upload.filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            logger.debug("invalid extension: %s", ext)
            raise ValidationError("only png, jpg and jpeg files are available")

        filename, file_path = self._create_free_file(ext)
        try:
            await self._write(upload, file_path)
        except AvatarTooLarge:
            self._remove(file_path)
            raise ValidationError(f"file should be smaller than {_format_size(self.max_avatar_bytes)}") from None
        except Exception:
            self._remove(file_path)
            raise

        previous = user.avatar_url
        user.avatar_url = f"{self.base_path}{AVATAR_ROUTE}/{filename}"
        try:
            users.save(user)
            db.commit()
        except Exception:
            self._remove(file_path)
            raise
        db.refresh(user)

        self._remove_previous(previous)
        logger.info("avatar updated for %s: %s", user.id, filename)
        return user

    def delete_avatar(self, db: Session, user_id: str) -> User:
        users = UserStore(db)
        user = self._load(users, user_id)

        previous = user.avatar_url
        user.avatar_url = ""
        users.save(user)
        db.commit()
        db.refresh(user)

        self._remove_previous(previous)
        return user

    def _load(self, users: UserStore, user_id: str) -> User:
        try:
            return users.get_by_id(user_id)
        except UserNotFound:
            logger.debug("user does not exist: %s", user_id)
            raise NotFound("user not found") from None

    def _create_free_file(self, ext: str) -> tuple[str, Path]:
        """Find an unused name in the avatar directory and claim it."""
        self.avatar_dir.mkdir(parents=True, exist_ok=True)
        while True:
            filename = f"{uuid.uuid4()}{ext}"
            file_path = self.avatar_dir / filename
            try:
                file_path.touch(exist_ok=False)
            except FileExistsError:
                continue
            return filename, file_path

    async def _write(self, upload: UploadFile, file_path: Path) -> None:
        """Stream the upload to disk, enforcing the size ceiling."""
        size = 0
        chunk_size = 1024 * 64  # 64KB chunks
        with open(file_path, "wb") as f:
            while True:
                chunk = await upload.read(chunk_size)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_avatar_bytes:
                    logger.debug("file too big: more than %d bytes", self.max_avatar_bytes)
                    raise AvatarTooLarge()
                f.write(chunk)

    def _remove_previous(self, avatar_url: str | None) -> None:
        """Best-effort removal of the file behind a previous avatar URL."""
        if not avatar_url:
            return
        filename = avatar_url.rsplit("/", 1)[-1]
        if not filename or filename in (".", ".."):
            return
        self._remove(self.avatar_dir / filename)

    @staticmethod
    def _remove(file_path: Path) -> None:
        try:
            file_path.unlink()
        except OSError as e:
            logger.warning("can't remove avatar file %s: %s", file_path, e)
