"""User store: account records and their confirmation/privacy flags."""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dreik.models.user import User
from dreik.stores.errors import UserAlreadyExists, UserNotFound


class UserStore:
    """Data access for users. Flushes only; callers own the transaction."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(self, email: str, username: str, name: str, password_hash: str, confirmation_token: str) -> User:
        """Insert a user. Raises UserAlreadyExists on a duplicate email or username."""
        user = User(
            email=email,
            username=username,
            name=name,
            password_hash=password_hash,
            confirmation_token=confirmation_token,
            is_private=False,
            is_confirmed=False,
            avatar_url="",
        )
        self.db.add(user)
        self._flush()
        return user

    def get_by_id(self, user_id: str) -> User:
        return self._one(self.db.query(User).filter(User.id == user_id).first())

    def get_by_email(self, email: str) -> User:
        return self._one(self.db.query(User).filter(User.email == email).first())

    def get_by_username(self, username: str) -> User:
        return self._one(self.db.query(User).filter(User.username == username).first())

    def username_taken(self, username: str) -> bool:
        return self.db.query(User.id).filter(User.username == username).first() is not None

    def save(self, user: User) -> None:
        """Flush pending changes on a loaded user. Raises UserAlreadyExists if the email or username is taken."""
        self._flush()

    def update_password_by_email(self, email: str, password_hash: str) -> None:
        updated = self.db.query(User).filter(User.email == email).update({User.password_hash: password_hash})
        if not updated:
            raise UserNotFound()

    def set_confirmed(self, email: str, token: str) -> None:
        """Confirm the user owning both email and confirmation token."""
        updated = (
            self.db.query(User)
            .filter(User.email == email, User.confirmation_token == token)
            .update({User.is_confirmed: True})
        )
        if not updated:
            raise UserNotFound()

    def _flush(self) -> None:
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise UserAlreadyExists() from None

    @staticmethod
    def _one(user: User | None) -> User:
        if user is None:
            raise UserNotFound()
        return user
