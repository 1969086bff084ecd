"""User data access."""

from sqlmodel import Session, select

from src.authsync.core.security import normalize_email
from src.authsync.entities._base import utc_now

from .entity import User
from .table import UserTable

_MUTABLE_FIELDS = ("email", "name", "avatar_url", "external_id", "email_verified_at")


class UserRepository:
    """Data-access layer for users.

    Lookups ignore soft-deleted rows. Writes are flushed, not committed; the
    caller owns the transaction.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def _active(self):
        return select(UserTable).where(UserTable.deleted_at.is_(None))

    def get(self, user_id: int) -> User | None:
        row = self._session.exec(self._active().where(UserTable.id == user_id)).first()
        return User.model_validate(row) if row else None

    def get_by_external_id(self, external_id: str) -> User | None:
        if not external_id:
            return None
        row = self._session.exec(
            self._active().where(UserTable.external_id == external_id)
        ).first()
        return User.model_validate(row) if row else None

    def get_by_email(self, email: str | None) -> User | None:
        normalized = normalize_email(email)
        if not normalized:
            return None
        row = self._session.exec(
            self._active().where(UserTable.email == normalized)
        ).first()
        return User.model_validate(row) if row else None

    def create(self, user: User) -> User:
        row = UserTable(
            **user.model_dump(include=set(_MUTABLE_FIELDS)),
        )
        row.email = normalize_email(row.email) or None
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return User.model_validate(row)

    def update(self, user: User) -> User:
        if user.id is None:
            raise ValueError("Cannot update a user that has not been persisted")
        row = self._session.get(UserTable, user.id)
        if row is None:
            raise LookupError(f"User {user.id} not found")
        for field in _MUTABLE_FIELDS:
            setattr(row, field, getattr(user, field))
        row.email = normalize_email(row.email) or None
        row.updated_at = utc_now()
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return User.model_validate(row)

    def soft_delete(self, user_id: int) -> None:
        row = self._session.get(UserTable, user_id)
        if row is None or row.deleted_at is not None:
            return
        row.deleted_at = utc_now()
        self._session.add(row)
        self._session.flush()

    def count(self) -> int:
        return len(self._session.exec(self._active()).all())
