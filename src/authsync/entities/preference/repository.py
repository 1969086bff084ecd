"""User preference data access."""

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .entity import UserPreference
from .table import UserPreferenceTable


class PreferenceRepository:
    """Data-access layer for user preferences."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, user_id: int) -> UserPreference | None:
        row = self._session.exec(
            select(UserPreferenceTable).where(UserPreferenceTable.user_id == user_id)
        ).first()
        return UserPreference.model_validate(row) if row else None

    def create_default(self, user_id: int) -> UserPreference:
        """Create the default preferences row; an existing row is returned as-is."""
        existing = self.get(user_id)
        if existing is not None:
            return existing

        row = UserPreferenceTable(user_id=user_id)
        try:
            with self._session.begin_nested():
                self._session.add(row)
                self._session.flush()
        except IntegrityError:
            existing = self.get(user_id)
            if existing is None:
                raise
            return existing
        self._session.refresh(row)
        return UserPreference.model_validate(row)
