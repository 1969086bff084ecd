"""Persistence boundary for users, linked identities, preferences and teams."""

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from sqlmodel import Session

from src.authsync.core.security import SecretBox

from .auth_identity import AuthIdentity, AuthIdentityRepository
from .preference import PreferenceRepository
from .team import TeamRepository
from .user import User, UserRepository


class IdentityStore:
    """Groups the repositories that share one database session.

    Repositories only flush; :meth:`transaction` commits or rolls back the
    whole unit of work.
    """

    def __init__(self, session: Session, cipher: SecretBox) -> None:
        self.session = session
        self.users = UserRepository(session)
        self.identities = AuthIdentityRepository(session, cipher)
        self.preferences = PreferenceRepository(session)
        self.teams = TeamRepository(session)

    @contextmanager
    def transaction(self) -> Iterator["IdentityStore"]:
        try:
            yield self
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            logger.debug("Identity store transaction rolled back: {}", type(exc).__name__)
            raise

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """Scope a statement that may violate a unique index.

        A violation rolls back to the savepoint only, leaving the surrounding
        transaction usable for the retry path.
        """
        with self.session.begin_nested():
            yield

    # -- convenience pass-throughs used by the session layer --
    def find_identity(self, provider: str, subject: str) -> AuthIdentity | None:
        return self.identities.get_by_provider_subject(provider, subject)

    def load_user(self, user_id: int) -> User | None:
        return self.users.get(user_id)

    def link(self, identity: AuthIdentity) -> AuthIdentity:
        return self.identities.upsert(identity)

    def unlink(self, identity_id: int) -> None:
        self.identities.delete(identity_id)
