"""Linked credential data access."""

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from src.authsync.core.security import SecretBox, normalize_email
from src.authsync.entities._base import utc_now

from .entity import AuthIdentity
from .table import AuthIdentityTable


class AuthIdentityRepository:
    """Data-access layer for linked credentials.

    Access and refresh tokens are sealed with ``cipher`` at rest.
    """

    def __init__(self, session: Session, cipher: SecretBox) -> None:
        self._session = session
        self._cipher = cipher

    def _seal(self, value: str | None) -> str | None:
        return self._cipher.encrypt(value) if value else None

    def _open(self, value: str | None) -> str | None:
        return self._cipher.decrypt(value) if value else None

    def _to_entity(self, row: AuthIdentityTable) -> AuthIdentity:
        return AuthIdentity(
            id=row.id,
            user_id=row.user_id,
            provider=row.provider,
            subject=row.subject,
            email=row.email,
            access_token=self._open(row.access_token_encrypted),
            refresh_token=self._open(row.refresh_token_encrypted),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _row(self, provider: str, subject: str) -> AuthIdentityTable | None:
        statement = select(AuthIdentityTable).where(
            (AuthIdentityTable.provider == provider)
            & (AuthIdentityTable.subject == subject)
        )
        return self._session.exec(statement).first()

    def get_by_provider_subject(self, provider: str, subject: str) -> AuthIdentity | None:
        row = self._row(provider, subject)
        return self._to_entity(row) if row else None

    def list_for_user(self, user_id: int) -> list[AuthIdentity]:
        rows = self._session.exec(
            select(AuthIdentityTable).where(AuthIdentityTable.user_id == user_id)
        ).all()
        return [self._to_entity(row) for row in rows]

    def _apply(self, row: AuthIdentityTable, identity: AuthIdentity) -> AuthIdentity:
        if row.user_id != identity.user_id:
            logger.warning(
                "Relinking {} identity {} from user {} to user {}",
                identity.provider,
                identity.subject,
                row.user_id,
                identity.user_id,
            )
            row.user_id = identity.user_id
        row.email = normalize_email(identity.email) or None
        if identity.access_token is not None:
            row.access_token_encrypted = self._seal(identity.access_token)
        if identity.refresh_token is not None:
            row.refresh_token_encrypted = self._seal(identity.refresh_token)
        row.updated_at = utc_now()
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return self._to_entity(row)

    def upsert(self, identity: AuthIdentity) -> AuthIdentity:
        """Create the (provider, subject) link or update the existing one in place.

        A concurrent insert of the same link surfaces as a unique violation,
        after which the winning row is re-read and updated instead.
        """
        existing = self._row(identity.provider, identity.subject)
        if existing is not None:
            return self._apply(existing, identity)

        row = AuthIdentityTable(
            user_id=identity.user_id,
            provider=identity.provider,
            subject=identity.subject,
            email=normalize_email(identity.email) or None,
            access_token_encrypted=self._seal(identity.access_token),
            refresh_token_encrypted=self._seal(identity.refresh_token),
        )
        try:
            with self._session.begin_nested():
                self._session.add(row)
                self._session.flush()
        except IntegrityError:
            logger.info(
                "Identity {}:{} was linked concurrently, updating instead",
                identity.provider,
                identity.subject,
            )
            existing = self._row(identity.provider, identity.subject)
            if existing is None:
                raise
            return self._apply(existing, identity)

        self._session.refresh(row)
        return self._to_entity(row)

    def update_tokens(
        self, identity_id: int, access_token: str, refresh_token: str | None
    ) -> AuthIdentity:
        row = self._session.get(AuthIdentityTable, identity_id)
        if row is None:
            raise LookupError(f"Identity {identity_id} not found")
        row.access_token_encrypted = self._seal(access_token)
        if refresh_token:
            row.refresh_token_encrypted = self._seal(refresh_token)
        row.updated_at = utc_now()
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return self._to_entity(row)

    def delete(self, identity_id: int) -> None:
        row = self._session.get(AuthIdentityTable, identity_id)
        if row is not None:
            self._session.delete(row)
            self._session.flush()
