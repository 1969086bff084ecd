"""Keep local users and identity links in step with the identity provider."""

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from src.authsync.core.errors import Conflict, PersistenceError
from src.authsync.core.models.claims import ProviderUser
from src.authsync.core.security import normalize_email
from src.authsync.entities import AuthIdentity, IdentityStore, Team, User


class IdentityReconciler:
    """Find-or-create the local user for a provider user and link the identity.

    Lookup order is external id, then normalized email. Creation runs inside a
    savepoint; losing a uniqueness race re-reads the winner and updates it in
    place, so concurrent first logins converge on a single row.
    """

    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name

    def ensure_local_user(
        self,
        store: IdentityStore,
        profile: ProviderUser,
        *,
        access_token: str | None = None,
        refresh_token: str | None = None,
    ) -> User:
        with store.transaction():
            user = self._find_or_create(store, profile)
            if user.id is None:
                raise PersistenceError()
            store.link(
                AuthIdentity(
                    user_id=user.id,
                    provider=self.provider_name,
                    subject=profile.id,
                    email=profile.email,
                    access_token=access_token,
                    refresh_token=refresh_token,
                )
            )
        return user

    def _lookup(self, store: IdentityStore, profile: ProviderUser) -> User | None:
        user = store.users.get_by_external_id(profile.id)
        if user is None and normalize_email(profile.email):
            user = store.users.get_by_email(profile.email)
        return user

    def _find_or_create(self, store: IdentityStore, profile: ProviderUser) -> User:
        existing = self._lookup(store, profile)
        if existing is not None:
            return self._merge(store, existing, profile)

        try:
            with store.savepoint():
                created = store.users.create(self._new_user(profile))
        except IntegrityError:
            winner = self._lookup(store, profile)
            if winner is None:
                raise
            logger.info("User for {} was created concurrently, merging", profile.id)
            return self._merge(store, winner, profile)

        if created.id is None:
            raise PersistenceError("user was not assigned an id")
        store.preferences.create_default(created.id)
        logger.info("Created local user {} for provider user {}", created.id, profile.id)
        return created

    @staticmethod
    def _new_user(profile: ProviderUser) -> User:
        return User(
            email=normalize_email(profile.email) or None,
            name=profile.display_name,
            avatar_url=profile.profile_picture_url,
            external_id=profile.id,
            email_verified_at=profile.verified_timestamp(),
        )

    def _merge(self, store: IdentityStore, user: User, profile: ProviderUser) -> User:
        """Overwrite local fields with the provider's view.

        A changed email follows the provider's verification flag; the identity
        link itself is kept.
        """
        email = normalize_email(profile.email) or user.email
        email_changed = email != user.email

        if not profile.email_verified:
            verified_at = None
        elif user.email_verified_at is not None and not email_changed:
            verified_at = user.email_verified_at
        else:
            verified_at = profile.verified_timestamp()

        updated = user.model_copy(
            update={
                "email": email,
                "name": profile.display_name or user.name,
                "avatar_url": profile.profile_picture_url or user.avatar_url,
                "external_id": profile.id,
                "email_verified_at": verified_at,
            }
        )
        try:
            with store.savepoint():
                return store.users.update(updated)
        except IntegrityError as exc:
            logger.warning(
                "Email of provider user {} already belongs to another account", profile.id
            )
            raise Conflict("email already belongs to another account") from exc


def default_team_name(user: User) -> str:
    name = (user.name or "").strip()
    return f"{name}'s team" if name else "My team"


def ensure_default_team(store: IdentityStore, user: User) -> Team | None:
    """Give a verified user with no memberships a team of their own.

    Runs in its own transaction after reconciliation. Failures are logged and
    never fail the login.
    """
    if user.id is None or not user.is_verified:
        return None
    try:
        with store.transaction():
            if store.teams.list_for_user(user.id):
                return None
            team = store.teams.create_with_owner(default_team_name(user), user.id)
    except SQLAlchemyError as exc:
        logger.error("Could not provision default team for user {}: {}", user.id, exc)
        return None
    logger.info("Provisioned default team {} for user {}", team.id, user.id)
    return team
