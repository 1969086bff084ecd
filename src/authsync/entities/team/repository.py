"""Team data access."""

from sqlmodel import Session, select

from .entity import Team, TeamMembership, TeamRole
from .table import TeamMembershipTable, TeamTable


class TeamRepository:
    """Data-access layer for teams and memberships."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def list_for_user(self, user_id: int) -> list[Team]:
        statement = (
            select(TeamTable)
            .join(TeamMembershipTable, TeamMembershipTable.team_id == TeamTable.id)
            .where(TeamMembershipTable.user_id == user_id)
            .order_by(TeamTable.id)
        )
        return [Team.model_validate(row) for row in self._session.exec(statement).all()]

    def members(self, team_id: int) -> list[TeamMembership]:
        rows = self._session.exec(
            select(TeamMembershipTable).where(TeamMembershipTable.team_id == team_id)
        ).all()
        return [TeamMembership.model_validate(row) for row in rows]

    def create_with_owner(self, name: str, owner_id: int, icon: str | None = None) -> Team:
        """Create a team whose sole member is its owner."""
        team = TeamTable(name=name, icon=icon, owner_id=owner_id)
        self._session.add(team)
        self._session.flush()
        self._session.add(
            TeamMembershipTable(
                team_id=team.id, user_id=owner_id, role=TeamRole.OWNER.value
            )
        )
        self._session.flush()
        self._session.refresh(team)
        return Team.model_validate(team)
