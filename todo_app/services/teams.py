"""Team membership: who may join which ``team-<id>`` room."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session as DbSession

from ..errors import NotFoundError, ValidationError, field_error
from ..models import Team, TeamMember
from .base import commit
from .validation import clean_team_fields

logger = logging.getLogger(__name__)

OWNER_ROLE = "OWNER"
MEMBER_ROLE = "MEMBER"


class TeamService:
    """Create teams, manage members and answer membership questions."""

    def __init__(self, session: DbSession) -> None:
        self.session = session

    def is_member(self, user_id: int, team_id: int) -> bool:
        stmt = select(TeamMember.id).where(
            TeamMember.team_id == team_id, TeamMember.user_id == user_id
        )
        return self.session.scalar(stmt) is not None

    def team_ids_for(self, user_id: int) -> list[int]:
        stmt = select(TeamMember.team_id).where(TeamMember.user_id == user_id)
        return list(self.session.scalars(stmt))

    def list_teams(self, user_id: int) -> list[Team]:
        stmt = (
            select(Team)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .where(TeamMember.user_id == user_id)
            .order_by(Team.name)
        )
        return list(self.session.scalars(stmt))

    def create_team(self, owner_id: int, data: Any) -> Team:
        """Create a team; the creator becomes its ``OWNER`` member."""
        fields = clean_team_fields(data)
        team = Team(owner_id=owner_id, **fields)
        team.members.append(TeamMember(user_id=owner_id, role=OWNER_ROLE))
        self.session.add(team)
        commit(self.session)
        logger.info("User %s created team %s", owner_id, team.id)
        return team

    def add_member(self, owner_id: int, team_id: int, data: Any) -> Team:
        """
        Add a user to a team owned by ``owner_id``.

        Adding an existing member is a no-op.

        Raises:
            NotFoundError: If the team does not exist or is not owned by
                ``owner_id``.
            ValidationError: If ``user_id`` is missing or not a positive
                integer.
        """
        team = self.session.scalar(
            select(Team).where(Team.id == team_id, Team.owner_id == owner_id)
        )
        if team is None:
            raise NotFoundError("Team not found")

        user_id = data.get("user_id") if isinstance(data, dict) else None
        if not isinstance(user_id, int) or isinstance(user_id, bool) or user_id <= 0:
            raise ValidationError(
                "Validation failed",
                [field_error("user_id", "'user_id' must be a positive integer")],
            )

        if not self.is_member(user_id, team_id):
            team.members.append(TeamMember(user_id=user_id, role=MEMBER_ROLE))
            commit(self.session)
            logger.info("User %s added to team %s", user_id, team_id)
        return team
