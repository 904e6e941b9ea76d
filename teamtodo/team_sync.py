"""
Team Sync

Teams, memberships and invitations against the hosted backend.

Mutations are plain pass-throughs: callers gate them with
`teamtodo.permissions` and the backend's row-level policies have the final
say. Errors from the backend propagate to the caller.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, ValidationError

from .config import Settings
from .errors import InvalidInputError, NotAuthenticatedError, RemoteError, RequestRejectedError, TodoError
from .models.team import (
    InvitationState,
    InviteMemberData,
    MemberUser,
    Role,
    Team,
    TeamCreate,
    TeamInvitation,
    TeamMember,
    TeamUpdate,
    TeamWithMembers,
    UserTeams,
)
from .permissions import ActionLike, is_allowed
from .services import email
from .services.remote import BackendClient, eq, gt, in_
from .services.session import SessionManager

logger = logging.getLogger(__name__)

TEAMS = "teams"
MEMBERS = "team_members"
INVITATIONS = "team_invitations"
PROFILES = "profiles"

MEMBER_COLUMNS = "team_id,user_id,role,joined_at,invited_by"


def build_invitation_link(origin: str, token: str) -> str:
    """Shareable link; the token is the only credential it carries"""
    return f"{origin.rstrip('/')}/invite/{token}"


def placeholder_name(user_id: str) -> str:
    return f"メンバー-{user_id[:8]}"


def validated(model, **data):
    """Build a request model, turning validation failures into InvalidInputError"""
    try:
        return model(**data)
    except ValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else "input"
        message = first.get("msg", "Invalid input").removeprefix("Value error, ")
        raise InvalidInputError(field, message) from e


class InvitationLink(BaseModel):
    """A created invitation plus its shareable link"""
    invitation: TeamInvitation
    invite_link: str
    email_sent: bool = False
    email_error: Optional[str] = None


class TeamService:
    """Team, membership and invitation operations for the signed-in identity"""

    def __init__(
        self,
        client: BackendClient,
        session: SessionManager,
        settings: Settings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.session = session
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # =========================================================================
    # Teams
    # =========================================================================

    async def create_team(
        self,
        name: str,
        description: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Team:
        """Create a team and register the creator as its owner.

        The two inserts are not atomic. If the membership insert fails the
        team row stays behind without an owner; that is logged and the
        membership error is raised.
        """
        data = validated(TeamCreate, name=name, description=description, avatar_url=avatar_url)
        identity = self.session.require_identity()

        row = await self.client.insert(TEAMS, {**data.model_dump(), "created_by": identity.id})
        team = Team.model_validate(row)

        try:
            await self.client.insert(MEMBERS, {
                "team_id": team.id,
                "user_id": identity.id,
                "role": Role.OWNER.value,
            })
        except RemoteError as e:
            logger.error(f"Team {team.id} created but owner membership insert failed: {e}")
            raise

        logger.info(f"Team created: {team.id} by {identity.id}")
        return team

    async def list_user_teams(self) -> UserTeams:
        """Teams of the signed-in identity, bucketed by its role"""
        identity = self.session.current_identity
        if identity is None:
            return UserTeams()

        memberships = await self.client.select(
            MEMBERS, {"user_id": eq(identity.id)}, columns="team_id,role"
        )
        roles = {m["team_id"]: Role(m["role"]) for m in memberships}

        teams: dict[str, Team] = {}
        if roles:
            for row in await self.client.select(TEAMS, {"id": in_(roles)}, order="created_at.asc"):
                team = Team.model_validate(row)
                teams[team.id] = team
        for row in await self.client.select(TEAMS, {"created_by": eq(identity.id)}, order="created_at.asc"):
            team = Team.model_validate(row)
            teams.setdefault(team.id, team)

        result = UserTeams()
        for team in teams.values():
            role = roles.get(team.id)
            if role == Role.OWNER or (role is None and team.created_by == identity.id):
                result.owned_teams.append(team)
            elif role in (Role.ADMIN, Role.MEMBER):
                result.member_teams.append(team)
            elif role == Role.GUEST:
                result.guest_teams.append(team)
        return result

    async def _member_user(self, user_id: str) -> MemberUser:
        identity = self.session.current_identity
        profile = None
        try:
            profile = await self.client.select_one(
                PROFILES, {"id": eq(user_id)}, columns="display_name,avatar_url"
            )
        except RemoteError as e:
            logger.info(f"Profile not found for user {user_id}: {e}")

        display_name = (profile or {}).get("display_name")
        if identity is not None and identity.id == user_id and identity.email:
            label = identity.email
        else:
            label = display_name or placeholder_name(user_id)

        return MemberUser(
            id=user_id,
            email=label,
            full_name=display_name,
            avatar_url=(profile or {}).get("avatar_url"),
        )

    async def get_team_details(self, team_id: str) -> TeamWithMembers:
        """Team row joined with its members and their profile display data"""
        row = await self.client.select_one(TEAMS, {"id": eq(team_id)})
        if row is None:
            raise RequestRejectedError(404, "Team not found", "PGRST116")
        team = Team.model_validate(row)

        rows = await self.client.select(MEMBERS, {"team_id": eq(team_id)}, columns=MEMBER_COLUMNS)

        members = []
        for member_row in rows:
            member = TeamMember.model_validate(member_row)
            member.user = await self._member_user(member.user_id)
            members.append(member)

        identity = self.session.current_identity
        current_id = identity.id if identity else None
        current_role = next((m.role for m in members if m.user_id == current_id), None)

        return TeamWithMembers(
            **team.model_dump(),
            members=members,
            member_count=len(members),
            current_user_is_owner=current_id is not None and team.created_by == current_id,
            current_user_role=current_role,
        )

    async def update_team(self, team_id: str, **changes) -> Team:
        data = validated(TeamUpdate, **changes)
        rows = await self.client.update(TEAMS, data.model_dump(exclude_none=True), {"id": eq(team_id)})
        if not rows:
            raise RequestRejectedError(404, "Team not found", "PGRST116")
        return Team.model_validate(rows[0])

    async def delete_team(self, team_id: str):
        await self.client.delete(TEAMS, {"id": eq(team_id)})
        logger.info(f"Team deleted: {team_id}")

    # =========================================================================
    # Members
    # =========================================================================

    async def get_member_role(self, team_id: str, user_id: Optional[str] = None) -> Optional[Role]:
        """Role of `user_id` (default: the signed-in identity), None if not a member"""
        if user_id is None:
            identity = self.session.current_identity
            if identity is None:
                return None
            user_id = identity.id

        row = await self.client.select_one(
            MEMBERS, {"team_id": eq(team_id), "user_id": eq(user_id)}, columns="role"
        )
        return Role(row["role"]) if row else None

    async def check_permission(self, team_id: str, action: ActionLike) -> bool:
        """Advisory check of the signed-in identity's role; lookup failures deny"""
        try:
            role = await self.get_member_role(team_id)
        except RemoteError as e:
            logger.warning(f"Permission lookup failed for team {team_id}: {e}")
            return False
        return is_allowed(role, action)

    async def _refuse_owner_target(self, team_id: str, user_id: str, message: str):
        if await self.get_member_role(team_id, user_id) == Role.OWNER:
            raise InvalidInputError("user_id", message)

    async def remove_member(self, team_id: str, user_id: str):
        await self._refuse_owner_target(team_id, user_id, "The team owner cannot be removed")
        await self.client.delete(MEMBERS, {"team_id": eq(team_id), "user_id": eq(user_id)})
        logger.info(f"Member {user_id} removed from team {team_id}")

    async def update_member_role(self, team_id: str, user_id: str, role):
        try:
            role = Role(role)
        except ValueError:
            raise InvalidInputError("role", f"Unknown role: {role}") from None
        if role == Role.OWNER:
            raise InvalidInputError("role", "Ownership cannot be assigned")

        await self._refuse_owner_target(team_id, user_id, "The team owner's role cannot be changed")
        await self.client.update(
            MEMBERS, {"role": role.value}, {"team_id": eq(team_id), "user_id": eq(user_id)}
        )
        logger.info(f"Member {user_id} of team {team_id} is now {role.value}")

    # =========================================================================
    # Invitations
    # =========================================================================

    async def invite_member(self, team_id: str, email_address: str, role=Role.MEMBER) -> InvitationLink:
        data = validated(InviteMemberData, email=email_address, role=role)
        identity = self.session.require_identity()

        token = await self.client.rpc("generate_invitation_token")
        expires_at = self._clock() + timedelta(days=self.settings.invitation_ttl_days)

        row = await self.client.insert(INVITATIONS, {
            "team_id": team_id,
            "email": data.email,
            "role": data.role.value,
            "token": token,
            "expires_at": expires_at.isoformat(),
            "created_by": identity.id,
        })
        invitation = TeamInvitation.model_validate(row)
        invite_link = build_invitation_link(self.settings.site_origin, invitation.token)

        logger.info(
            f"Invitation created for {data.email} to team {team_id} "
            f"as {data.role.value}, expires {invitation.expires_at.isoformat()}"
        )

        result = InvitationLink(invitation=invitation, invite_link=invite_link)
        if email.is_configured(self.settings):
            sent = await self._send_invitation_email(invitation, invite_link, identity.email)
            result.email_sent = bool(sent.get("sent"))
            result.email_error = sent.get("error")
        return result

    async def _send_invitation_email(self, invitation: TeamInvitation, invite_link: str, invited_by: Optional[str]) -> dict:
        team_name = "your team"
        try:
            team = await self.client.select_one(TEAMS, {"id": eq(invitation.team_id)}, columns="name")
            if team:
                team_name = team["name"]
        except RemoteError as e:
            logger.warning(f"Could not load team name for invitation email: {e}")

        return await asyncio.to_thread(
            email.send_invitation_email,
            self.settings,
            invitation.email,
            invite_link,
            team_name,
            invitation.role.value,
            invitation.expires_at.isoformat(),
            invited_by,
        )

    async def list_invitations(self, team_id: str) -> list:
        """Invitations of a team that have not expired yet"""
        now = self._clock()
        rows = await self.client.select(
            INVITATIONS,
            {"team_id": eq(team_id), "expires_at": gt(now.isoformat())},
            order="created_at.asc",
        )
        invitations = [TeamInvitation.model_validate(row) for row in rows]
        return [i for i in invitations if i.state(now) == InvitationState.CREATED]

    async def delete_invitation(self, invitation_id: str):
        await self.client.delete(INVITATIONS, {"id": eq(invitation_id)})
        logger.info(f"Invitation cancelled: {invitation_id}")

    async def accept_invitation(self, token: str) -> bool:
        """Accept an invitation for the signed-in identity.

        Token lookup, expiry check, membership insert and consumption run as
        one server-side procedure, so a token succeeds at most once.
        """
        self.session.require_identity()
        token = (token or "").strip()
        if not token:
            return False

        result = await self.client.rpc("accept_team_invitation", {"invitation_token": token})
        accepted = bool(result)
        if accepted:
            logger.info("Invitation accepted")
        else:
            logger.warning("Invitation rejected: invalid or expired")
        return accepted


# =============================================================================
# Invitation acceptance flow
# =============================================================================

class AcceptanceState(str, Enum):
    IDLE = "idle"
    LOGIN_REQUIRED = "login_required"
    ACCEPTING = "accepting"
    ACCEPTED = "accepted"
    FAILED = "failed"


ACCEPT_FAILED_MESSAGE = "Could not accept the invitation. It may have expired or be invalid."


class InvitationAcceptance:
    """Drives one `/invite/<token>` visit: accept, then redirect or offer a retry"""

    def __init__(
        self,
        service: TeamService,
        token: str,
        redirect_delay: Optional[float] = None,
        max_retries: int = 1,
    ):
        self.service = service
        self.token = token
        if redirect_delay is None:
            redirect_delay = service.settings.invite_redirect_delay
        self.redirect_delay = redirect_delay
        self.retries_left = max_retries
        self.state = AcceptanceState.IDLE
        self.error: Optional[str] = None
        self.redirect_to: Optional[str] = None

    async def start(self) -> AcceptanceState:
        if self.service.session.current_identity is None:
            self.state = AcceptanceState.LOGIN_REQUIRED
            self.redirect_to = "/login"
            return self.state

        self.state = AcceptanceState.ACCEPTING
        self.error = None
        try:
            accepted = await self.service.accept_invitation(self.token)
        except NotAuthenticatedError:
            self.state = AcceptanceState.LOGIN_REQUIRED
            self.redirect_to = "/login"
            return self.state
        except TodoError as e:
            self.state = AcceptanceState.FAILED
            self.error = str(e) or ACCEPT_FAILED_MESSAGE
            return self.state

        if accepted:
            self.state = AcceptanceState.ACCEPTED
            self.redirect_to = "/"
        else:
            self.state = AcceptanceState.FAILED
            self.error = ACCEPT_FAILED_MESSAGE
        return self.state

    @property
    def can_retry(self) -> bool:
        return self.state == AcceptanceState.FAILED and self.retries_left > 0

    async def retry(self) -> AcceptanceState:
        if not self.can_retry:
            return self.state
        self.retries_left -= 1
        return await self.start()

    async def wait_for_redirect(self) -> Optional[str]:
        """Sleep out the confirmation delay after a successful accept"""
        if self.state == AcceptanceState.ACCEPTED:
            await asyncio.sleep(self.redirect_delay)
        return self.redirect_to
