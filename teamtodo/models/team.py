"""Team, membership and invitation models"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, field_validator


class Role(str, Enum):
    """Team roles, highest authority first"""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    GUEST = "guest"


INVITABLE_ROLES = (Role.ADMIN, Role.MEMBER, Role.GUEST)


def is_valid_url(value: str) -> bool:
    """True for absolute URLs with a scheme and a host"""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class Team(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    avatar_url: Optional[str] = None
    created_by: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class TeamCreate(BaseModel):
    """Request model for creating a team"""
    name: str
    description: Optional[str] = None
    avatar_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        name = v.strip()
        if not name:
            raise ValueError("Team name is required")
        return name

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    @field_validator("avatar_url")
    @classmethod
    def validate_avatar_url(cls, v: Optional[str]) -> Optional[str]:
        url = _blank_to_none(v)
        if url is not None and not is_valid_url(url):
            raise ValueError("Please enter a valid URL")
        return url


class TeamUpdate(BaseModel):
    """Request model for updating a team; unset fields are left untouched"""
    name: Optional[str] = None
    description: Optional[str] = None
    avatar_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        name = v.strip()
        if not name:
            raise ValueError("Team name cannot be empty")
        return name

    @field_validator("avatar_url")
    @classmethod
    def validate_avatar_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        url = v.strip()
        if url and not is_valid_url(url):
            raise ValueError("Please enter a valid URL")
        return url


class MemberUser(BaseModel):
    """Display data joined onto a membership row"""
    id: str
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


class TeamMember(BaseModel):
    team_id: str
    user_id: str
    role: Role
    joined_at: Optional[str] = None
    invited_by: Optional[str] = None
    user: Optional[MemberUser] = None


class TeamWithMembers(Team):
    members: list[TeamMember] = []
    member_count: int = 0
    current_user_is_owner: bool = False
    current_user_role: Optional[Role] = None


class UserTeams(BaseModel):
    owned_teams: list[Team] = []
    member_teams: list[Team] = []
    guest_teams: list[Team] = []


class InvitationState(str, Enum):
    CREATED = "created"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class TeamInvitation(BaseModel):
    id: str
    team_id: str
    email: str
    role: Role
    token: str
    expires_at: datetime
    created_at: Optional[str] = None
    created_by: str

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: Role) -> Role:
        if v == Role.OWNER:
            raise ValueError("The owner role cannot be invited")
        return v

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now >= expires_at

    def state(self, now: Optional[datetime] = None) -> InvitationState:
        """State of a stored invitation; accepted and cancelled ones no longer exist as rows"""
        return InvitationState.EXPIRED if self.is_expired(now) else InvitationState.CREATED


class InviteMemberData(BaseModel):
    """Request model for inviting a member by email"""
    email: str
    role: Role = Role.MEMBER

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        email = v.strip()
        if not email:
            raise ValueError("Email address is required")
        if "@" not in email:
            raise ValueError("Please enter a valid email address")
        return email

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: Role) -> Role:
        if v not in INVITABLE_ROLES:
            raise ValueError("The owner role cannot be invited")
        return v
