"""Models package - Pydantic models for backend rows and requests"""

from teamtodo.models.change import ChangeEvent, ChangeType
from teamtodo.models.profile import Identity, Profile, ProfileUpdate
from teamtodo.models.task import TEMP_ID_PREFIX, Priority, Task
from teamtodo.models.team import (
    INVITABLE_ROLES,
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

__all__ = [
    # Change feed
    "ChangeEvent",
    "ChangeType",
    # Profiles
    "Identity",
    "Profile",
    "ProfileUpdate",
    # Tasks
    "TEMP_ID_PREFIX",
    "Priority",
    "Task",
    # Teams
    "INVITABLE_ROLES",
    "InvitationState",
    "InviteMemberData",
    "MemberUser",
    "Role",
    "Team",
    "TeamCreate",
    "TeamInvitation",
    "TeamMember",
    "TeamUpdate",
    "TeamWithMembers",
    "UserTeams",
]
