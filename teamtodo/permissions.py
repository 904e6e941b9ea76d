"""
Team Permissions

Role hierarchy and the action allow-list used to gate team operations.

These checks only decide what the client offers; the backend's row-level
policies re-validate every mutating call.
"""
from enum import Enum
from typing import Optional, Union

from .errors import PermissionDeniedError
from .models.team import Role


# Permission levels
ROLE_HIERARCHY = {
    Role.OWNER: 4,
    Role.ADMIN: 3,
    Role.MEMBER: 2,
    Role.GUEST: 1,
}


class Action(str, Enum):
    # Team management
    EDIT_TEAM = "EDIT_TEAM"
    DELETE_TEAM = "DELETE_TEAM"

    # Member management
    INVITE_MEMBERS = "INVITE_MEMBERS"
    REMOVE_MEMBERS = "REMOVE_MEMBERS"
    CHANGE_MEMBER_ROLES = "CHANGE_MEMBER_ROLES"

    # Content
    CREATE_TASKS = "CREATE_TASKS"
    EDIT_TASKS = "EDIT_TASKS"
    DELETE_TASKS = "DELETE_TASKS"

    # Viewing
    VIEW_TEAM = "VIEW_TEAM"
    VIEW_TASKS = "VIEW_TASKS"


_OWNER = frozenset({Role.OWNER})
_MANAGERS = frozenset({Role.OWNER, Role.ADMIN})
_CONTRIBUTORS = frozenset({Role.OWNER, Role.ADMIN, Role.MEMBER})
_EVERYONE = frozenset(Role)

# Explicit allow-list; not derived from ROLE_HIERARCHY because role changes
# are owner-only even though admins can invite.
PERMISSIONS = {
    Action.EDIT_TEAM: _OWNER,
    Action.DELETE_TEAM: _OWNER,
    Action.INVITE_MEMBERS: _MANAGERS,
    Action.REMOVE_MEMBERS: _MANAGERS,
    Action.CHANGE_MEMBER_ROLES: _OWNER,
    Action.CREATE_TASKS: _CONTRIBUTORS,
    Action.EDIT_TASKS: _CONTRIBUTORS,
    Action.DELETE_TASKS: _CONTRIBUTORS,
    Action.VIEW_TEAM: _EVERYONE,
    Action.VIEW_TASKS: _EVERYONE,
}

RoleLike = Union[Role, str, None]
ActionLike = Union[Action, str]


def _as_role(role: RoleLike) -> Optional[Role]:
    if role is None or isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def _as_action(action: ActionLike) -> Action:
    if isinstance(action, Action):
        return action
    return Action(action)


def allowed_roles(action: ActionLike) -> frozenset:
    return PERMISSIONS[_as_action(action)]


def is_allowed(role: RoleLike, action: ActionLike) -> bool:
    """Whether a member holding `role` may perform `action`.

    Unknown roles and non-members (None) are always denied.
    """
    resolved = _as_role(role)
    if resolved is None:
        return False
    return resolved in allowed_roles(action)


def require_permission(role: RoleLike, action: ActionLike) -> None:
    if not is_allowed(role, action):
        raise PermissionDeniedError(
            role.value if isinstance(role, Role) else role,
            _as_action(action).value,
        )


def has_higher_role(user_role: RoleLike, target_role: RoleLike) -> bool:
    """True iff `user_role` strictly outranks `target_role`"""
    user = _as_role(user_role)
    target = _as_role(target_role)
    if user is None:
        return False
    if target is None:
        return True
    return ROLE_HIERARCHY[user] > ROLE_HIERARCHY[target]


def can_manage_member(actor_role: RoleLike, target_role: RoleLike, action: ActionLike) -> bool:
    """Whether the actor may apply a member-management action to the target.

    Owner rows are never targets. Apart from the owner, an actor may only
    act on members ranked strictly below them.
    """
    actor = _as_role(actor_role)
    target = _as_role(target_role)
    if not is_allowed(actor, action):
        return False
    if target == Role.OWNER:
        return False
    return actor == Role.OWNER or has_higher_role(actor, target)
