"""
Organization roles and the actions they allow.

The table below is the only source of truth for organization authorization.
Anything not listed for a role is denied.

    owner   invite, cancel_invite, remove_member, change_role, delete_org
    admin   invite, cancel_invite, remove_member, leave
    member  leave

Removing a member whose role is owner is refused by the organization
service for every caller, so "remove_member" never reaches an owner.
"""

from enum import Enum
from typing import Dict, FrozenSet


class Role(str, Enum):
    """Membership role within an organization"""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        """Convert a stored or submitted role name; unknown names raise ValueError"""
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role: {value}") from None


class Action(str, Enum):
    """Organization-scoped mutations subject to authorization"""

    INVITE = "invite"
    CANCEL_INVITE = "cancel_invite"
    REMOVE_MEMBER = "remove_member"
    LEAVE = "leave"
    CHANGE_ROLE = "change_role"
    DELETE_ORG = "delete_org"


ROLE_PERMISSIONS: Dict[Role, FrozenSet[Action]] = {
    Role.OWNER: frozenset({
        Action.INVITE,
        Action.CANCEL_INVITE,
        Action.REMOVE_MEMBER,
        Action.CHANGE_ROLE,
        Action.DELETE_ORG,
    }),
    Role.ADMIN: frozenset({
        Action.INVITE,
        Action.CANCEL_INVITE,
        Action.REMOVE_MEMBER,
        Action.LEAVE,
    }),
    Role.MEMBER: frozenset({
        Action.LEAVE,
    }),
}

# Roles that may be granted through an invitation or a role change
ASSIGNABLE_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.MEMBER})


def can(role: "Role | str | None", action: "Action | str") -> bool:
    """Return True only if the table grants ``action`` to ``role``"""
    if role is None:
        return False
    try:
        role = Role.parse(role)
        action = Action(action)
    except ValueError:
        return False
    return action in ROLE_PERMISSIONS.get(role, frozenset())


def invitable_roles() -> FrozenSet[Role]:
    return ASSIGNABLE_ROLES
