"""
Authenticated principal and role vocabulary.

The HTTP layer authenticates the caller and hands the kernel a
``Principal``.  The kernel trusts the claims it carries (role, vessel
assignments, active flag) and never looks users up itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID


class UserRole(str, Enum):
    """Roles recognised by the approval and override rules."""

    VESSEL_CREW = "VESSEL_CREW"
    CHIEF_ENGINEER = "CHIEF_ENGINEER"
    CAPTAIN = "CAPTAIN"
    SUPERINTENDENT = "SUPERINTENDENT"
    PROCUREMENT_MANAGER = "PROCUREMENT_MANAGER"
    FINANCE_TEAM = "FINANCE_TEAM"
    ADMIN = "ADMIN"


# Approver level carried by each role.  Vessel roles cannot approve.
ROLE_LEVELS: dict[UserRole, int] = {
    UserRole.VESSEL_CREW: 0,
    UserRole.CHIEF_ENGINEER: 0,
    UserRole.CAPTAIN: 0,
    UserRole.SUPERINTENDENT: 1,
    UserRole.PROCUREMENT_MANAGER: 2,
    UserRole.FINANCE_TEAM: 3,
    UserRole.ADMIN: 3,
}

MAX_APPROVER_LEVEL = 3


def role_level(role: UserRole | str) -> int:
    """Approver level for a role name; unknown roles carry level 0."""
    try:
        return ROLE_LEVELS[UserRole(role)]
    except ValueError:
        return 0


@dataclass(frozen=True)
class Principal:
    """An authenticated caller as seen by the kernel."""

    user_id: UUID
    role: UserRole
    vessel_ids: frozenset[str] = field(default_factory=frozenset)
    permissions: frozenset[str] = field(default_factory=frozenset)
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", UserRole(self.role))
        object.__setattr__(self, "vessel_ids", frozenset(self.vessel_ids))
        object.__setattr__(self, "permissions", frozenset(self.permissions))

    @property
    def level(self) -> int:
        return ROLE_LEVELS[self.role]

    def is_assigned_to(self, vessel_id: str) -> bool:
        return vessel_id in self.vessel_ids
