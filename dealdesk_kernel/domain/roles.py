"""
Role and department domain types (``dealdesk_kernel.domain.roles``).

Responsibility
--------------
Pure value objects for the authorization unit of the workflow: a role,
optionally paired with a department.  The pairing (not the user identity)
is what every permission decision is made against.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* An ``Actor`` with role ``department_reviewer`` carries exactly one
  department; every other role carries none.
* Roles and departments are closed enumerations; parsing an unknown role
  raises ``UnknownRoleError`` instead of falling back to a default.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dealdesk_kernel.exceptions import InvalidActorError, UnknownRoleError


class Role(str, Enum):
    """Acting roles."""

    SELLER = "seller"
    DEPARTMENT_REVIEWER = "department_reviewer"
    APPROVER = "approver"
    LEGAL = "legal"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Role | str) -> Role:
        """Parse a role, raising UnknownRoleError for anything outside the enum."""
        if isinstance(value, Role):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownRoleError(str(value)) from None


class Department(str, Enum):
    """Reviewing departments."""

    FINANCE = "finance"
    TRADING = "trading"
    CREATIVE = "creative"
    MARKETING = "marketing"
    PRODUCT = "product"
    SOLUTIONS = "solutions"
    LEGAL = "legal"


@dataclass(frozen=True)
class Actor:
    """The acting user as seen by the workflow core.

    ``actor_id`` is optional: when present it is used for seller ownership
    checks and recorded as ``reviewed_by`` / ``changed_by``.  A seller
    without one owns no deal.
    """

    role: Role
    department: Department | None = None
    actor_id: str | None = None

    def __post_init__(self) -> None:
        role = Role.parse(self.role)
        object.__setattr__(self, "role", role)
        if self.department is not None and not isinstance(self.department, Department):
            try:
                object.__setattr__(self, "department", Department(self.department))
            except ValueError:
                raise InvalidActorError(
                    role.value, str(self.department), "unknown department",
                ) from None
        if role is Role.DEPARTMENT_REVIEWER and self.department is None:
            raise InvalidActorError(
                role.value, None, "department_reviewer requires a department",
            )
        if role is not Role.DEPARTMENT_REVIEWER and self.department is not None:
            raise InvalidActorError(
                role.value,
                self.department.value,
                "only department_reviewer carries a department",
            )

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def label(self) -> str:
        """Human-readable role/department label, e.g. ``department_reviewer(legal)``."""
        if self.department is not None:
            return f"{self.role.value}({self.department.value})"
        return self.role.value

    @property
    def identity(self) -> str:
        """Identity recorded on decisions and history rows."""
        return self.actor_id or self.label


@dataclass(frozen=True)
class CapabilitySet:
    """Boolean capabilities held by a role/department pairing."""

    can_create_deals: bool = False
    can_view_all_deals: bool = False
    can_edit_deals: bool = False
    can_approve_deals: bool = False
    can_access_legal_review: bool = False
    can_manage_contracts: bool = False
    can_view_reports: bool = False
    can_delete_deals: bool = False
    can_manage_users: bool = False
    can_manage_system: bool = False
