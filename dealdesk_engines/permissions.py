"""
dealdesk_engines.permissions -- Role/department capability and edge tables.

Responsibility:
    Answers "may this actor do X?" for the workflow: the capability set of
    a role/department pairing, which status edges a role holds, and
    whether an actor may decide a given approval.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dealdesk_kernel/domain and dealdesk_kernel/exceptions.

Invariants enforced:
    - One exhaustive dispatch table per question, keyed by ``Role``.  A
      role missing from a table is a programming error caught by the
      architecture tests, not a silent default.
    - Admin holds every edge of the status graph explicitly
      (``ADMIN_BYPASS``); the approval gate still applies to admin.
    - A department reviewer acts only for its own department.

Failure modes:
    - UnknownRoleError when a role string outside the enumeration is given.
    - Functions answering yes/no never raise for a well-formed Actor.
"""

from __future__ import annotations

from collections.abc import Mapping

from dealdesk_kernel.domain.approval import Approval
from dealdesk_kernel.domain.deal import (
    DEAL_STATUS_TRANSITIONS,
    LEGAL_ONLY_STATUSES,
    DealStatus,
)
from dealdesk_kernel.domain.roles import Actor, CapabilitySet, Department, Role

Edge = tuple[DealStatus, DealStatus]

# =============================================================================
# Capabilities
# =============================================================================

_CAPABILITIES: Mapping[Role, CapabilitySet] = {
    Role.SELLER: CapabilitySet(
        can_create_deals=True,
        can_edit_deals=True,
    ),
    Role.DEPARTMENT_REVIEWER: CapabilitySet(
        can_view_all_deals=True,
        can_approve_deals=True,
    ),
    Role.APPROVER: CapabilitySet(
        can_view_all_deals=True,
        can_approve_deals=True,
        can_view_reports=True,
    ),
    Role.LEGAL: CapabilitySet(
        can_view_all_deals=True,
        can_access_legal_review=True,
        can_manage_contracts=True,
    ),
    Role.ADMIN: CapabilitySet(
        can_create_deals=True,
        can_view_all_deals=True,
        can_edit_deals=True,
        can_approve_deals=True,
        can_access_legal_review=True,
        can_manage_contracts=True,
        can_view_reports=True,
        can_delete_deals=True,
        can_manage_users=True,
        can_manage_system=True,
    ),
}

_LEGAL_DEPARTMENT_CAPABILITIES = CapabilitySet(
    can_view_all_deals=True,
    can_approve_deals=True,
    can_access_legal_review=True,
    can_manage_contracts=True,
)


def capabilities_for(
    role: Role | str,
    department: Department | str | None = None,
) -> CapabilitySet:
    """Capability set of a role/department pairing.

    Raises:
        UnknownRoleError: role is outside the enumeration.
    """
    role = Role.parse(role)
    if role is Role.DEPARTMENT_REVIEWER and department is not None:
        if Department(department) is Department.LEGAL:
            return _LEGAL_DEPARTMENT_CAPABILITIES
    return _CAPABILITIES[role]


# =============================================================================
# Status edges
# =============================================================================

ADMIN_BYPASS: frozenset[Edge] = frozenset(
    (source, target)
    for source, targets in DEAL_STATUS_TRANSITIONS.items()
    for target in targets
)

_ROLE_EDGES: Mapping[Role, frozenset[Edge]] = {
    Role.SELLER: frozenset({
        (DealStatus.DRAFT, DealStatus.SCOPING),
        (DealStatus.DRAFT, DealStatus.SUBMITTED),
        (DealStatus.SCOPING, DealStatus.SUBMITTED),
        (DealStatus.REVISION_REQUESTED, DealStatus.UNDER_REVIEW),
        (DealStatus.REVISION_REQUESTED, DealStatus.LOST),
    }),
    Role.APPROVER: frozenset({
        (DealStatus.SUBMITTED, DealStatus.UNDER_REVIEW),
        (DealStatus.SUBMITTED, DealStatus.LOST),
        (DealStatus.UNDER_REVIEW, DealStatus.REVISION_REQUESTED),
        (DealStatus.UNDER_REVIEW, DealStatus.NEGOTIATING),
        (DealStatus.UNDER_REVIEW, DealStatus.APPROVED),
        (DealStatus.UNDER_REVIEW, DealStatus.LOST),
        (DealStatus.NEGOTIATING, DealStatus.REVISION_REQUESTED),
        (DealStatus.NEGOTIATING, DealStatus.APPROVED),
        (DealStatus.NEGOTIATING, DealStatus.LOST),
        (DealStatus.CLIENT_REVIEW, DealStatus.SIGNED),
        (DealStatus.CLIENT_REVIEW, DealStatus.NEGOTIATING),
        (DealStatus.CLIENT_REVIEW, DealStatus.LOST),
    }),
    Role.LEGAL: frozenset({
        (DealStatus.APPROVED, DealStatus.CONTRACT_DRAFTING),
        (DealStatus.APPROVED, DealStatus.LOST),
        (DealStatus.CONTRACT_DRAFTING, DealStatus.CLIENT_REVIEW),
        (DealStatus.CONTRACT_DRAFTING, DealStatus.LOST),
    }),
    Role.DEPARTMENT_REVIEWER: frozenset(),
    Role.ADMIN: ADMIN_BYPASS,
}

# Edges into legal-only statuses; a legal-department reviewer holds them
# through can_manage_contracts.
_CONTRACT_EDGES: frozenset[Edge] = frozenset(
    (source, target)
    for source, targets in DEAL_STATUS_TRANSITIONS.items()
    for target in targets
    if target in LEGAL_ONLY_STATUSES
)


def _edges_for(actor: Actor) -> frozenset[Edge]:
    edges = _ROLE_EDGES[actor.role]
    if (
        actor.role is Role.DEPARTMENT_REVIEWER
        and capabilities_for(actor.role, actor.department).can_manage_contracts
    ):
        return edges | _CONTRACT_EDGES
    return edges


def can_transition_to(
    actor: Actor,
    target: DealStatus,
    from_status: DealStatus | None = None,
) -> bool:
    """True when the actor holds an edge into ``target``.

    With ``from_status`` the edge must start there; without it any edge
    into ``target`` counts.
    """
    edges = _edges_for(actor)
    if from_status is not None:
        return (from_status, target) in edges
    return any(t == target for _, t in edges)


def allowed_targets(actor: Actor, from_status: DealStatus) -> frozenset[DealStatus]:
    """Targets the actor may move a deal to from ``from_status``."""
    return frozenset(t for s, t in _edges_for(actor) if s == from_status)


def roles_permitted(from_status: DealStatus, target: DealStatus) -> list[str]:
    """Labels of every role/department pairing holding an edge, admin last."""
    holders = [
        role.value
        for role in (Role.SELLER, Role.APPROVER, Role.LEGAL)
        if (from_status, target) in _ROLE_EDGES[role]
    ]
    if (from_status, target) in _CONTRACT_EDGES:
        holders.append(f"{Role.DEPARTMENT_REVIEWER.value}({Department.LEGAL.value})")
    holders.append(Role.ADMIN.value)
    return holders


def check_transition_authority(
    actor: Actor,
    from_status: DealStatus,
    target: DealStatus,
) -> tuple[bool, str]:
    """Whether the actor may take the edge, with a reason either way."""
    if (from_status, target) in _edges_for(actor):
        if actor.is_admin:
            return True, "admin holds every edge"
        return True, f"{actor.label} holds {from_status.value}->{target.value}"
    required = " or ".join(roles_permitted(from_status, target))
    return False, required


# =============================================================================
# Approval decisions
# =============================================================================


def can_review_approval(actor: Actor, approval: Approval) -> tuple[bool, str]:
    """Whether the actor may decide ``approval``, with a reason either way."""
    if actor.is_admin:
        return True, "admin"
    if actor.role is Role.DEPARTMENT_REVIEWER:
        if approval.department is not None and actor.department == approval.department:
            return True, f"department {actor.department.value}"
        if approval.department is not None:
            return False, (
                f"{Role.DEPARTMENT_REVIEWER.value}({approval.department.value})"
            )
    if actor.role is approval.required_role:
        return True, f"role {actor.role.value}"
    if approval.department is not None:
        return False, (
            f"{Role.DEPARTMENT_REVIEWER.value}({approval.department.value}) or admin"
        )
    return False, f"{approval.required_role.value} or admin"
