"""
Module: dealdesk_engines.transitions
Responsibility:
    Legality of deal status edges and the combined legality + authority
    check the executor runs before any write.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dealdesk_kernel/domain and sibling engine modules.

Invariants enforced:
    - Legality is checked before authority: an illegal edge is reported as
      ``invalid_transition`` for every role, admin included.
    - Self transitions and skipped stages are illegal.
    - Terminal statuses have no outgoing edges.

Failure modes:
    - None raised here.  ``validate_transition`` returns a TransitionCheck
      and the executor maps its outcome to InvalidTransitionError or
      ForbiddenError.

Usage:
    from dealdesk_engines.transitions import validate_transition

    check = validate_transition(DealStatus.DRAFT, DealStatus.SUBMITTED, actor)
    if not check.allowed:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dealdesk_kernel.domain.deal import (
    DEAL_STATUS_TRANSITIONS,
    STATUS_INFO,
    TERMINAL_DEAL_STATUSES,
    DealStatus,
    StatusInfo,
)
from dealdesk_kernel.domain.roles import Actor
from dealdesk_engines.permissions import check_transition_authority


class TransitionOutcome(str, Enum):
    """Result code of a transition check."""

    LEGAL = "legal"
    INVALID_TRANSITION = "invalid_transition"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class TransitionCheck:
    """
    Outcome of validating one requested status change.

    Guarantees:
        - ``allowed`` is True exactly when ``outcome`` is LEGAL.
        - ``required`` names the role/department pairings holding the
          edge when ``outcome`` is FORBIDDEN, else is empty.
    """

    from_status: DealStatus
    to_status: DealStatus
    outcome: TransitionOutcome
    reason: str
    required: str = ""

    @property
    def allowed(self) -> bool:
        return self.outcome is TransitionOutcome.LEGAL


# Edges that also need the deal's approvals to allow advancing.
APPROVAL_GATED_TRANSITIONS: frozenset[tuple[DealStatus, DealStatus]] = frozenset({
    (DealStatus.UNDER_REVIEW, DealStatus.NEGOTIATING),
    (DealStatus.UNDER_REVIEW, DealStatus.APPROVED),
    (DealStatus.NEGOTIATING, DealStatus.APPROVED),
})


def is_legal_transition(from_status: DealStatus, to_status: DealStatus) -> bool:
    """True when ``from_status -> to_status`` is an edge of the status graph."""
    return to_status in DEAL_STATUS_TRANSITIONS.get(from_status, frozenset())


def legal_targets(status: DealStatus) -> frozenset[DealStatus]:
    return DEAL_STATUS_TRANSITIONS.get(status, frozenset())


def is_terminal(status: DealStatus) -> bool:
    return status in TERMINAL_DEAL_STATUSES


def status_info(status: DealStatus) -> StatusInfo:
    """Display label, description and priority rank of a status."""
    return STATUS_INFO[status]


def requires_approval_gate(from_status: DealStatus, to_status: DealStatus) -> bool:
    return (from_status, to_status) in APPROVAL_GATED_TRANSITIONS


def validate_transition(
    from_status: DealStatus,
    to_status: DealStatus,
    actor: Actor,
) -> TransitionCheck:
    """Check legality, then authority, of a requested status change.

    Does not evaluate the approval gate; that needs the deal's approvals
    and is applied by the executor after this check passes.
    """
    if not is_legal_transition(from_status, to_status):
        if is_terminal(from_status):
            reason = f"{from_status.value} is terminal"
        else:
            allowed = ", ".join(sorted(s.value for s in legal_targets(from_status)))
            reason = f"{from_status.value} may only move to: {allowed}"
        return TransitionCheck(
            from_status=from_status,
            to_status=to_status,
            outcome=TransitionOutcome.INVALID_TRANSITION,
            reason=reason,
        )

    authorized, detail = check_transition_authority(actor, from_status, to_status)
    if not authorized:
        return TransitionCheck(
            from_status=from_status,
            to_status=to_status,
            outcome=TransitionOutcome.FORBIDDEN,
            reason=f"{actor.label} does not hold {from_status.value}->{to_status.value}",
            required=detail,
        )

    return TransitionCheck(
        from_status=from_status,
        to_status=to_status,
        outcome=TransitionOutcome.LEGAL,
        reason=detail,
    )
