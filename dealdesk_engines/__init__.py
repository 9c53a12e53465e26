"""
Module: dealdesk_engines
Responsibility:
    Package entrypoint re-exporting the pure decision engines of the deal
    workflow: permissions, status transitions, routing, approval
    aggregation, and the queue projection.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dealdesk_kernel/domain, dealdesk_kernel/exceptions and
    sibling engine modules.  MUST NOT import dealdesk_services or the
    kernel's db/models/services packages.

Invariants enforced:
    - Purity: engines never read a clock.  ``now`` is always a parameter.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Aggregation, routing and queue builds are traced via ``@traced_engine``
    (see ``dealdesk_engines.tracer``), emitting DEALDESK_ENGINE_TRACE log
    records with engine name, version, input fingerprint, and duration.
"""

from dealdesk_engines.aggregation import (
    can_advance_deal,
    compute_overall_state,
    compute_stage_status,
    current_round_approvals,
    decision_outcome,
    summarize_approvals,
)
from dealdesk_engines.permissions import (
    ADMIN_BYPASS,
    allowed_targets,
    can_review_approval,
    can_transition_to,
    capabilities_for,
    check_transition_authority,
    roles_permitted,
)
from dealdesk_engines.queue import (
    build_queue,
    classify_risk,
    deal_urgency,
    select_queue_approvals,
)
from dealdesk_engines.routing import (
    CORE_REVIEW_TAG,
    RoutingResult,
    business_approval_level,
    required_departments,
)
from dealdesk_engines.transitions import (
    APPROVAL_GATED_TRANSITIONS,
    TransitionCheck,
    TransitionOutcome,
    is_legal_transition,
    is_terminal,
    legal_targets,
    requires_approval_gate,
    status_info,
    validate_transition,
)

__all__ = [
    # Aggregation
    "can_advance_deal",
    "compute_overall_state",
    "compute_stage_status",
    "current_round_approvals",
    "decision_outcome",
    "summarize_approvals",
    # Permissions
    "ADMIN_BYPASS",
    "allowed_targets",
    "can_review_approval",
    "can_transition_to",
    "capabilities_for",
    "check_transition_authority",
    "roles_permitted",
    # Queue
    "build_queue",
    "classify_risk",
    "deal_urgency",
    "select_queue_approvals",
    # Routing
    "CORE_REVIEW_TAG",
    "RoutingResult",
    "business_approval_level",
    "required_departments",
    # Transitions
    "APPROVAL_GATED_TRANSITIONS",
    "TransitionCheck",
    "TransitionOutcome",
    "is_legal_transition",
    "is_terminal",
    "legal_targets",
    "requires_approval_gate",
    "status_info",
    "validate_transition",
]
