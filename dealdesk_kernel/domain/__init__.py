"""
Pure domain layer.

This module contains pure data transfer objects and domain types
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (beyond the injectable Clock interface)
- I/O

All domain objects are immutable and deterministic.
"""

from dealdesk_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    BUSINESS_APPROVAL_STAGE,
    DECIDED_APPROVAL_STATUSES,
    DECISION_OUTCOMES,
    DEPARTMENT_REVIEW_STAGE,
    Approval,
    ApprovalDecision,
    ApprovalState,
    ApprovalStatus,
    BusinessApprovalLevel,
    OverallApprovalState,
    StageStatus,
    StageSummary,
)
from dealdesk_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from dealdesk_kernel.domain.deal import (
    DEAL_STATUS_TRANSITIONS,
    EDITABLE_DEAL_STATUSES,
    LEGAL_ONLY_STATUSES,
    REVIEW_STATUSES,
    STATUS_INFO,
    TERMINAL_DEAL_STATUSES,
    Deal,
    DealPriority,
    DealStatus,
    DraftType,
    Incentive,
    StatusChange,
    StatusInfo,
)
from dealdesk_kernel.domain.policy import (
    BusinessApprovalPolicy,
    DepartmentSla,
    RoutingPolicy,
    SlaPolicy,
    UrgencyPolicy,
    WorkflowPolicies,
)
from dealdesk_kernel.domain.queue import (
    DepartmentWorkload,
    QueueItem,
    QueueMetrics,
    RiskLevel,
    Urgency,
    WorkQueue,
)
from dealdesk_kernel.domain.roles import (
    Actor,
    CapabilitySet,
    Department,
    Role,
)

__all__ = [
    # Approval
    "APPROVAL_TRANSITIONS",
    "BUSINESS_APPROVAL_STAGE",
    "DECIDED_APPROVAL_STATUSES",
    "DECISION_OUTCOMES",
    "DEPARTMENT_REVIEW_STAGE",
    "Approval",
    "ApprovalDecision",
    "ApprovalState",
    "ApprovalStatus",
    "BusinessApprovalLevel",
    "OverallApprovalState",
    "StageStatus",
    "StageSummary",
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Deal
    "DEAL_STATUS_TRANSITIONS",
    "EDITABLE_DEAL_STATUSES",
    "LEGAL_ONLY_STATUSES",
    "REVIEW_STATUSES",
    "STATUS_INFO",
    "TERMINAL_DEAL_STATUSES",
    "Deal",
    "DealPriority",
    "DealStatus",
    "DraftType",
    "Incentive",
    "StatusChange",
    "StatusInfo",
    # Policy
    "BusinessApprovalPolicy",
    "DepartmentSla",
    "RoutingPolicy",
    "SlaPolicy",
    "UrgencyPolicy",
    "WorkflowPolicies",
    # Queue
    "DepartmentWorkload",
    "QueueItem",
    "QueueMetrics",
    "RiskLevel",
    "Urgency",
    "WorkQueue",
    # Roles
    "Actor",
    "CapabilitySet",
    "Department",
    "Role",
]
