"""
Queue and SLA domain types (``dealdesk_kernel.domain.queue``).

Responsibility
--------------
Value objects produced by the queue projection: risk levels, queue items,
summary metrics, and per-department workload rows.  None of these are
stored; they are recomputed on every read.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from dealdesk_kernel.domain.deal import DealPriority, DealStatus
from dealdesk_kernel.domain.roles import Department, Role


class RiskLevel(str, Enum):
    """SLA risk classification of a pending approval."""

    SAFE = "safe"
    WARNING = "warning"
    CRITICAL = "critical"
    OVERDUE = "overdue"


class Urgency(str, Enum):
    """Deal urgency derived from time in status and deal value."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class QueueItem:
    """One outstanding approval joined with its deal and SLA risk."""

    approval_id: UUID
    deal_id: UUID
    deal_name: str
    deal_status: DealStatus
    deal_value: Decimal
    approval_stage: int
    department: Department | None
    required_role: Role
    priority: DealPriority
    created_at: datetime
    due_date: datetime
    sla_target_hours: float
    time_remaining_hours: float
    risk_level: RiskLevel
    days_since_created: int
    urgency: Urgency

    @property
    def is_overdue(self) -> bool:
        return self.risk_level is RiskLevel.OVERDUE


@dataclass(frozen=True)
class QueueMetrics:
    """Summary metrics over the actor's visible approvals."""

    total_pending: int
    overdue_count: int
    urgent_count: int
    high_priority_count: int
    upcoming_deadlines: int
    completed_today: int
    avg_processing_hours: float
    avg_deal_value: Decimal
    capacity: int
    current_load_percent: float
    display_load_percent: float


@dataclass(frozen=True)
class DepartmentWorkload:
    """Workload distribution row for one department."""

    department: Department | None
    pending_count: int
    overdue_count: int
    avg_processing_hours: float
    capacity: int
    load_percent: float


@dataclass(frozen=True)
class WorkQueue:
    """Result of ``get_queue``."""

    items: tuple[QueueItem, ...]
    metrics: QueueMetrics
    workload: tuple[DepartmentWorkload, ...] = ()
    generated_at: datetime | None = None
