"""
Workflow policy types (``dealdesk_kernel.domain.policy``).

Responsibility
--------------
Frozen, kernel-side representations of the configurable parts of the
workflow: department routing, SLA targets and risk thresholds, department
capacity, business approval levels, and urgency thresholds.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ``dealdesk_config.bridges``
translates the YAML configuration into these types; engines consume them.
The kernel never imports ``dealdesk_config``.

Invariants enforced
-------------------
* ``0 < critical_fraction < warning_fraction < 1`` for every SLA entry
  (checked by the config validator before a policy is built).
* Legal never appears in the routing table: legal involvement starts at
  ``contract_drafting``, not in department review.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from dealdesk_kernel.domain.roles import Department


@dataclass(frozen=True)
class RoutingPolicy:
    """Which departments review a deal at stage 1."""

    core_departments: tuple[Department, ...] = (
        Department.FINANCE,
        Department.TRADING,
    )
    category_departments: tuple[tuple[str, Department], ...] = (
        ("financial", Department.FINANCE),
        ("resources", Department.FINANCE),
        ("product-innovation", Department.CREATIVE),
        ("technology", Department.PRODUCT),
        ("analytics", Department.SOLUTIONS),
        ("marketing", Department.MARKETING),
    )

    def department_for(self, category: str) -> Department | None:
        """Department mapped to an incentive category, or None if unmapped."""
        key = category.strip().lower()
        for name, department in self.category_departments:
            if name == key:
                return department
        return None


@dataclass(frozen=True)
class DepartmentSla:
    """SLA target and risk thresholds for one department.

    ``department`` is None for the business approval stage.
    """

    department: Department | None
    target_hours: float
    warning_fraction: float = 0.25
    critical_fraction: float = 0.10
    capacity: int = 10


@dataclass(frozen=True)
class SlaPolicy:
    """SLA targets, risk thresholds, and capacity for the queue projection."""

    departments: tuple[DepartmentSla, ...] = ()
    default: DepartmentSla = field(
        default_factory=lambda: DepartmentSla(department=None, target_hours=48),
    )
    business_approval: DepartmentSla = field(
        default_factory=lambda: DepartmentSla(department=None, target_hours=48),
    )
    upcoming_window_hours: float = 4
    processing_window_days: int = 30
    max_display_load_percent: float = 200

    def for_department(self, department: Department | None) -> DepartmentSla:
        """SLA entry for a department; None selects the business approval entry."""
        if department is None:
            return self.business_approval
        for entry in self.departments:
            if entry.department == department:
                return entry
        return self.default


@dataclass(frozen=True)
class BusinessApprovalPolicy:
    """Thresholds escalating the business approval from MD to Executive."""

    executive_value_threshold: Decimal = Decimal("500000")
    executive_discount_percent: Decimal = Decimal("30")
    executive_term_months: int = 36


@dataclass(frozen=True)
class UrgencyPolicy:
    """Deal urgency thresholds (days in current status, deal value)."""

    high_days_in_status: int = 7
    high_value: Decimal = Decimal("1000000")
    medium_days_in_status: int = 3
    medium_value: Decimal = Decimal("500000")


@dataclass(frozen=True)
class WorkflowPolicies:
    """Everything configurable that the workflow executor hands to engines."""

    routing: RoutingPolicy = field(default_factory=RoutingPolicy)
    sla: SlaPolicy = field(default_factory=SlaPolicy)
    business_approval: BusinessApprovalPolicy = field(
        default_factory=BusinessApprovalPolicy,
    )
    urgency: UrgencyPolicy = field(default_factory=UrgencyPolicy)
    config_id: str = "builtin"
    checksum: str | None = None
