"""
Module: dealdesk_engines.routing
Responsibility:
    Decide who must review a deal: the stage-1 department set derived from
    the deal's incentive structure, and the business approval level for
    stage 2.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dealdesk_kernel/domain and sibling engine modules.

Invariants enforced:
    - Core departments are always required.
    - Each mapped department appears once, whatever number of incentives
      map to it; reason tags accumulate instead.
    - Legal is never a stage-1 department.

Failure modes:
    - None.  Unmapped incentive categories are returned to the caller,
      which logs them.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from dealdesk_kernel.domain.approval import BusinessApprovalLevel
from dealdesk_kernel.domain.deal import Deal, Incentive
from dealdesk_kernel.domain.policy import BusinessApprovalPolicy, RoutingPolicy
from dealdesk_kernel.domain.roles import Department
from dealdesk_engines.tracer import traced_engine

CORE_REVIEW_TAG = "core_review"


@dataclass(frozen=True)
class RoutingResult:
    """
    Stage-1 routing decision.

    Guarantees:
        - ``departments`` preserves insertion order: core departments
          first, then mapped departments in incentive order.
        - ``Department.LEGAL`` is never a key.
    """

    departments: dict[Department, tuple[str, ...]]
    unmapped_categories: tuple[str, ...] = ()

    @property
    def department_set(self) -> frozenset[Department]:
        return frozenset(self.departments)


@traced_engine("routing", "1.0", fingerprint_fields=("incentives",))
def required_departments(
    incentives: Sequence[Incentive],
    policy: RoutingPolicy,
) -> RoutingResult:
    """Departments that must review a deal at stage 1, with reason tags."""
    reasons: dict[Department, list[str]] = {}
    for department in policy.core_departments:
        if department is not Department.LEGAL:
            reasons.setdefault(department, []).append(CORE_REVIEW_TAG)

    unmapped: list[str] = []
    for incentive in incentives:
        department = policy.department_for(incentive.category)
        if department is None:
            unmapped.append(incentive.category)
            continue
        if department is Department.LEGAL:
            continue
        tag = incentive.category.strip().lower()
        tags = reasons.setdefault(department, [])
        if tag not in tags:
            tags.append(tag)

    return RoutingResult(
        departments={dept: tuple(tags) for dept, tags in reasons.items()},
        unmapped_categories=tuple(unmapped),
    )


def business_approval_level(
    deal: Deal,
    policy: BusinessApprovalPolicy,
) -> BusinessApprovalLevel:
    """MD sign-off, or Executive when any threshold is crossed."""
    if deal.deal_value > policy.executive_value_threshold:
        return BusinessApprovalLevel.EXECUTIVE
    if (
        deal.discount_percent is not None
        and deal.discount_percent >= policy.executive_discount_percent
    ):
        return BusinessApprovalLevel.EXECUTIVE
    if (
        deal.contract_term_months is not None
        and deal.contract_term_months >= policy.executive_term_months
    ):
        return BusinessApprovalLevel.EXECUTIVE
    return BusinessApprovalLevel.MD
