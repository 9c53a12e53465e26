"""
Config -> Kernel Bridges.

Functions that convert a validated WorkflowConfig into kernel policy types.
These live in dealdesk_config (the producer) because the kernel must NEVER
import dealdesk_config.

Usage:
    from dealdesk_config import get_active_config
    from dealdesk_config.bridges import build_workflow_policies

    policies = build_workflow_policies(get_active_config())
"""

from __future__ import annotations

from decimal import Decimal

from dealdesk_config.schema import SlaTargetDef, WorkflowConfig
from dealdesk_kernel.domain.policy import (
    BusinessApprovalPolicy,
    DepartmentSla,
    RoutingPolicy,
    SlaPolicy,
    UrgencyPolicy,
    WorkflowPolicies,
)
from dealdesk_kernel.domain.roles import Department


def build_routing_policy(config: WorkflowConfig) -> RoutingPolicy:
    return RoutingPolicy(
        core_departments=tuple(Department(d) for d in config.routing.core_departments),
        category_departments=tuple(
            (route.category.strip().lower(), Department(route.department))
            for route in config.routing.category_routes
        ),
    )


def _department_sla(entry: SlaTargetDef) -> DepartmentSla:
    return DepartmentSla(
        department=Department(entry.department) if entry.department else None,
        target_hours=entry.target_hours,
        warning_fraction=entry.warning_fraction,
        critical_fraction=entry.critical_fraction,
        capacity=entry.capacity,
    )


def build_sla_policy(config: WorkflowConfig) -> SlaPolicy:
    sla = config.sla
    return SlaPolicy(
        departments=tuple(_department_sla(entry) for entry in sla.departments),
        default=_department_sla(sla.default),
        business_approval=_department_sla(sla.business_approval),
        upcoming_window_hours=sla.upcoming_window_hours,
        processing_window_days=sla.processing_window_days,
        max_display_load_percent=sla.max_display_load_percent,
    )


def build_workflow_policies(config: WorkflowConfig) -> WorkflowPolicies:
    """Translate a validated WorkflowConfig into the executor's policies."""
    return WorkflowPolicies(
        routing=build_routing_policy(config),
        sla=build_sla_policy(config),
        business_approval=BusinessApprovalPolicy(
            executive_value_threshold=Decimal(
                config.business_approval.executive_value_threshold
            ),
            executive_discount_percent=Decimal(
                config.business_approval.executive_discount_percent
            ),
            executive_term_months=config.business_approval.executive_term_months,
        ),
        urgency=UrgencyPolicy(
            high_days_in_status=config.urgency.high_days_in_status,
            high_value=Decimal(config.urgency.high_value),
            medium_days_in_status=config.urgency.medium_days_in_status,
            medium_value=Decimal(config.urgency.medium_value),
        ),
        config_id=config.config_id,
        checksum=config.checksum,
    )
