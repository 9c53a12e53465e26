"""
WorkflowConfig schema.

Defines the human-authored, reviewable configuration of the deal workflow:
the incentive category routing table, per-department SLA targets and
thresholds, business approval levels, and urgency thresholds.  YAML is
parsed into these types by the loader, checked by the validator, and
translated into kernel policy types by the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CategoryRouteDef:
    """One incentive category mapped to a reviewing department."""

    category: str
    department: str


@dataclass(frozen=True)
class RoutingDef:
    """Stage-1 routing: always-required departments plus category routes."""

    core_departments: tuple[str, ...]
    category_routes: tuple[CategoryRouteDef, ...] = ()


# ---------------------------------------------------------------------------
# SLA
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SlaTargetDef:
    """SLA target and risk thresholds for one department.

    ``department`` is None for the default and business approval entries.
    """

    department: str | None
    target_hours: float
    warning_fraction: float = 0.25
    critical_fraction: float = 0.10
    capacity: int = 10


@dataclass(frozen=True)
class SlaDef:
    departments: tuple[SlaTargetDef, ...]
    default: SlaTargetDef
    business_approval: SlaTargetDef
    upcoming_window_hours: float = 4
    processing_window_days: int = 30
    max_display_load_percent: float = 200


# ---------------------------------------------------------------------------
# Business approval and urgency
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BusinessApprovalDef:
    executive_value_threshold: str = "500000"
    executive_discount_percent: str = "30"
    executive_term_months: int = 36


@dataclass(frozen=True)
class UrgencyDef:
    high_days_in_status: int = 7
    high_value: str = "1000000"
    medium_days_in_status: int = 3
    medium_value: str = "500000"


# ---------------------------------------------------------------------------
# Top-level configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkflowConfig:
    """Human-authored workflow configuration.

    Attributes:
        config_id: Unique identifier (e.g., "dealdesk-default")
        version: Configuration version number
        checksum: SHA-256 of the canonical serialization of the source YAML
        routing: Stage-1 department routing
        sla: SLA targets, thresholds, and capacity
        business_approval: MD/Executive escalation thresholds
        urgency: Deal urgency thresholds
        description: Free-text note from the YAML header
    """

    config_id: str
    version: int
    checksum: str
    routing: RoutingDef
    sla: SlaDef
    business_approval: BusinessApprovalDef = field(default_factory=BusinessApprovalDef)
    urgency: UrgencyDef = field(default_factory=UrgencyDef)
    description: str = ""
