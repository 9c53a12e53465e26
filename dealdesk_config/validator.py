"""
Configuration Validator (``dealdesk_config.validator``).

Responsibility
--------------
Validates a ``WorkflowConfig`` before it is bridged into kernel policy
types, so a bad YAML edit fails at load time instead of mis-routing
approvals.

Architecture position
---------------------
**Config layer** -- load-time validation.  Called by
``dealdesk_config.get_active_config`` after parsing.

Invariants enforced
-------------------
* Every department named anywhere is a known ``Department``.
* Core departments are non-empty; legal is never routed at stage 1.
* SLA target hours and capacities are positive, and
  ``0 < critical_fraction < warning_fraction < 1``.
* Category names are unique after normalisation (strip + lower).

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> configuration
  MUST NOT be used.
* Validation warnings  -> configuration may be used but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from dealdesk_config.schema import SlaTargetDef, WorkflowConfig
from dealdesk_kernel.domain.roles import Department

_KNOWN_DEPARTMENTS = frozenset(d.value for d in Department)


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: WorkflowConfig) -> ConfigValidationResult:
    """Validate a parsed workflow configuration."""
    result = ConfigValidationResult()

    _validate_routing(config, result)
    _validate_sla(config, result)
    _validate_thresholds(config, result)

    return result


def _validate_routing(config: WorkflowConfig, result: ConfigValidationResult) -> None:
    routing = config.routing
    if not routing.core_departments:
        result.add_error("routing.core_departments must not be empty")

    for name in routing.core_departments:
        if name not in _KNOWN_DEPARTMENTS:
            result.add_error(f"routing.core_departments: unknown department '{name}'")
        elif name == Department.LEGAL.value:
            result.add_error("routing.core_departments: legal is never a stage-1 reviewer")

    seen: set[str] = set()
    for route in routing.category_routes:
        key = route.category.strip().lower()
        if key in seen:
            result.add_error(f"routing.categories: duplicate category '{route.category}'")
        seen.add(key)
        if route.department not in _KNOWN_DEPARTMENTS:
            result.add_error(
                f"routing.categories.{route.category}: unknown department "
                f"'{route.department}'"
            )
        elif route.department == Department.LEGAL.value:
            result.add_error(
                f"routing.categories.{route.category}: legal is never a stage-1 reviewer"
            )


def _validate_sla_entry(
    label: str, entry: SlaTargetDef, result: ConfigValidationResult
) -> None:
    if entry.target_hours <= 0:
        result.add_error(f"{label}: target_hours must be positive")
    if entry.capacity <= 0:
        result.add_error(f"{label}: capacity must be positive")
    if not 0 < entry.critical_fraction < entry.warning_fraction < 1:
        result.add_error(
            f"{label}: require 0 < critical_fraction < warning_fraction < 1 "
            f"(got {entry.critical_fraction}, {entry.warning_fraction})"
        )


def _validate_sla(config: WorkflowConfig, result: ConfigValidationResult) -> None:
    sla = config.sla
    _validate_sla_entry("sla.default", sla.default, result)
    _validate_sla_entry("sla.business_approval", sla.business_approval, result)

    seen: set[str] = set()
    for entry in sla.departments:
        label = f"sla.departments.{entry.department}"
        if entry.department not in _KNOWN_DEPARTMENTS:
            result.add_error(f"{label}: unknown department")
        if entry.department in seen:
            result.add_error(f"{label}: duplicate entry")
        seen.add(entry.department)
        _validate_sla_entry(label, entry, result)

    routed = set(config.routing.core_departments)
    routed.update(r.department for r in config.routing.category_routes)
    for name in sorted(routed - seen):
        result.add_warning(f"sla.departments: no entry for routed department '{name}'")

    if sla.upcoming_window_hours <= 0:
        result.add_error("sla.upcoming_window_hours must be positive")
    if sla.processing_window_days <= 0:
        result.add_error("sla.processing_window_days must be positive")
    if sla.max_display_load_percent < 100:
        result.add_error("sla.max_display_load_percent must be at least 100")


def _validate_thresholds(config: WorkflowConfig, result: ConfigValidationResult) -> None:
    amounts = {
        "business_approval.executive_value_threshold":
            config.business_approval.executive_value_threshold,
        "business_approval.executive_discount_percent":
            config.business_approval.executive_discount_percent,
        "urgency.high_value": config.urgency.high_value,
        "urgency.medium_value": config.urgency.medium_value,
    }
    for label, raw in amounts.items():
        try:
            value = Decimal(raw)
        except InvalidOperation:
            result.add_error(f"{label}: not a decimal amount ({raw!r})")
            continue
        if value < 0:
            result.add_error(f"{label}: must not be negative")

    if config.business_approval.executive_term_months <= 0:
        result.add_error("business_approval.executive_term_months must be positive")
    if config.urgency.medium_days_in_status > config.urgency.high_days_in_status:
        result.add_warning("urgency: medium_days_in_status exceeds high_days_in_status")
