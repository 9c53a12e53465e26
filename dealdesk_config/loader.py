"""
Configuration Loader (``dealdesk_config.loader``).

Responsibility
--------------
Loads the workflow YAML file and parses it into typed
``dealdesk_config.schema`` dataclass instances.  Runtime callers go
through ``dealdesk_config.get_active_config()`` instead of calling this
module directly.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on kernel
services or engines.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from dealdesk_config.schema import (
    BusinessApprovalDef,
    CategoryRouteDef,
    RoutingDef,
    SlaDef,
    SlaTargetDef,
    UrgencyDef,
    WorkflowConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_routing(data: dict[str, Any]) -> RoutingDef:
    """Parse a RoutingDef; ``categories`` maps category -> department."""
    categories = data.get("categories", {}) or {}
    if not isinstance(categories, dict):
        raise ValueError("routing.categories must be a mapping of category to department")
    return RoutingDef(
        core_departments=tuple(data["core_departments"]),
        category_routes=tuple(
            CategoryRouteDef(category=str(category), department=str(department))
            for category, department in categories.items()
        ),
    )


def parse_sla_target(data: dict[str, Any], department: str | None = None) -> SlaTargetDef:
    """Parse one SLA entry; ``target_hours`` is required."""
    return SlaTargetDef(
        department=department,
        target_hours=float(data["target_hours"]),
        warning_fraction=float(data.get("warning_fraction", 0.25)),
        critical_fraction=float(data.get("critical_fraction", 0.10)),
        capacity=int(data.get("capacity", 10)),
    )


def parse_sla(data: dict[str, Any]) -> SlaDef:
    """
    Parse the ``sla`` section.

    Preconditions:
        - ``data`` contains ``default`` and ``business_approval`` entries;
          ``departments`` maps department name -> SLA entry.
    Raises:
        KeyError: if a required entry is missing.
    """
    departments = data.get("departments", {}) or {}
    return SlaDef(
        departments=tuple(
            parse_sla_target(entry, department=str(name))
            for name, entry in departments.items()
        ),
        default=parse_sla_target(data["default"]),
        business_approval=parse_sla_target(data["business_approval"]),
        upcoming_window_hours=float(data.get("upcoming_window_hours", 4)),
        processing_window_days=int(data.get("processing_window_days", 30)),
        max_display_load_percent=float(data.get("max_display_load_percent", 200)),
    )


def parse_business_approval(data: dict[str, Any]) -> BusinessApprovalDef:
    return BusinessApprovalDef(
        executive_value_threshold=str(data.get("executive_value_threshold", "500000")),
        executive_discount_percent=str(data.get("executive_discount_percent", "30")),
        executive_term_months=int(data.get("executive_term_months", 36)),
    )


def parse_urgency(data: dict[str, Any]) -> UrgencyDef:
    return UrgencyDef(
        high_days_in_status=int(data.get("high_days_in_status", 7)),
        high_value=str(data.get("high_value", "1000000")),
        medium_days_in_status=int(data.get("medium_days_in_status", 3)),
        medium_value=str(data.get("medium_value", "500000")),
    )


def parse_workflow_config(data: dict[str, Any]) -> WorkflowConfig:
    """
    Parse a complete ``WorkflowConfig`` from a loaded YAML document.

    Postconditions:
        - ``checksum`` is the SHA-256 of the canonical JSON form of ``data``.
    Raises:
        KeyError: if ``config_id``, ``routing`` or ``sla`` are missing.
    """
    return WorkflowConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
        routing=parse_routing(data["routing"]),
        sla=parse_sla(data["sla"]),
        business_approval=parse_business_approval(data.get("business_approval", {}) or {}),
        urgency=parse_urgency(data.get("urgency", {}) or {}),
        description=data.get("description", ""),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
