"""
dealdesk_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain workflow configuration at runtime
    through ``get_active_config()``: the incentive routing table, SLA
    targets and risk thresholds, capacity, business approval and urgency
    thresholds.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  This package
    sits above ``dealdesk_kernel`` and below ``dealdesk_services``.  The
    kernel MUST NEVER import from ``dealdesk_config``; ``bridges``
    translates the configuration into kernel policy types.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Validation: the configuration must pass ``validate_configuration``
      before it is returned.
    - Deterministic identity: the same YAML always produces the same
      checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- validation failures.
    - ``KeyError`` -- a required section is missing.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``DEALDESK_CONFIG_TRACE`` log entry with config_id, version, checksum,
    and routing/SLA entry counts, tying every queue projection and routing
    decision to the configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from dealdesk_config.loader import load_yaml_file, parse_workflow_config
from dealdesk_config.schema import WorkflowConfig
from dealdesk_config.validator import validate_configuration

_logger = logging.getLogger("dealdesk.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "workflow.yaml"


def get_active_config(config_path: Path | str | None = None) -> WorkflowConfig:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned ``WorkflowConfig`` has passed validation.
        - A ``DEALDESK_CONFIG_TRACE`` log entry is emitted on every
          successful call.
        - Validation warnings are logged, not raised.

    Args:
        config_path: Override path to a workflow YAML file.  Defaults to
            dealdesk_config/defaults/workflow.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = parse_workflow_config(load_yaml_file(path))

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning(
            "config_validation_warning",
            extra={"config_id": config.config_id, "warning": warning},
        )

    _logger.info(
        "DEALDESK_CONFIG_TRACE",
        extra={
            "trace_type": "DEALDESK_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path),
            "category_route_count": len(config.routing.category_routes),
            "sla_department_count": len(config.sla.departments),
        },
    )

    return config


__all__ = ["WorkflowConfig", "get_active_config"]
