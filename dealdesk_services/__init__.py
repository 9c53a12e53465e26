"""Workflow services: the external surface of the deal workflow core."""

from dealdesk_services.workflow_executor import (
    DealWorkflowExecutor,
    build_workflow_executor,
)

__all__ = [
    "DealWorkflowExecutor",
    "build_workflow_executor",
]
