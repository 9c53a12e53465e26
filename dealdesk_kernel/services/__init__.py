"""Services for the workflow kernel (write side)."""

from dealdesk_kernel.services.approval_service import ApprovalService
from dealdesk_kernel.services.deal_service import DealService

__all__ = [
    "ApprovalService",
    "DealService",
]
