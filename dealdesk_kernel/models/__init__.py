"""ORM models.  Importing this package registers every table on Base.metadata."""

from dealdesk_kernel.models.approval import ApprovalModel
from dealdesk_kernel.models.deal import DealModel, DealStatusHistoryModel

__all__ = [
    "ApprovalModel",
    "DealModel",
    "DealStatusHistoryModel",
]
