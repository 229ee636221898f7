"""ORM models for the approval archive."""

from governance_kernel.models.approval import (
    ApprovalDecisionModel,
    ApprovalRequestModel,
    decode_payload_value,
    encode_payload_value,
)

__all__ = [
    "ApprovalDecisionModel",
    "ApprovalRequestModel",
    "decode_payload_value",
    "encode_payload_value",
]
