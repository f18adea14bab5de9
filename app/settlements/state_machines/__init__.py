"""
State definitions for settlement models.
"""

from settlements.state_machines.states import (
    TERMINAL_TRANSFER_STATES,
    TransferState,
    WebhookEventStatus,
)

__all__ = [
    "TransferState",
    "WebhookEventStatus",
    "TERMINAL_TRANSFER_STATES",
]
