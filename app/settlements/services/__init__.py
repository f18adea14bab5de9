"""
Settlement services.

- TransferOrchestrator: Pays each order's merchant share out via Stripe Connect
"""

from settlements.services.transfer_orchestrator import TransferOrchestrator

__all__ = ["TransferOrchestrator"]
