"""Service modules"""
from .allowance import AllowanceGate
from .exchange import Exchange
from .orchestrator import FlowState, TransactionOrchestrator
from .price_poller import PricePoller
from .protocol_state import ProtocolStateService

__all__ = [
    "AllowanceGate",
    "Exchange",
    "FlowState",
    "PricePoller",
    "ProtocolStateService",
    "TransactionOrchestrator",
]
