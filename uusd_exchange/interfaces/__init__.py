"""Protocol interfaces for the exchange client."""
from .events import EventListener
from .transport import Transport
from .wallet import WalletSession

__all__ = ["EventListener", "Transport", "WalletSession"]
