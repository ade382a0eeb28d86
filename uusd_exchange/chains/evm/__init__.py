"""EVM ledger access."""
from .client import LedgerClient
from .contracts import DiamondContract, Erc20Contract
from .transport import JsonRpcTransport

__all__ = ["DiamondContract", "Erc20Contract", "JsonRpcTransport", "LedgerClient"]
