"""Transport protocol: one JSON-RPC endpoint."""
from typing import Any, Protocol


class Transport(Protocol):
    """Abstract interface for sending a JSON-RPC request to a node."""

    name: str

    async def request(self, method: str, params: list[Any]) -> Any: ...
