"""Single-endpoint JSON-RPC transport over aiohttp."""
from __future__ import annotations

import asyncio
import itertools
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...errors import LedgerRpcError, TransportError

logger = logging.getLogger(__name__)


class JsonRpcTransport:
    """POST JSON-RPC requests to one endpoint.

    Raises ``TransportError`` for anything that keeps a well-formed answer
    from arriving (connection errors, timeouts, HTTP errors, non-JSON bodies)
    and ``LedgerRpcError`` when the node answers with an error payload.
    """

    def __init__(self, url: str, timeout: int = 30, name: str = "") -> None:
        self.url = url
        self.timeout = timeout
        self.name = name or url
        self._ids = itertools.count(1)

    async def request(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        try:
            connector = aiohttp.TCPConnector(ssl=ssl_context)
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    self.url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status >= 400:
                        raise TransportError(
                            f"HTTP {response.status} from {self.name}", self.url
                        )
                    result = await response.json(content_type=None)
        except TransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, OSError) as e:
            raise TransportError(
                f"{self.name} request {method} failed: {e!r}", self.url
            ) from e

        if not isinstance(result, dict):
            raise TransportError(f"Malformed response from {self.name}", self.url)

        error = result.get("error")
        if error:
            if isinstance(error, dict):
                raise LedgerRpcError(
                    str(error.get("message", "RPC request failed")),
                    code=error.get("code"),
                    data=error.get("data"),
                    endpoint=self.url,
                )
            raise LedgerRpcError(str(error), endpoint=self.url)

        if "result" not in result:
            raise TransportError(f"Invalid RPC response from {self.name}", self.url)

        logger.debug("%s %s ok", self.name, method)
        return result["result"]
