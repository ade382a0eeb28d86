"""EVM ledger client with sticky primary → fallback transport switching."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from eth_utils import keccak

from ...config import ChainConfig
from ...errors import (
    LedgerRpcError,
    OracleStaleError,
    ReceiptTimeoutError,
    TransportError,
    ValidationError,
    is_oracle_stale,
)
from ...interfaces.transport import Transport
from ...interfaces.wallet import WalletSession
from ...models import ContractCall, Receipt
from . import abi
from .transport import JsonRpcTransport

logger = logging.getLogger(__name__)

DEFAULT_GAS_BUFFER_PERCENT = 20

# Node answers meaning this exact signed transaction is already in the mempool.
_ALREADY_KNOWN_PHRASES = ("already known", "known transaction")


def _error_text(error: LedgerRpcError) -> str:
    """Message plus any decoded revert reason, for marker matching."""
    reason = abi.decode_revert_reason(error.data)
    if reason:
        return f"{error.message}: {reason}"
    return error.message


class LedgerClient:
    """Read/write access to the ledger through a primary and a fallback transport.

    Every request goes to the primary until it fails once at the transport
    level; from then on the client stays on the fallback for the rest of its
    life. Oracle staleness is a property of ledger state that both transports
    share, so it is raised as ``OracleStaleError`` without switching, as are
    execution reverts.
    """

    def __init__(self, primary: Transport, fallback: Transport, chain_id: int = 1) -> None:
        self.primary = primary
        self.fallback = fallback
        self.chain_id = chain_id
        self.using_fallback = False
        self.switch_error: Exception | None = None

    @classmethod
    def from_config(cls, config: ChainConfig) -> "LedgerClient":
        return cls(
            JsonRpcTransport(config.primary_rpc, config.rpc_timeout, name="primary"),
            JsonRpcTransport(config.fallback_rpc, config.rpc_timeout, name="fallback"),
            chain_id=config.chain_id,
        )

    @property
    def active_transport(self) -> Transport:
        return self.fallback if self.using_fallback else self.primary

    # ------------------------------------------------------------------
    # Core request path
    # ------------------------------------------------------------------

    async def request(self, method: str, params: list[Any]) -> Any:
        if self.using_fallback:
            return await self._send(self.fallback, method, params)

        try:
            return await self._send(self.primary, method, params)
        except OracleStaleError:
            raise
        except LedgerRpcError as e:
            if e.is_execution_revert:
                raise
            self._switch_to_fallback(e)
        except TransportError as e:
            self._switch_to_fallback(e)

        return await self._send(self.fallback, method, params)

    async def _send(self, transport: Transport, method: str, params: list[Any]) -> Any:
        try:
            return await transport.request(method, params)
        except LedgerRpcError as e:
            text = _error_text(e)
            if is_oracle_stale(text):
                logger.warning("Oracle data is stale (%s): %s", method, text)
                raise OracleStaleError(text) from e
            raise

    def _switch_to_fallback(self, error: Exception) -> None:
        if self.using_fallback:
            return
        logger.warning(
            "Primary transport %s failed (%s); switching to fallback %s",
            self.primary.name,
            error,
            self.fallback.name,
        )
        self.using_fallback = True
        self.switch_error = error

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read(self, call: ContractCall, block: str = "latest") -> str:
        """Run ``eth_call`` and return the raw hex result."""
        return await self.request(
            "eth_call", [{"to": call.address, "data": call.data}, block]
        )

    async def read_raw(self, address: str, slot: int) -> int:
        """Read one storage word of ``address`` as an integer."""
        word = await self.request("eth_getStorageAt", [address, hex(slot), "latest"])
        if not word:
            raise TransportError(f"Empty storage value at slot {hex(slot)}")
        return abi.word_to_int(word)

    async def block_number(self) -> int:
        return int(await self.request("eth_blockNumber", []), 16)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def estimate_gas(
        self,
        call: ContractCall,
        sender: str,
        fallback_gas: int,
        buffer_percent: int = DEFAULT_GAS_BUFFER_PERCENT,
    ) -> int:
        """Estimate gas for ``call`` plus a safety buffer.

        A failed estimate uses ``fallback_gas`` instead. Oracle staleness and
        execution reverts are raised: the call would revert on chain.
        """
        try:
            estimate = int(
                await self.request(
                    "eth_estimateGas",
                    [{"from": sender, "to": call.address, "data": call.data}],
                ),
                16,
            )
        except OracleStaleError:
            raise
        except (LedgerRpcError, TransportError) as e:
            if isinstance(e, LedgerRpcError) and e.is_execution_revert:
                logger.warning(
                    "Gas estimation for %s reverted: %s",
                    call.function or call.address,
                    _error_text(e),
                )
                raise
            logger.warning(
                "Gas estimation for %s failed (%s); using %d",
                call.function or call.address,
                e,
                fallback_gas,
            )
            estimate = fallback_gas
        return estimate + estimate * buffer_percent // 100

    async def write(
        self,
        call: ContractCall,
        wallet: WalletSession,
        fallback_gas: int,
        buffer_percent: int = DEFAULT_GAS_BUFFER_PERCENT,
    ) -> str:
        """Sign ``call`` with the wallet's current account and broadcast it.

        Returns the transaction hash. Submission success says nothing about
        execution; use ``wait_for_receipt``.
        """
        sender = wallet.current_account()
        if not sender:
            raise ValidationError("Please connect wallet first", field="account")

        gas = await self.estimate_gas(call, sender, fallback_gas, buffer_percent)
        nonce_hex = await self.request("eth_getTransactionCount", [sender, "pending"])
        gas_price_hex = await self.request("eth_gasPrice", [])
        transaction = {
            "to": call.address,
            "data": call.data,
            "value": 0,
            "gas": gas,
            "gasPrice": int(gas_price_hex, 16),
            "nonce": int(nonce_hex, 16),
            "chainId": self.chain_id,
        }

        raw = await wallet.sign_transaction(transaction)
        tx_hash = await self._broadcast(bytes(raw))
        logger.info("Submitted %s: %s", call.function or "transaction", tx_hash)
        return tx_hash

    async def _broadcast(self, raw: bytes) -> str:
        """Send a signed transaction, recognising a resend of one already accepted.

        A primary broadcast can time out after reaching the network, so the
        fallback retry may be told the transaction (or its nonce) is already
        taken. Its hash is the keccak of the signed bytes either way.
        """
        tx_hash = "0x" + keccak(raw).hex()
        was_on_fallback = self.using_fallback
        try:
            return await self.request("eth_sendRawTransaction", ["0x" + raw.hex()])
        except LedgerRpcError as e:
            lowered = e.message.lower()
            # Only a transport failure leaves the primary broadcast in doubt.
            retried = (
                self.using_fallback
                and not was_on_fallback
                and isinstance(self.switch_error, TransportError)
            )
            if any(p in lowered for p in _ALREADY_KNOWN_PHRASES) or (
                retried and "nonce too low" in lowered
            ):
                logger.warning(
                    "Broadcast of %s reported '%s'; treating it as submitted",
                    tx_hash,
                    e.message,
                )
                return tx_hash
            raise

    async def get_receipt(self, tx_hash: str) -> Receipt | None:
        raw = await self.request("eth_getTransactionReceipt", [tx_hash])
        if not raw:
            return None
        return Receipt(
            tx_hash=raw.get("transactionHash", tx_hash),
            status=int(raw.get("status", "0x0"), 16),
            block_number=int(raw.get("blockNumber", "0x0"), 16),
            gas_used=int(raw.get("gasUsed", "0x0"), 16),
            raw=raw,
        )

    async def wait_for_receipt(
        self, tx_hash: str, timeout: float | None = None, poll_interval: float = 2
    ) -> Receipt:
        """Poll until ``tx_hash`` is mined.

        With ``timeout`` set, raise ``ReceiptTimeoutError`` after that many
        seconds; the transaction may still be mined later.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            receipt = await self.get_receipt(tx_hash)
            if receipt is not None:
                logger.info(
                    "Transaction %s mined in block %d (status %d)",
                    tx_hash,
                    receipt.block_number,
                    receipt.status,
                )
                return receipt
            if deadline is not None and time.monotonic() >= deadline:
                raise ReceiptTimeoutError(tx_hash, timeout)
            await asyncio.sleep(poll_interval)
