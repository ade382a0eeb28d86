"""Integration tests for the ledger client: fallback switching and staleness."""
from __future__ import annotations

from typing import Any, Callable

import pytest
from eth_abi import encode
from eth_account import Account
from eth_utils import keccak

from uusd_exchange.chains.evm.client import LedgerClient
from uusd_exchange.chains.evm.transport import JsonRpcTransport
from uusd_exchange.config import ChainConfig
from uusd_exchange.errors import (
    LedgerRpcError,
    OracleStaleError,
    ReceiptTimeoutError,
    TransportError,
    ValidationError,
)
from uusd_exchange.models import ContractCall
from uusd_exchange.wallet import LocalWalletSession

CALL = ContractCall(
    address="0xED3084c98148e2528DaDCB53C56352e549C488fA",
    data="0x3b1d21a2",
    function="collateralRatio",
)
WORD = "0x" + encode(["uint256"], [1_000_000]).hex()


def _client(
    transport_factory: Callable[..., Any],
    primary: dict[str, Any],
    fallback: dict[str, Any],
) -> tuple[LedgerClient, Any, Any]:
    p = transport_factory("primary", primary)
    f = transport_factory("fallback", fallback)
    return LedgerClient(p, f, chain_id=1), p, f


class TestFallbackSwitching:
    @pytest.mark.asyncio
    async def test_primary_success_stays_on_primary(self, transport_factory) -> None:
        client, primary, fallback = _client(
            transport_factory, {"eth_call": WORD}, {"eth_call": WORD}
        )

        assert await client.read(CALL) == WORD
        assert client.using_fallback is False
        assert fallback.calls == []

    @pytest.mark.asyncio
    async def test_transport_failure_switches_once(self, transport_factory) -> None:
        client, primary, fallback = _client(
            transport_factory,
            {"eth_call": TransportError("connection reset")},
            {"eth_call": WORD},
        )

        assert await client.read(CALL) == WORD
        assert client.using_fallback is True
        assert len(primary.calls) == 1
        assert len(fallback.calls) == 1

    @pytest.mark.asyncio
    async def test_switch_is_sticky(self, transport_factory) -> None:
        client, primary, fallback = _client(
            transport_factory,
            {"eth_call": TransportError("timeout"), "eth_blockNumber": "0x10"},
            {"eth_call": WORD, "eth_blockNumber": "0x20"},
        )

        await client.read(CALL)
        assert await client.block_number() == 0x20
        assert primary.methods() == ["eth_call"]

    @pytest.mark.asyncio
    async def test_non_oracle_rpc_error_switches(self, transport_factory) -> None:
        client, _, fallback = _client(
            transport_factory,
            {"eth_call": LedgerRpcError("header not found", code=-32000)},
            {"eth_call": WORD},
        )

        assert await client.read(CALL) == WORD
        assert client.using_fallback is True
        assert len(fallback.calls) == 1

    @pytest.mark.asyncio
    async def test_both_fail_raises_fallback_error(self, transport_factory) -> None:
        client, _, _ = _client(
            transport_factory,
            {"eth_call": TransportError("primary down")},
            {"eth_call": TransportError("fallback down")},
        )

        with pytest.raises(TransportError, match="fallback down"):
            await client.read(CALL)


class TestOracleStaleness:
    @pytest.mark.asyncio
    async def test_stale_message_does_not_switch(
        self, transport_factory, stale_oracle_error: LedgerRpcError
    ) -> None:
        client, _, fallback = _client(
            transport_factory, {"eth_call": stale_oracle_error}, {"eth_call": WORD}
        )

        with pytest.raises(OracleStaleError) as exc_info:
            await client.read(CALL)

        assert client.using_fallback is False
        assert fallback.calls == []
        assert "Stale Stable/USD data" in exc_info.value.original_message

    @pytest.mark.asyncio
    async def test_stale_reason_in_revert_data(self, transport_factory) -> None:
        data = "0x08c379a0" + encode(["string"], ["Stale Stable/USD data"]).hex()
        client, _, fallback = _client(
            transport_factory,
            {"eth_call": LedgerRpcError("execution reverted", code=3, data=data)},
            {"eth_call": WORD},
        )

        with pytest.raises(OracleStaleError):
            await client.read(CALL)
        assert fallback.calls == []

    @pytest.mark.asyncio
    async def test_stale_on_fallback_still_typed(
        self, transport_factory, stale_oracle_error: LedgerRpcError
    ) -> None:
        client, _, _ = _client(
            transport_factory,
            {"eth_call": TransportError("down")},
            {"eth_call": stale_oracle_error},
        )

        with pytest.raises(OracleStaleError):
            await client.read(CALL)

    @pytest.mark.asyncio
    async def test_plain_revert_does_not_switch(self, transport_factory) -> None:
        client, _, fallback = _client(
            transport_factory,
            {"eth_call": LedgerRpcError("execution reverted: Collateral disabled", code=3)},
            {"eth_call": WORD},
        )

        with pytest.raises(LedgerRpcError, match="Collateral disabled"):
            await client.read(CALL)
        assert client.using_fallback is False
        assert fallback.calls == []


class TestReads:
    @pytest.mark.asyncio
    async def test_read_raw(self, transport_factory) -> None:
        client, primary, _ = _client(
            transport_factory, {"eth_getStorageAt": WORD}, {}
        )

        assert await client.read_raw(CALL.address, 12) == 1_000_000
        assert primary.calls == [("eth_getStorageAt", [CALL.address, "0xc", "latest"])]

    @pytest.mark.asyncio
    async def test_read_raw_empty_raises(self, transport_factory) -> None:
        client, _, _ = _client(transport_factory, {"eth_getStorageAt": ""}, {})
        with pytest.raises(TransportError, match="Empty storage"):
            await client.read_raw(CALL.address, 1)


class TestGasEstimation:
    @pytest.mark.asyncio
    async def test_buffer_applied(self, transport_factory, account: str) -> None:
        client, _, _ = _client(transport_factory, {"eth_estimateGas": "0x5208"}, {})
        assert await client.estimate_gas(CALL, account, 500_000) == 25_200

    @pytest.mark.asyncio
    async def test_unreachable_estimate_uses_fallback_gas(
        self, transport_factory, account: str
    ) -> None:
        client, _, _ = _client(
            transport_factory,
            {"eth_estimateGas": TransportError("connection reset")},
            {"eth_estimateGas": LedgerRpcError("header not found", code=-32000)},
        )
        assert await client.estimate_gas(CALL, account, 100_000) == 120_000

    @pytest.mark.asyncio
    async def test_revert_raises_and_nothing_is_broadcast(
        self, transport_factory, private_key: str
    ) -> None:
        client, primary, fallback = _client(
            transport_factory,
            {
                "eth_estimateGas": LedgerRpcError(
                    "execution reverted: Dollar price too low", code=3
                ),
                "eth_getTransactionCount": "0x0",
                "eth_gasPrice": "0x1",
                "eth_sendRawTransaction": "0xhash",
            },
            {},
        )

        with pytest.raises(LedgerRpcError, match="Dollar price too low"):
            await client.write(CALL, LocalWalletSession(private_key), fallback_gas=500_000)

        assert primary.methods() == ["eth_estimateGas"]
        assert fallback.calls == []

    @pytest.mark.asyncio
    async def test_stale_estimate_raises(
        self, transport_factory, account: str, stale_oracle_error: LedgerRpcError
    ) -> None:
        client, _, _ = _client(
            transport_factory, {"eth_estimateGas": stale_oracle_error}, {}
        )
        with pytest.raises(OracleStaleError):
            await client.estimate_gas(CALL, account, 100_000)


class TestWrite:
    @pytest.mark.asyncio
    async def test_signs_and_broadcasts(
        self, transport_factory, private_key: str
    ) -> None:
        sent: list[str] = []

        def send(params: list[Any]) -> str:
            sent.append(params[0])
            return "0xhash"

        client, _, _ = _client(
            transport_factory,
            {
                "eth_estimateGas": "0x186a0",
                "eth_getTransactionCount": "0x7",
                "eth_gasPrice": "0x3b9aca00",
                "eth_sendRawTransaction": send,
            },
            {},
        )
        wallet = LocalWalletSession(private_key)

        tx_hash = await client.write(CALL, wallet, fallback_gas=500_000)

        assert tx_hash == "0xhash"
        assert sent[0].startswith("0x")
        assert Account.recover_transaction(sent[0]) == wallet.current_account()

    @staticmethod
    def _broadcast_client(
        transport_factory, primary_send: Any, fallback_send: Any
    ) -> tuple[LedgerClient, Any, Any]:
        prepare = {
            "eth_estimateGas": "0x186a0",
            "eth_getTransactionCount": "0x7",
            "eth_gasPrice": "0x3b9aca00",
        }
        return _client(
            transport_factory,
            {**prepare, "eth_sendRawTransaction": primary_send},
            {"eth_sendRawTransaction": fallback_send},
        )

    @staticmethod
    def _signed_hash(transport: Any) -> str:
        method, params = transport.calls[-1]
        assert method == "eth_sendRawTransaction"
        return "0x" + keccak(bytes.fromhex(params[0][2:])).hex()

    @pytest.mark.asyncio
    async def test_resend_already_known_returns_local_hash(
        self, transport_factory, private_key: str
    ) -> None:
        client, primary, _ = self._broadcast_client(
            transport_factory,
            TransportError("read timeout"),
            LedgerRpcError("already known", code=-32000),
        )

        tx_hash = await client.write(CALL, LocalWalletSession(private_key), 500_000)

        assert tx_hash == self._signed_hash(primary)
        assert client.using_fallback is True

    @pytest.mark.asyncio
    async def test_resend_nonce_too_low_after_timeout(
        self, transport_factory, private_key: str
    ) -> None:
        client, primary, fallback = self._broadcast_client(
            transport_factory,
            TransportError("read timeout"),
            LedgerRpcError("nonce too low", code=-32000),
        )

        tx_hash = await client.write(CALL, LocalWalletSession(private_key), 500_000)

        assert tx_hash == self._signed_hash(primary)
        assert fallback.methods() == ["eth_sendRawTransaction"]

    @pytest.mark.asyncio
    async def test_nonce_too_low_without_resend_raises(
        self, transport_factory, private_key: str
    ) -> None:
        client, _, _ = self._broadcast_client(
            transport_factory,
            LedgerRpcError("nonce too low", code=-32000),
            LedgerRpcError("nonce too low", code=-32000),
        )

        with pytest.raises(LedgerRpcError, match="nonce too low"):
            await client.write(CALL, LocalWalletSession(private_key), 500_000)

    @pytest.mark.asyncio
    async def test_requires_account(self, transport_factory) -> None:
        client, primary, _ = _client(transport_factory, {}, {})
        with pytest.raises(ValidationError, match="connect wallet"):
            await client.write(CALL, LocalWalletSession(), fallback_gas=100_000)
        assert primary.calls == []


class TestReceipts:
    @pytest.mark.asyncio
    async def test_polls_until_mined(self, transport_factory) -> None:
        answers = iter(
            [
                None,
                None,
                {
                    "transactionHash": "0xabc",
                    "status": "0x1",
                    "blockNumber": "0x64",
                    "gasUsed": "0x5208",
                },
            ]
        )
        client, primary, _ = _client(
            transport_factory,
            {"eth_getTransactionReceipt": lambda params: next(answers)},
            {},
        )

        receipt = await client.wait_for_receipt("0xabc", timeout=5, poll_interval=0)

        assert receipt.succeeded
        assert receipt.block_number == 100
        assert receipt.gas_used == 21_000
        assert len(primary.calls) == 3

    @pytest.mark.asyncio
    async def test_reverted_receipt(self, transport_factory) -> None:
        client, _, _ = _client(
            transport_factory,
            {"eth_getTransactionReceipt": {"status": "0x0", "blockNumber": "0x1"}},
            {},
        )
        receipt = await client.wait_for_receipt("0xdef", timeout=5, poll_interval=0)
        assert receipt.succeeded is False
        assert receipt.tx_hash == "0xdef"

    @pytest.mark.asyncio
    async def test_timeout(self, transport_factory) -> None:
        client, _, _ = _client(
            transport_factory, {"eth_getTransactionReceipt": None}, {}
        )
        with pytest.raises(ReceiptTimeoutError):
            await client.wait_for_receipt("0xabc", timeout=0, poll_interval=0)

    @pytest.mark.asyncio
    async def test_no_timeout_waits_until_mined(self, transport_factory) -> None:
        answers = iter([None] * 5 + [{"status": "0x1", "blockNumber": "0x2"}])
        client, primary, _ = _client(
            transport_factory,
            {"eth_getTransactionReceipt": lambda params: next(answers)},
            {},
        )

        receipt = await client.wait_for_receipt("0xabc", poll_interval=0)

        assert receipt.succeeded
        assert len(primary.calls) == 6


def test_from_config(sample_chain_config: ChainConfig) -> None:
    client = LedgerClient.from_config(sample_chain_config)
    assert isinstance(client.primary, JsonRpcTransport)
    assert client.primary.url == "https://primary.example.com"
    assert client.fallback.url == "https://fallback.example.com"
    assert client.active_transport is client.primary
