"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Callable

import pytest

from uusd_exchange.config import (
    AppConfig,
    ChainConfig,
    ContractsConfig,
    PollingConfig,
    TransactionConfig,
    WalletConfig,
)
from uusd_exchange.errors import LedgerRpcError, TransportError
from uusd_exchange.models import CollateralAsset, ProtocolState

TEST_PRIVATE_KEY = "0xb25c7db31feed9122727bf0939dc769a96564b2de4c4726d035b36ecf1e5b364"
TEST_ACCOUNT = "0x5ce9454909639D2D17A3F753ce7d93fa0b9aB12E"

LUSD_ADDRESS = "0x5f98805A4E8be255a32880FDeC7F6728C6568bA0"


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------


class FakeTransport:
    """In-memory JSON-RPC endpoint.

    ``responses`` maps a method name to a value, an exception instance to
    raise, or a callable taking ``params``.
    """

    def __init__(self, name: str, responses: dict[str, Any] | None = None) -> None:
        self.name = name
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[tuple[str, list[Any]]] = []

    async def request(self, method: str, params: list[Any]) -> Any:
        self.calls.append((method, params))
        if method not in self.responses:
            raise TransportError(f"{self.name}: no response for {method}")
        response = self.responses[method]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(params)
        return response

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]


@pytest.fixture()
def transport_factory() -> Callable[..., FakeTransport]:
    return FakeTransport


@pytest.fixture()
def stale_oracle_error() -> LedgerRpcError:
    return LedgerRpcError(
        "execution reverted: Stale Stable/USD data", code=3, data="0x"
    )


@pytest.fixture()
def private_key() -> str:
    return TEST_PRIVATE_KEY


@pytest.fixture()
def account() -> str:
    return TEST_ACCOUNT


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        chain_id=1,
        primary_rpc="https://primary.example.com",
        fallback_rpc="https://fallback.example.com",
        rpc_timeout=10,
    )


@pytest.fixture()
def sample_app_config(sample_chain_config: ChainConfig) -> AppConfig:
    return AppConfig(
        chain=sample_chain_config,
        contracts=ContractsConfig(),
        transactions=TransactionConfig(receipt_timeout=5, receipt_poll_interval=0.01),
        polling=PollingConfig(interval_seconds=0.01),
        wallet=WalletConfig(private_key=TEST_PRIVATE_KEY),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def lusd() -> CollateralAsset:
    return CollateralAsset(
        index=0,
        symbol="LUSD",
        address=LUSD_ADDRESS,
        mint_fee=0,
        redeem_fee=0,
        decimal_shortfall=0,
        price=1_000_000,
    )


@pytest.fixture()
def full_state() -> ProtocolState:
    return ProtocolState(
        collateral_ratio=1_000_000,
        governance_price_usd=1_000_000,
        mint_price_threshold=1_000_000,
        redeem_price_threshold=1_000_000,
        time_weighted_avg_price=1_000_000,
    )


@pytest.fixture()
def half_state() -> ProtocolState:
    return ProtocolState(
        collateral_ratio=500_000,
        governance_price_usd=1_000_000,
        mint_price_threshold=1_000_000,
        redeem_price_threshold=1_000_000,
        time_weighted_avg_price=1_000_000,
    )


@pytest.fixture()
def algorithmic_state() -> ProtocolState:
    return ProtocolState(
        collateral_ratio=0,
        governance_price_usd=2_000_000,
        mint_price_threshold=1_000_000,
        redeem_price_threshold=1_000_000,
        time_weighted_avg_price=1_000_000,
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    chain:
      chain_id: 1
      primary_rpc: "${TEST_PRIMARY_RPC}"
      fallback_rpc: "https://fallback.example.com"
      rpc_timeout: 10
    contracts:
      diamond: "0xED3084c98148e2528DaDCB53C56352e549C488fA"
      pool_storage_base: "0x10"
    transactions:
      slippage_bps: 100
      fallback_gas:
        mint: 600000
    polling:
      interval_seconds: 30
    wallet:
      private_key: "${TEST_WALLET_KEY}"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
