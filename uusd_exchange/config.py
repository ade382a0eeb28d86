"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import MAX_SLIPPAGE_BPS, MIN_SLIPPAGE_BPS

logger = logging.getLogger(__name__)

DEFAULT_DIAMOND = "0xED3084c98148e2528DaDCB53C56352e549C488fA"
DEFAULT_DOLLAR = "0xb6919Ef2ee4aFC163BC954C5678e2BB570c2D103"
DEFAULT_GOVERNANCE = "0x4e38d89362f7e5db0096ce44ebd021c3962aa9a0"
DEFAULT_POOL_STORAGE_BASE = (
    0x2362CF90F2E9DD68C9A2A0539DD449A56E37F746843FBD8FDC2E5DBDBFEF1100
)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    chain_id: int = 1
    primary_rpc: str = ""
    fallback_rpc: str = ""
    rpc_timeout: int = 30


@dataclass(frozen=True)
class ContractsConfig:
    diamond: str = DEFAULT_DIAMOND
    dollar: str = DEFAULT_DOLLAR
    governance: str = DEFAULT_GOVERNANCE
    pool_storage_base: int = DEFAULT_POOL_STORAGE_BASE


@dataclass(frozen=True)
class FallbackGasConfig:
    approve: int = 100_000
    mint: int = 500_000
    redeem: int = 400_000
    collect: int = 300_000


@dataclass(frozen=True)
class TransactionConfig:
    slippage_bps: int = 50
    gas_buffer_percent: int = 20
    receipt_timeout: float | None = None
    receipt_poll_interval: float = 2.0
    fallback_gas: FallbackGasConfig = field(default_factory=FallbackGasConfig)


@dataclass(frozen=True)
class PollingConfig:
    interval_seconds: float = 12.0


@dataclass(frozen=True)
class WalletConfig:
    private_key: str = ""


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    transactions: TransactionConfig = field(default_factory=TransactionConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _parse_int(value: Any) -> int:
    """Accept ints and decimal or 0x-prefixed strings."""
    if isinstance(value, str):
        return int(value, 0)
    return int(value)


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        chain_id=int(raw.get("chain_id", 1)),
        primary_rpc=raw.get("primary_rpc", ""),
        fallback_rpc=raw.get("fallback_rpc", ""),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
    )


def _build_contracts(raw: dict[str, Any]) -> ContractsConfig:
    return ContractsConfig(
        diamond=raw.get("diamond", DEFAULT_DIAMOND),
        dollar=raw.get("dollar", DEFAULT_DOLLAR),
        governance=raw.get("governance", DEFAULT_GOVERNANCE),
        pool_storage_base=_parse_int(
            raw.get("pool_storage_base", DEFAULT_POOL_STORAGE_BASE)
        ),
    )


def _build_transactions(raw: dict[str, Any]) -> TransactionConfig:
    gas = raw.get("fallback_gas", {})
    return TransactionConfig(
        slippage_bps=int(raw.get("slippage_bps", 50)),
        gas_buffer_percent=int(raw.get("gas_buffer_percent", 20)),
        receipt_timeout=(
            float(raw["receipt_timeout"]) if raw.get("receipt_timeout") is not None else None
        ),
        receipt_poll_interval=float(raw.get("receipt_poll_interval", 2.0)),
        fallback_gas=FallbackGasConfig(
            approve=int(gas.get("approve", 100_000)),
            mint=int(gas.get("mint", 500_000)),
            redeem=int(gas.get("redeem", 400_000)),
            collect=int(gas.get("collect", 300_000)),
        ),
    )


def _build_polling(raw: dict[str, Any]) -> PollingConfig:
    return PollingConfig(interval_seconds=float(raw.get("interval_seconds", 12.0)))


def _build_wallet(raw: dict[str, Any]) -> WalletConfig:
    return WalletConfig(private_key=raw.get("private_key", ""))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from the package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        chain=_build_chain(raw.get("chain", {})),
        contracts=_build_contracts(raw.get("contracts", {})),
        transactions=_build_transactions(raw.get("transactions", {})),
        polling=_build_polling(raw.get("polling", {})),
        wallet=_build_wallet(raw.get("wallet", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chain.primary_rpc:
        raise ValueError("chain.primary_rpc must be set")
    if not cfg.chain.fallback_rpc:
        raise ValueError("chain.fallback_rpc must be set")
    if cfg.chain.rpc_timeout <= 0:
        raise ValueError("chain.rpc_timeout must be positive")

    for name in ("diamond", "dollar", "governance"):
        address = getattr(cfg.contracts, name)
        if not _ADDRESS_RE.match(address):
            raise ValueError(f"contracts.{name} is not a valid address: '{address}'")

    tx = cfg.transactions
    if not MIN_SLIPPAGE_BPS <= tx.slippage_bps <= MAX_SLIPPAGE_BPS:
        raise ValueError(
            f"transactions.slippage_bps must be within "
            f"[{MIN_SLIPPAGE_BPS}, {MAX_SLIPPAGE_BPS}], got {tx.slippage_bps}"
        )
    if tx.gas_buffer_percent < 0:
        raise ValueError("transactions.gas_buffer_percent must not be negative")
    if tx.receipt_timeout is not None and tx.receipt_timeout <= 0:
        raise ValueError("transactions.receipt_timeout must be positive when set")
    if tx.receipt_poll_interval <= 0:
        raise ValueError("transactions.receipt_poll_interval must be positive")

    if cfg.polling.interval_seconds <= 0:
        raise ValueError("polling.interval_seconds must be positive")
