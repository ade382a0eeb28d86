"""Typed bindings for the pool diamond and ERC-20 tokens."""
from __future__ import annotations

import logging
from typing import Any

from eth_utils import to_checksum_address

from ...models import CollateralAsset, ContractCall
from . import abi
from .client import LedgerClient

logger = logging.getLogger(__name__)

# Offsets of the price thresholds inside the pool's storage struct.
MINT_THRESHOLD_SLOT_OFFSET = 12
REDEEM_THRESHOLD_SLOT_OFFSET = 13


def _call(address: str, fn: abi.AbiFunction, *args: Any) -> ContractCall:
    return ContractCall(address=address, data=abi.encode_call(fn, args), function=fn.name)


def parse_collateral_information(address: str, info: tuple[Any, ...]) -> CollateralAsset:
    """Build a ``CollateralAsset`` from a decoded ``collateralInformation`` tuple."""
    (
        index,
        symbol,
        _collateral_address,
        _price_feed,
        _staleness_threshold,
        is_enabled,
        missing_decimals,
        price,
        _pool_ceiling,
        is_mint_paused,
        is_redeem_paused,
        _is_borrow_paused,
        minting_fee,
        redemption_fee,
    ) = info
    return CollateralAsset(
        index=int(index),
        symbol=symbol,
        address=to_checksum_address(address),
        mint_fee=int(minting_fee),
        redeem_fee=int(redemption_fee),
        decimal_shortfall=int(missing_decimals),
        price=int(price),
        is_enabled=bool(is_enabled),
        is_mint_paused=bool(is_mint_paused),
        is_redeem_paused=bool(is_redeem_paused),
    )


class Erc20Contract:
    """ERC-20 allowance, balance and approval calls."""

    def __init__(self, client: LedgerClient, address: str) -> None:
        self._client = client
        self.address = to_checksum_address(address)

    async def allowance(self, owner: str, spender: str) -> int:
        result = await self._client.read(
            _call(
                self.address,
                abi.ALLOWANCE,
                to_checksum_address(owner),
                to_checksum_address(spender),
            )
        )
        return abi.decode_result(abi.ALLOWANCE, result)[0]

    async def balance_of(self, account: str) -> int:
        result = await self._client.read(
            _call(self.address, abi.BALANCE_OF, to_checksum_address(account))
        )
        return abi.decode_result(abi.BALANCE_OF, result)[0]

    def approve_call(self, spender: str, amount: int) -> ContractCall:
        return _call(self.address, abi.APPROVE, to_checksum_address(spender), amount)


class DiamondContract:
    """View and write calls on the pool diamond."""

    def __init__(
        self, client: LedgerClient, address: str, storage_base: int = 0
    ) -> None:
        self._client = client
        self.address = to_checksum_address(address)
        self.storage_base = storage_base

    async def _read_uint(self, fn: abi.AbiFunction, *args: Any) -> int:
        result = await self._client.read(_call(self.address, fn, *args))
        return abi.decode_result(fn, result)[0]

    # Views ---------------------------------------------------------------

    async def collateral_ratio(self) -> int:
        return await self._read_uint(abi.COLLATERAL_RATIO)

    async def governance_price_usd(self) -> int:
        return await self._read_uint(abi.GOVERNANCE_PRICE_USD)

    async def dollar_price_usd(self) -> int:
        return await self._read_uint(abi.DOLLAR_PRICE_USD)

    async def dollar_in_collateral(self, collateral_index: int, dollar_amount: int) -> int:
        return await self._read_uint(
            abi.DOLLAR_IN_COLLATERAL, collateral_index, dollar_amount
        )

    async def redeem_collateral_balance(self, account: str, collateral_index: int) -> int:
        return await self._read_uint(
            abi.REDEEM_COLLATERAL_BALANCE,
            to_checksum_address(account),
            collateral_index,
        )

    async def all_collaterals(self) -> list[str]:
        result = await self._client.read(_call(self.address, abi.ALL_COLLATERALS))
        return [
            to_checksum_address(a)
            for a in abi.decode_result(abi.ALL_COLLATERALS, result)[0]
        ]

    async def collateral_information(self, collateral_address: str) -> CollateralAsset:
        result = await self._client.read(
            _call(
                self.address,
                abi.COLLATERAL_INFORMATION,
                to_checksum_address(collateral_address),
            )
        )
        (info,) = abi.decode_result(abi.COLLATERAL_INFORMATION, result)
        return parse_collateral_information(collateral_address, info)

    async def price_thresholds(self) -> tuple[int, int]:
        """Read (mint, redeem) price thresholds straight from pool storage."""
        mint = await self._client.read_raw(
            self.address, self.storage_base + MINT_THRESHOLD_SLOT_OFFSET
        )
        redeem = await self._client.read_raw(
            self.address, self.storage_base + REDEEM_THRESHOLD_SLOT_OFFSET
        )
        return mint, redeem

    # Writes --------------------------------------------------------------

    def mint_call(
        self,
        collateral_index: int,
        dollar_amount: int,
        dollar_out_min: int,
        max_collateral_in: int,
        max_governance_in: int,
        force_collateral_only: bool,
    ) -> ContractCall:
        return _call(
            self.address,
            abi.MINT_DOLLAR,
            collateral_index,
            dollar_amount,
            dollar_out_min,
            max_collateral_in,
            max_governance_in,
            force_collateral_only,
        )

    def redeem_call(
        self,
        collateral_index: int,
        dollar_amount: int,
        governance_out_min: int,
        collateral_out_min: int,
    ) -> ContractCall:
        return _call(
            self.address,
            abi.REDEEM_DOLLAR,
            collateral_index,
            dollar_amount,
            governance_out_min,
            collateral_out_min,
        )

    def collect_redemption_call(self, collateral_index: int) -> ContractCall:
        return _call(self.address, abi.COLLECT_REDEMPTION, collateral_index)
