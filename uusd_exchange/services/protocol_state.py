"""Reads pool parameters, collateral listings and pending redemptions."""
from __future__ import annotations

import asyncio
import logging

from ..chains.evm.contracts import DiamondContract
from ..errors import ProtocolStateError
from ..models import CollateralAsset, PendingRedemption, ProtocolState

logger = logging.getLogger(__name__)

MIN_VALID_THRESHOLD = 500_000
MAX_VALID_THRESHOLD = 2_000_000


def _check_thresholds(mint: int, redeem: int) -> None:
    if mint == 0 or redeem == 0:
        raise ProtocolStateError(
            f"Invalid price thresholds read from storage: mint={mint}, redeem={redeem}",
            details={"mint_price_threshold": mint, "redeem_price_threshold": redeem},
        )
    for value in (mint, redeem):
        if not MIN_VALID_THRESHOLD <= value <= MAX_VALID_THRESHOLD:
            raise ProtocolStateError(
                f"Price thresholds out of valid range: mint={mint}, redeem={redeem}",
                details={"mint_price_threshold": mint, "redeem_price_threshold": redeem},
            )


class ProtocolStateService:
    """Fresh ledger reads for quoting. Nothing here is cached."""

    def __init__(self, diamond: DiamondContract) -> None:
        self._diamond = diamond

    async def read_thresholds(self) -> tuple[int, int]:
        mint, redeem = await self._diamond.price_thresholds()
        _check_thresholds(mint, redeem)
        return mint, redeem

    async def read_state(self) -> ProtocolState:
        ratio, governance_price, twap, (mint_threshold, redeem_threshold) = (
            await asyncio.gather(
                self._diamond.collateral_ratio(),
                self._diamond.governance_price_usd(),
                self._diamond.dollar_price_usd(),
                self.read_thresholds(),
            )
        )
        try:
            state = ProtocolState(
                collateral_ratio=ratio,
                governance_price_usd=governance_price,
                mint_price_threshold=mint_threshold,
                redeem_price_threshold=redeem_threshold,
                time_weighted_avg_price=twap,
            )
        except ValueError as e:
            raise ProtocolStateError(str(e)) from e

        logger.debug(
            "Protocol state: ratio=%d governance=%d twap=%d mint>=%d redeem<=%d",
            state.collateral_ratio,
            state.governance_price_usd,
            state.time_weighted_avg_price,
            state.mint_price_threshold,
            state.redeem_price_threshold,
        )
        return state

    async def load_collaterals(self) -> list[CollateralAsset]:
        """Every collateral the pool knows about, in index order."""
        addresses = await self._diamond.all_collaterals()
        assets = await asyncio.gather(
            *(self._diamond.collateral_information(a) for a in addresses)
        )
        logger.info("Loaded %d collateral(s)", len(assets))
        return sorted(assets, key=lambda a: a.index)

    async def mint_options(self) -> list[CollateralAsset]:
        """Collaterals currently open for minting."""
        return [
            asset
            for asset in await self.load_collaterals()
            if asset.is_enabled and not asset.is_mint_paused
        ]

    async def pending_redemption(
        self, account: str, collateral_index: int
    ) -> PendingRedemption | None:
        balance = await self._diamond.redeem_collateral_balance(account, collateral_index)
        if balance <= 0:
            return None
        return PendingRedemption(
            collateral_index=collateral_index, account=account, balance=balance
        )

    async def find_pending_redemption(
        self, account: str, collaterals: list[CollateralAsset]
    ) -> PendingRedemption | None:
        """First collateral with an uncollected redemption for ``account``."""
        for asset in collaterals:
            pending = await self.pending_redemption(account, asset.index)
            if pending is not None:
                return pending
        return None
