"""Decides which token approvals must precede a mint or redeem."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from ..chains.evm.contracts import Erc20Contract
from ..models import (
    MAX_UINT256,
    ApprovalRequirement,
    CollateralAsset,
    MintApproval,
    MintQuote,
    RedeemApproval,
)

logger = logging.getLogger(__name__)

# Approvals are one-time and unlimited so later operations skip them.
APPROVAL_AMOUNT = MAX_UINT256

TokenFactory = Callable[[str], Erc20Contract]


class AllowanceGate:
    """Compares live allowances toward the pool with the amounts a quote needs."""

    def __init__(
        self,
        token_factory: TokenFactory,
        spender: str,
        dollar_address: str,
        governance_address: str,
    ) -> None:
        self._token = token_factory
        self.spender = spender
        self.dollar_address = dollar_address
        self.governance_address = governance_address

    async def _requirement(
        self, token: str, owner: str, amount_needed: int, symbol: str
    ) -> ApprovalRequirement:
        # No read needed when nothing will be pulled.
        if amount_needed <= 0:
            current = 0
        else:
            current = await self._token(token).allowance(owner, self.spender)
        requirement = ApprovalRequirement(
            token=token,
            spender=self.spender,
            amount_needed=amount_needed,
            current_allowance=current,
            symbol=symbol,
        )
        logger.debug(
            "%s allowance %d / needed %d -> approve=%s",
            symbol or token,
            current,
            amount_needed,
            requirement.needs_approval,
        )
        return requirement

    async def mint_approval(
        self, asset: CollateralAsset, account: str, quote: MintQuote
    ) -> MintApproval:
        collateral, governance = await asyncio.gather(
            self._requirement(asset.address, account, quote.collateral_in, asset.symbol),
            self._requirement(
                self.governance_address, account, quote.governance_in, "UBQ"
            ),
        )
        return MintApproval(collateral=collateral, governance=governance)

    async def redeem_approval(self, account: str, amount: int) -> RedeemApproval:
        dollar = await self._requirement(self.dollar_address, account, amount, "UUSD")
        return RedeemApproval(dollar=dollar)
