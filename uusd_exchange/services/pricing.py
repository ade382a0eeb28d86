"""Fixed-point mint and redeem quotes matching the pool's on-chain math.

Everything here is pure: the only outside value, the collateral price of a
dollar amount, comes in as a synchronous callable whose result the caller
has already read from the ledger.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from ..errors import PricingError
from ..models import (
    BASIS_POINTS_DIVISOR,
    DEFAULT_SLIPPAGE_BPS,
    PRICE_PRECISION,
    CollateralAsset,
    MintQuote,
    ProtocolState,
    RedeemQuote,
)

# (collateral_index, dollar_amount) -> collateral amount in native units
CollateralPrice = Callable[[int, int], int]


@dataclass(frozen=True)
class QuotedCollateral:
    """A ``CollateralPrice`` answering exactly one pre-fetched lookup."""

    collateral_index: int
    dollar_amount: int
    collateral_amount: int

    def __call__(self, collateral_index: int, dollar_amount: int) -> int:
        if (collateral_index, dollar_amount) != (self.collateral_index, self.dollar_amount):
            raise PricingError(
                f"No collateral price for index {collateral_index} "
                f"and amount {dollar_amount}"
            )
        return self.collateral_amount


def _require_governance_price(state: ProtocolState) -> int:
    if state.governance_price_usd <= 0:
        raise PricingError("Governance token price is zero; cannot quote")
    return state.governance_price_usd


def _check_amount(dollar_amount: int) -> None:
    if dollar_amount < 0:
        raise PricingError("Dollar amount must not be negative")


# ---------------------------------------------------------------------------
# Collateral legs
# ---------------------------------------------------------------------------


def mint_collateral_leg(
    dollar_amount: int, force_collateral_only: bool, state: ProtocolState
) -> int:
    """Dollar amount whose collateral price a mint quote will need."""
    if force_collateral_only or state.is_fully_collateralized:
        return dollar_amount
    if state.is_fully_algorithmic:
        return 0
    return dollar_amount * state.collateral_ratio // PRICE_PRECISION


def redeem_collateral_leg(
    asset: CollateralAsset, dollar_amount: int, state: ProtocolState
) -> int:
    """Dollar amount whose collateral price a redeem quote will need."""
    if state.is_fully_algorithmic:
        return 0
    return dollar_amount * (PRICE_PRECISION - asset.redeem_fee) // PRICE_PRECISION


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


def quote_mint(
    asset: CollateralAsset,
    dollar_amount: int,
    force_collateral_only: bool,
    state: ProtocolState,
    collateral_price: CollateralPrice,
) -> MintQuote:
    """Collateral and governance inputs needed to mint ``dollar_amount``."""
    _check_amount(dollar_amount)

    if force_collateral_only or state.is_fully_collateralized:
        collateral_in = collateral_price(asset.index, dollar_amount)
        governance_in = 0
    elif state.is_fully_algorithmic:
        collateral_in = 0
        governance_in = dollar_amount * PRICE_PRECISION // _require_governance_price(state)
    else:
        dollar_for_collateral = dollar_amount * state.collateral_ratio // PRICE_PRECISION
        dollar_for_governance = dollar_amount - dollar_for_collateral
        collateral_in = collateral_price(asset.index, dollar_for_collateral)
        governance_in = (
            dollar_for_governance * PRICE_PRECISION // _require_governance_price(state)
        )

    total_out = dollar_amount * (PRICE_PRECISION - asset.mint_fee) // PRICE_PRECISION

    return MintQuote(
        total_out=total_out,
        collateral_in=collateral_in,
        governance_in=governance_in,
        minting_allowed=state.time_weighted_avg_price >= state.mint_price_threshold,
    )


def quote_redeem(
    asset: CollateralAsset,
    dollar_amount: int,
    state: ProtocolState,
    collateral_price: CollateralPrice,
) -> RedeemQuote:
    """Collateral and governance returned for redeeming ``dollar_amount``.

    The redemption fee comes off before the split. In the fractional range
    the pool prices the whole post-fee amount in collateral and then scales
    it by the ratio, so the collateral leg is looked up for the full
    post-fee amount.
    """
    _check_amount(dollar_amount)

    after_fee = dollar_amount * (PRICE_PRECISION - asset.redeem_fee) // PRICE_PRECISION

    if state.is_fully_collateralized:
        collateral_out = collateral_price(asset.index, after_fee)
        governance_out = 0
    elif state.is_fully_algorithmic:
        collateral_out = 0
        governance_out = after_fee * PRICE_PRECISION // _require_governance_price(state)
    else:
        collateral_out = (
            collateral_price(asset.index, after_fee)
            * state.collateral_ratio
            // PRICE_PRECISION
        )
        governance_out = (
            after_fee
            * (PRICE_PRECISION - state.collateral_ratio)
            // _require_governance_price(state)
        )

    return RedeemQuote(
        collateral_out=collateral_out,
        governance_out=governance_out,
        redeeming_allowed=state.time_weighted_avg_price <= state.redeem_price_threshold,
    )


# ---------------------------------------------------------------------------
# Slippage
# ---------------------------------------------------------------------------


def apply_min_slippage(amount: int, slippage_bps: int = DEFAULT_SLIPPAGE_BPS) -> int:
    """Lower bound for an output: ``amount`` less the tolerance."""
    return amount * (BASIS_POINTS_DIVISOR - slippage_bps) // BASIS_POINTS_DIVISOR


def apply_max_slippage(amount: int, slippage_bps: int = DEFAULT_SLIPPAGE_BPS) -> int:
    """Upper bound for an input: ``amount`` plus the tolerance."""
    return amount * (BASIS_POINTS_DIVISOR + slippage_bps) // BASIS_POINTS_DIVISOR
