"""Data models: all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Ratios, prices and fees are scaled to 1e6; token amounts to 1e18.
PRICE_PRECISION = 1_000_000
TOKEN_PRECISION = 10**18
MAX_UINT256 = 2**256 - 1

BASIS_POINTS_DIVISOR = 10_000
DEFAULT_SLIPPAGE_BPS = 50
MIN_SLIPPAGE_BPS = 10
MAX_SLIPPAGE_BPS = 1_000


class Operation(str, Enum):
    MINT = "mint"
    REDEEM = "redeem"
    COLLECT_REDEMPTION = "collect_redemption"
    APPROVE_COLLATERAL = "approve_collateral"
    APPROVE_GOVERNANCE = "approve_governance"
    APPROVE_DOLLAR = "approve_dollar"


@dataclass(frozen=True)
class CollateralAsset:
    """A collateral accepted by the pool, loaded once per session.

    Fees are integers scaled to 1e6 (10_000 == 1%), the unit the pool stores
    them in. ``decimal_shortfall`` is ``18 - asset decimals``.
    """

    index: int
    symbol: str
    address: str
    mint_fee: int = 0
    redeem_fee: int = 0
    decimal_shortfall: int = 0
    price: int = 0
    is_enabled: bool = True
    is_mint_paused: bool = False
    is_redeem_paused: bool = False


@dataclass(frozen=True)
class ProtocolState:
    """Pool parameters read fresh for every quote."""

    collateral_ratio: int
    governance_price_usd: int
    mint_price_threshold: int
    redeem_price_threshold: int
    time_weighted_avg_price: int

    def __post_init__(self) -> None:
        if not 0 <= self.collateral_ratio <= PRICE_PRECISION:
            raise ValueError(
                f"collateral_ratio must be within [0, {PRICE_PRECISION}], "
                f"got {self.collateral_ratio}"
            )

    @property
    def is_fully_collateralized(self) -> bool:
        return self.collateral_ratio >= PRICE_PRECISION

    @property
    def is_fully_algorithmic(self) -> bool:
        return self.collateral_ratio == 0

    @property
    def is_fractional(self) -> bool:
        return 0 < self.collateral_ratio < PRICE_PRECISION


@dataclass(frozen=True)
class MintQuote:
    total_out: int
    collateral_in: int
    governance_in: int
    minting_allowed: bool = True


@dataclass(frozen=True)
class RedeemQuote:
    collateral_out: int
    governance_out: int
    redeeming_allowed: bool


@dataclass(frozen=True)
class PendingRedemption:
    """A redeemed-but-uncollected balance for one account and collateral."""

    collateral_index: int
    account: str
    balance: int


@dataclass(frozen=True)
class ApprovalRequirement:
    token: str
    spender: str
    amount_needed: int
    current_allowance: int
    symbol: str = ""

    @property
    def needs_approval(self) -> bool:
        return self.amount_needed > 0 and self.current_allowance < self.amount_needed


@dataclass(frozen=True)
class MintApproval:
    collateral: ApprovalRequirement
    governance: ApprovalRequirement

    @property
    def needs_collateral_approval(self) -> bool:
        return self.collateral.needs_approval

    @property
    def needs_governance_approval(self) -> bool:
        return self.governance.needs_approval


@dataclass(frozen=True)
class RedeemApproval:
    dollar: ApprovalRequirement

    @property
    def needs_approval(self) -> bool:
        return self.dollar.needs_approval


@dataclass(frozen=True)
class ContractCall:
    """An encoded call against one contract."""

    address: str
    data: str
    function: str = ""


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    status: int
    block_number: int = 0
    gas_used: int = 0
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass(frozen=True)
class TransactionResult:
    operation: Operation
    tx_hash: str
    receipt: Receipt | None
    quote: MintQuote | RedeemQuote | None = None

    @property
    def confirmed(self) -> bool:
        """False while the transaction is broadcast but not yet mined."""
        return self.receipt is not None
