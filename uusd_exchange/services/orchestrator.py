"""Mint, redeem and collect workflows: validate, quote, approve, submit, confirm."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, contextmanager
from enum import Enum
from typing import AsyncIterator, Callable, Iterator

from ..chains.evm.client import LedgerClient
from ..chains.evm.contracts import DiamondContract, Erc20Contract
from ..config import TransactionConfig
from ..errors import (
    CollateralPausedError,
    InsufficientBalanceError,
    MintNotAllowedError,
    OperationInProgressError,
    ReceiptTimeoutError,
    RedemptionNotAllowedError,
    TransactionRevertedError,
    ValidationError,
    classify_error,
)
from ..events import (
    ApprovalCompleted,
    ApprovalNeeded,
    EventBus,
    TransactionFailed,
    TransactionPending,
    TransactionStarted,
    TransactionSubmitted,
    TransactionSucceeded,
)
from ..interfaces.wallet import WalletSession
from ..models import (
    ApprovalRequirement,
    CollateralAsset,
    ContractCall,
    MintQuote,
    Operation,
    ProtocolState,
    RedeemQuote,
    TransactionResult,
)
from . import pricing
from .allowance import APPROVAL_AMOUNT, AllowanceGate
from .protocol_state import ProtocolStateService

logger = logging.getLogger(__name__)


class FlowState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    QUOTING = "quoting"
    APPROVING_COLLATERAL = "approving_collateral"
    APPROVING_GOVERNANCE = "approving_governance"
    APPROVING_DOLLAR = "approving_dollar"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TransactionOrchestrator:
    """Runs one write flow at a time against the pool.

    Writes inside a flow are strictly sequential: every approval is
    confirmed before the next transaction is signed. Failures are
    classified, emitted as ``TransactionFailed`` and re-raised, after which
    the orchestrator is idle and ready for a retry.
    """

    def __init__(
        self,
        client: LedgerClient,
        diamond: DiamondContract,
        protocol: ProtocolStateService,
        allowances: AllowanceGate,
        wallet: WalletSession,
        events: EventBus | None = None,
        config: TransactionConfig | None = None,
        token_factory: Callable[[str], Erc20Contract] | None = None,
    ) -> None:
        self._client = client
        self._diamond = diamond
        self._protocol = protocol
        self._allowances = allowances
        self._wallet = wallet
        self.events = events or EventBus()
        self._config = config or TransactionConfig()
        self._token = token_factory or (lambda address: Erc20Contract(client, address))

        self._collaterals: dict[int, CollateralAsset] = {}
        self._lock = asyncio.Lock()
        self._active: Operation | None = None
        self._announced = False
        self.state = FlowState.IDLE
        self.state_history: list[FlowState] = []

    # ------------------------------------------------------------------
    # Collaterals
    # ------------------------------------------------------------------

    async def load_collaterals(self) -> list[CollateralAsset]:
        assets = await self._protocol.load_collaterals()
        self._collaterals = {asset.index: asset for asset in assets}
        return assets

    def set_collaterals(self, assets: list[CollateralAsset]) -> None:
        self._collaterals = {asset.index: asset for asset in assets}

    @property
    def collaterals(self) -> list[CollateralAsset]:
        return [self._collaterals[i] for i in sorted(self._collaterals)]

    def collateral(self, index: int) -> CollateralAsset:
        asset = self._collaterals.get(index)
        if asset is None:
            raise ValidationError(
                f"Unknown collateral index {index}", field="collateral_index", value=index
            )
        return asset

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def _collateral_price(
        self, index: int, dollar_amount: int
    ) -> pricing.QuotedCollateral:
        if dollar_amount == 0:
            return pricing.QuotedCollateral(index, 0, 0)
        amount = await self._diamond.dollar_in_collateral(index, dollar_amount)
        return pricing.QuotedCollateral(index, dollar_amount, amount)

    async def _quote_mint(
        self, asset: CollateralAsset, dollar_amount: int, force_collateral_only: bool
    ) -> tuple[MintQuote, ProtocolState]:
        state = await self._protocol.read_state()
        leg = pricing.mint_collateral_leg(dollar_amount, force_collateral_only, state)
        price = await self._collateral_price(asset.index, leg)
        quote = pricing.quote_mint(asset, dollar_amount, force_collateral_only, state, price)
        return quote, state

    async def _quote_redeem(
        self, asset: CollateralAsset, dollar_amount: int
    ) -> tuple[RedeemQuote, ProtocolState]:
        state = await self._protocol.read_state()
        leg = pricing.redeem_collateral_leg(asset, dollar_amount, state)
        price = await self._collateral_price(asset.index, leg)
        return pricing.quote_redeem(asset, dollar_amount, state, price), state

    async def quote_mint(
        self, collateral_index: int, dollar_amount: int, force_collateral_only: bool = False
    ) -> MintQuote:
        self._check_amount(dollar_amount)
        asset = self.collateral(collateral_index)
        quote, _ = await self._quote_mint(asset, dollar_amount, force_collateral_only)
        return quote

    async def quote_redeem(self, collateral_index: int, dollar_amount: int) -> RedeemQuote:
        self._check_amount(dollar_amount)
        asset = self.collateral(collateral_index)
        quote, _ = await self._quote_redeem(asset, dollar_amount)
        return quote

    # ------------------------------------------------------------------
    # Flow plumbing
    # ------------------------------------------------------------------

    def _set_state(self, state: FlowState) -> None:
        logger.debug(
            "%s: %s -> %s",
            self._active.value if self._active else "-",
            self.state.value,
            state.value,
        )
        self.state = state
        self.state_history.append(state)

    @staticmethod
    def _check_amount(dollar_amount: int) -> None:
        if dollar_amount <= 0:
            raise ValidationError(
                "Amount must be greater than zero",
                field="amount",
                value=dollar_amount,
                constraint="> 0",
            )

    def _require_account(self) -> str:
        account = self._wallet.current_account()
        if not account:
            raise ValidationError("Please connect wallet first", field="account")
        return account

    def _ensure_same_account(self, account: str) -> None:
        current = self._wallet.current_account()
        if current != account:
            raise ValidationError(
                "Wallet account changed during the operation",
                field="account",
                value=current,
            )

    def _check_idle(self, operation: Operation) -> None:
        if self._lock.locked():
            raise OperationInProgressError(
                self._active.value if self._active else operation.value
            )

    @contextmanager
    def _validating(self, operation: Operation) -> Iterator[None]:
        """Local checks; failures here never reach the ledger or the event stream."""
        self._check_idle(operation)
        self.state_history = []
        self._set_state(FlowState.VALIDATING)
        try:
            yield
        except Exception:
            self.state = FlowState.IDLE
            raise

    def _announce(self, operation: Operation) -> None:
        self._active = operation
        self._announced = True
        self.events.emit(TransactionStarted(operation))

    @asynccontextmanager
    async def _operation(
        self, operation: Operation, announce: bool = True
    ) -> AsyncIterator[None]:
        """Hold the flow lock and report any failure as ``TransactionFailed``.

        With ``announce=False`` the body calls ``_announce`` once it knows
        which operation it is performing.
        """
        self._check_idle(operation)
        await self._lock.acquire()
        self._active = operation
        self._announced = False
        if announce:
            self._announce(operation)
        try:
            yield
        except Exception as e:
            if not self._announced:
                self._announce(operation)
            active = self._active or operation
            classified = classify_error(e)
            self._set_state(FlowState.FAILED)
            logger.error(
                "%s failed (%s): %s",
                active.value,
                classified.kind.value,
                classified.message,
            )
            self.events.emit(TransactionFailed(active, classified))
            raise
        else:
            if self.state is not FlowState.PENDING:
                self._set_state(FlowState.SUCCEEDED)
        finally:
            self.state = FlowState.IDLE
            self._active = None
            self._announced = False
            self._lock.release()

    async def _approve(
        self, account: str, requirement: ApprovalRequirement, state: FlowState
    ) -> None:
        self._set_state(state)
        self.events.emit(
            ApprovalNeeded(requirement.token, requirement.symbol, requirement.spender)
        )
        self._ensure_same_account(account)
        call = self._token(requirement.token).approve_call(
            requirement.spender, APPROVAL_AMOUNT
        )
        tx_hash = await self._client.write(
            call,
            self._wallet,
            self._config.fallback_gas.approve,
            self._config.gas_buffer_percent,
        )
        # The next write depends on this approval, so it is waited out in full.
        receipt = await self._client.wait_for_receipt(
            tx_hash, None, self._config.receipt_poll_interval
        )
        if not receipt.succeeded:
            raise TransactionRevertedError(tx_hash, f"Approve {requirement.symbol}".strip())
        logger.info(
            "Approved %s for %s", requirement.symbol or requirement.token, requirement.spender
        )
        self.events.emit(ApprovalCompleted(requirement.token, requirement.symbol, tx_hash))

    async def _submit_and_confirm(
        self,
        account: str,
        operation: Operation,
        call: ContractCall,
        fallback_gas: int,
        quote: MintQuote | RedeemQuote | None = None,
    ) -> TransactionResult:
        self._set_state(FlowState.SUBMITTING)
        self._ensure_same_account(account)
        tx_hash = await self._client.write(
            call, self._wallet, fallback_gas, self._config.gas_buffer_percent
        )
        self.events.emit(TransactionSubmitted(operation, tx_hash))

        # The transaction is broadcast; cancelling from here on only stops waiting.
        self._set_state(FlowState.CONFIRMING)
        try:
            receipt = await asyncio.shield(
                self._client.wait_for_receipt(
                    tx_hash, self._config.receipt_timeout, self._config.receipt_poll_interval
                )
            )
        except asyncio.CancelledError:
            logger.warning("Stopped waiting for %s; it was already broadcast", tx_hash)
            raise
        except ReceiptTimeoutError:
            logger.warning("%s %s is still pending", operation.value, tx_hash)
            self._set_state(FlowState.PENDING)
            self.events.emit(TransactionPending(operation, tx_hash))
            return TransactionResult(
                operation=operation, tx_hash=tx_hash, receipt=None, quote=quote
            )

        if not receipt.succeeded:
            raise TransactionRevertedError(tx_hash, operation.value)

        self.events.emit(TransactionSucceeded(operation, tx_hash, receipt))
        return TransactionResult(
            operation=operation, tx_hash=tx_hash, receipt=receipt, quote=quote
        )

    # ------------------------------------------------------------------
    # Mint
    # ------------------------------------------------------------------

    async def execute_mint(
        self, collateral_index: int, dollar_amount: int, force_collateral_only: bool = False
    ) -> TransactionResult:
        with self._validating(Operation.MINT):
            self._check_amount(dollar_amount)
            account = self._require_account()
            asset = self.collateral(collateral_index)
            if not asset.is_enabled or asset.is_mint_paused:
                raise CollateralPausedError(asset.symbol, "minting")

        async with self._operation(Operation.MINT):
            self._set_state(FlowState.QUOTING)
            quote, state = await self._quote_mint(
                asset, dollar_amount, force_collateral_only
            )
            if not quote.minting_allowed:
                raise MintNotAllowedError(
                    state.time_weighted_avg_price, state.mint_price_threshold
                )

            approval = await self._allowances.mint_approval(asset, account, quote)
            if approval.needs_collateral_approval:
                await self._approve(
                    account, approval.collateral, FlowState.APPROVING_COLLATERAL
                )
            if approval.needs_governance_approval:
                await self._approve(
                    account, approval.governance, FlowState.APPROVING_GOVERNANCE
                )

            slippage = self._config.slippage_bps
            call = self._diamond.mint_call(
                asset.index,
                dollar_amount,
                pricing.apply_min_slippage(quote.total_out, slippage),
                pricing.apply_max_slippage(quote.collateral_in, slippage),
                pricing.apply_max_slippage(quote.governance_in, slippage),
                force_collateral_only,
            )
            result = await self._submit_and_confirm(
                account, Operation.MINT, call, self._config.fallback_gas.mint, quote
            )
        return result

    # ------------------------------------------------------------------
    # Redeem and collect
    # ------------------------------------------------------------------

    async def execute_redeem(
        self, collateral_index: int, dollar_amount: int
    ) -> TransactionResult:
        """Redeem ``dollar_amount``, or collect an outstanding redemption first.

        A redeem only queues collateral for the account; it is paid out by a
        later ``collectRedemption``. If the account already has an
        uncollected balance for this collateral, that collection is what
        this call performs.
        """
        with self._validating(Operation.REDEEM):
            self._check_amount(dollar_amount)
            account = self._require_account()
            asset = self.collateral(collateral_index)
            if asset.is_redeem_paused:
                raise CollateralPausedError(asset.symbol, "redeeming")

        async with self._operation(Operation.REDEEM, announce=False):
            self._set_state(FlowState.QUOTING)
            pending = await self._protocol.pending_redemption(account, asset.index)
            self._announce(
                Operation.REDEEM if pending is None else Operation.COLLECT_REDEMPTION
            )
            if pending is not None:
                logger.info(
                    "Pending redemption of %d for %s; collecting instead of redeeming",
                    pending.balance,
                    asset.symbol,
                )
                result = await self._collect(account, asset)
            else:
                result = await self._redeem(account, asset, dollar_amount)
        return result

    async def _redeem(
        self, account: str, asset: CollateralAsset, dollar_amount: int
    ) -> TransactionResult:
        balance = await self._token(self._allowances.dollar_address).balance_of(account)
        if balance < dollar_amount:
            raise InsufficientBalanceError("UUSD", balance, dollar_amount)

        quote, state = await self._quote_redeem(asset, dollar_amount)
        if not quote.redeeming_allowed:
            raise RedemptionNotAllowedError(
                state.time_weighted_avg_price, state.redeem_price_threshold
            )

        approval = await self._allowances.redeem_approval(account, dollar_amount)
        if approval.needs_approval:
            await self._approve(account, approval.dollar, FlowState.APPROVING_DOLLAR)

        slippage = self._config.slippage_bps
        call = self._diamond.redeem_call(
            asset.index,
            dollar_amount,
            pricing.apply_min_slippage(quote.governance_out, slippage),
            pricing.apply_min_slippage(quote.collateral_out, slippage),
        )
        return await self._submit_and_confirm(
            account, Operation.REDEEM, call, self._config.fallback_gas.redeem, quote
        )

    async def _collect(self, account: str, asset: CollateralAsset) -> TransactionResult:
        call = self._diamond.collect_redemption_call(asset.index)
        return await self._submit_and_confirm(
            account,
            Operation.COLLECT_REDEMPTION,
            call,
            self._config.fallback_gas.collect,
        )

    async def execute_collect_redemption(self, collateral_index: int) -> TransactionResult:
        with self._validating(Operation.COLLECT_REDEMPTION):
            account = self._require_account()
            asset = self.collateral(collateral_index)

        async with self._operation(Operation.COLLECT_REDEMPTION):
            self._set_state(FlowState.QUOTING)
            pending = await self._protocol.pending_redemption(account, asset.index)
            if pending is None:
                raise ValidationError(
                    f"No pending {asset.symbol} redemption to collect",
                    field="collateral_index",
                    value=asset.index,
                )
            result = await self._collect(account, asset)
        return result
