"""Builds the ledger client, contracts and services from configuration."""
from __future__ import annotations

import logging

from ..chains.evm import DiamondContract, Erc20Contract, LedgerClient
from ..config import AppConfig
from ..events import EventBus, WalletConnected, WalletDisconnected
from ..interfaces.wallet import WalletSession
from ..models import CollateralAsset, PendingRedemption
from ..wallet import LocalWalletSession
from .allowance import AllowanceGate
from .orchestrator import TransactionOrchestrator
from .price_poller import PricePoller
from .protocol_state import ProtocolStateService

logger = logging.getLogger(__name__)


class Exchange:
    """One session against the pool: a single ledger client shared by every service."""

    def __init__(
        self,
        config: AppConfig,
        wallet: WalletSession | None = None,
        client: LedgerClient | None = None,
    ) -> None:
        self._config = config
        self.client = client or LedgerClient.from_config(config.chain)
        self.wallet = wallet or LocalWalletSession(config.wallet.private_key or None)
        self.events = EventBus()

        contracts = config.contracts
        self.diamond = DiamondContract(
            self.client, contracts.diamond, contracts.pool_storage_base
        )
        self.protocol = ProtocolStateService(self.diamond)
        self.allowances = AllowanceGate(
            self.token,
            spender=self.diamond.address,
            dollar_address=contracts.dollar,
            governance_address=contracts.governance,
        )
        self.orchestrator = TransactionOrchestrator(
            self.client,
            self.diamond,
            self.protocol,
            self.allowances,
            self.wallet,
            events=self.events,
            config=config.transactions,
            token_factory=self.token,
        )
        self.poller = PricePoller(self.protocol, config.polling.interval_seconds)
        self._unsubscribe_wallet = self.wallet.on_account_changed(self._forward_account)

    def token(self, address: str) -> Erc20Contract:
        return Erc20Contract(self.client, address)

    def _forward_account(self, account: str | None) -> None:
        if account:
            self.events.emit(WalletConnected(account))
        else:
            self.events.emit(WalletDisconnected())

    async def start(self) -> list[CollateralAsset]:
        """Load the pool's collaterals for this session."""
        return await self.orchestrator.load_collaterals()

    def close(self) -> None:
        self.poller.stop()
        self._unsubscribe_wallet()

    async def pending_redemption(self, account: str | None = None) -> PendingRedemption | None:
        account = account or self.wallet.current_account()
        if not account:
            return None
        return await self.protocol.find_pending_redemption(
            account, self.orchestrator.collaterals
        )

    async def read_storage(self, slot: int) -> int:
        return await self.client.read_raw(self.diamond.address, slot)
