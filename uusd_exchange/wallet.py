"""Local key wallet session backed by eth-account."""
from __future__ import annotations

import logging
from typing import Any, Callable

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .errors import ValidationError

logger = logging.getLogger(__name__)

AccountListener = Callable[["str | None"], None]


class LocalWalletSession:
    """Holds the active signing account and notifies on changes.

    Callers read ``current_account()`` as a snapshot at the start of each
    operation; switching or disconnecting affects only later operations.
    """

    def __init__(self, private_key: str | None = None) -> None:
        self._account: LocalAccount | None = None
        self._listeners: list[AccountListener] = []
        if private_key:
            self._account = self._load(private_key)

    @staticmethod
    def _load(private_key: str) -> LocalAccount:
        try:
            return Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise ValidationError(
                "Invalid private key", field="private_key", constraint="32-byte hex"
            ) from e

    def current_account(self) -> str | None:
        return self._account.address if self._account else None

    async def sign_transaction(self, transaction: dict[str, Any]) -> bytes:
        if self._account is None:
            raise ValidationError("Please connect wallet first", field="account")
        signed = self._account.sign_transaction(transaction)
        return bytes(signed.raw_transaction)

    def switch_account(self, private_key: str) -> str:
        """Replace the active account and notify listeners."""
        self._account = self._load(private_key)
        logger.info("Wallet account changed to %s", self._account.address)
        self._notify(self._account.address)
        return self._account.address

    def disconnect(self) -> None:
        if self._account is None:
            return
        self._account = None
        logger.info("Wallet disconnected")
        self._notify(None)

    def on_account_changed(self, listener: AccountListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, account: str | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(account)
            except Exception as e:
                logger.error("Account listener failed: %s", e)
