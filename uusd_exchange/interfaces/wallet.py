"""Wallet session protocol: account access and transaction signing."""
from typing import Any, Callable, Protocol


class WalletSession(Protocol):
    """Abstract interface for the wallet that owns the active account."""

    def current_account(self) -> str | None: ...

    async def sign_transaction(self, transaction: dict[str, Any]) -> bytes: ...

    def on_account_changed(
        self, listener: Callable[[str | None], None]
    ) -> Callable[[], None]: ...
