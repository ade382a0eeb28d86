"""Unit tests for the local wallet session."""
from __future__ import annotations

import pytest
from eth_account import Account

from uusd_exchange.errors import ValidationError
from uusd_exchange.wallet import LocalWalletSession

OTHER_KEY = "0x" + "11" * 32


class TestLocalWalletSession:
    def test_account_from_key(self, private_key: str) -> None:
        session = LocalWalletSession(private_key)
        assert session.current_account() == Account.from_key(private_key).address

    def test_no_key_means_no_account(self) -> None:
        assert LocalWalletSession().current_account() is None

    def test_invalid_key_raises(self) -> None:
        with pytest.raises(ValidationError, match="Invalid private key"):
            LocalWalletSession("0x1234")

    @pytest.mark.asyncio
    async def test_sign_transaction_returns_raw_bytes(self, private_key: str) -> None:
        session = LocalWalletSession(private_key)
        raw = await session.sign_transaction(
            {
                "to": "0xED3084c98148e2528DaDCB53C56352e549C488fA",
                "data": "0x",
                "value": 0,
                "gas": 21_000,
                "gasPrice": 10**9,
                "nonce": 0,
                "chainId": 1,
            }
        )
        assert isinstance(raw, bytes)
        assert len(raw) > 64

    @pytest.mark.asyncio
    async def test_sign_without_account_raises(self) -> None:
        with pytest.raises(ValidationError, match="connect wallet"):
            await LocalWalletSession().sign_transaction({})

    def test_switch_notifies(self, private_key: str) -> None:
        session = LocalWalletSession(private_key)
        seen: list[str | None] = []
        session.on_account_changed(seen.append)

        address = session.switch_account(OTHER_KEY)

        assert seen == [address]
        assert session.current_account() == address

    def test_disconnect_notifies_once(self, private_key: str) -> None:
        session = LocalWalletSession(private_key)
        seen: list[str | None] = []
        session.on_account_changed(seen.append)

        session.disconnect()
        session.disconnect()

        assert seen == [None]
        assert session.current_account() is None

    def test_unsubscribe(self, private_key: str) -> None:
        session = LocalWalletSession(private_key)
        seen: list[str | None] = []
        unsubscribe = session.on_account_changed(seen.append)

        unsubscribe()
        session.disconnect()

        assert seen == []
