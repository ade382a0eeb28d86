"""Unit tests for ABI encoding and decoding helpers."""
from __future__ import annotations

import pytest
from eth_abi import encode

from uusd_exchange.chains.evm import abi


class TestSelectors:
    @pytest.mark.parametrize(
        ("fn", "selector"),
        [
            (abi.ALLOWANCE, "dd62ed3e"),
            (abi.APPROVE, "095ea7b3"),
            (abi.BALANCE_OF, "70a08231"),
        ],
    )
    def test_erc20_selectors(self, fn: abi.AbiFunction, selector: str) -> None:
        assert fn.selector.hex() == selector

    def test_signature(self) -> None:
        assert abi.MINT_DOLLAR.signature == (
            "mintDollar(uint256,uint256,uint256,uint256,uint256,bool)"
        )


class TestEncodeCall:
    def test_encodes_selector_and_args(self) -> None:
        owner = "0x5ce9454909639d2d17a3f753ce7d93fa0b9ab12e"
        data = abi.encode_call(abi.BALANCE_OF, (owner,))
        assert data.startswith("0x70a08231")
        assert len(data) == 2 + 8 + 64
        assert data.endswith(owner[2:])

    def test_wrong_arity_raises(self) -> None:
        with pytest.raises(ValueError, match="expects 2 arguments"):
            abi.encode_call(abi.ALLOWANCE, ("0x" + "00" * 20,))


class TestDecode:
    def test_uint_result(self) -> None:
        data = "0x" + encode(["uint256"], [1_000_000]).hex()
        assert abi.decode_result(abi.COLLATERAL_RATIO, data) == (1_000_000,)

    def test_address_array(self) -> None:
        addresses = ["0x5f98805a4e8be255a32880fdec7f6728c6568ba0"]
        data = "0x" + encode(["address[]"], [addresses]).hex()
        (decoded,) = abi.decode_result(abi.ALL_COLLATERALS, data)
        assert [a.lower() for a in decoded] == addresses

    def test_empty_result_raises(self) -> None:
        with pytest.raises(ValueError, match="Empty return data"):
            abi.decode_result(abi.COLLATERAL_RATIO, "0x")


class TestRevertReason:
    def test_decodes_error_string(self) -> None:
        data = "0x08c379a0" + encode(["string"], ["Stale Stable/USD data"]).hex()
        assert abi.decode_revert_reason(data) == "Stale Stable/USD data"

    def test_non_error_data(self) -> None:
        assert abi.decode_revert_reason("0x1234") is None
        assert abi.decode_revert_reason(None) is None

    def test_truncated_payload(self) -> None:
        assert abi.decode_revert_reason("0x08c379a0ff") is None


def test_word_to_int() -> None:
    assert abi.word_to_int("0x" + "00" * 31 + "0f") == 15
    assert abi.word_to_int("0x") == 0
