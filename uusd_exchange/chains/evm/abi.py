"""Minimal ABI definitions and pure encode/decode helpers: no I/O."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector

# selector of Error(string)
_REVERT_SELECTOR = "08c379a0"

_COLLATERAL_INFO_TUPLE = (
    "(uint256,string,address,address,uint256,bool,uint256,uint256,"
    "uint256,bool,bool,bool,uint256,uint256)"
)


@dataclass(frozen=True)
class AbiFunction:
    name: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)


# Diamond (pool facet) ------------------------------------------------------

COLLATERAL_RATIO = AbiFunction("collateralRatio", (), ("uint256",))
GOVERNANCE_PRICE_USD = AbiFunction("getGovernancePriceUsd", (), ("uint256",))
DOLLAR_PRICE_USD = AbiFunction("getDollarPriceUsd", (), ("uint256",))
DOLLAR_IN_COLLATERAL = AbiFunction(
    "getDollarInCollateral", ("uint256", "uint256"), ("uint256",)
)
ALL_COLLATERALS = AbiFunction("allCollaterals", (), ("address[]",))
COLLATERAL_INFORMATION = AbiFunction(
    "collateralInformation", ("address",), (_COLLATERAL_INFO_TUPLE,)
)
REDEEM_COLLATERAL_BALANCE = AbiFunction(
    "getRedeemCollateralBalance", ("address", "uint256"), ("uint256",)
)
MINT_DOLLAR = AbiFunction(
    "mintDollar",
    ("uint256", "uint256", "uint256", "uint256", "uint256", "bool"),
    ("uint256", "uint256", "uint256"),
)
REDEEM_DOLLAR = AbiFunction(
    "redeemDollar",
    ("uint256", "uint256", "uint256", "uint256"),
    ("uint256", "uint256"),
)
COLLECT_REDEMPTION = AbiFunction(
    "collectRedemption", ("uint256",), ("uint256", "uint256")
)

# ERC-20 --------------------------------------------------------------------

ALLOWANCE = AbiFunction("allowance", ("address", "address"), ("uint256",))
APPROVE = AbiFunction("approve", ("address", "uint256"), ("bool",))
BALANCE_OF = AbiFunction("balanceOf", ("address",), ("uint256",))


def encode_call(fn: AbiFunction, args: tuple[Any, ...] = ()) -> str:
    """Return 0x-prefixed calldata for ``fn(*args)``."""
    if len(args) != len(fn.inputs):
        raise ValueError(
            f"{fn.signature} expects {len(fn.inputs)} arguments, got {len(args)}"
        )
    payload = fn.selector + abi_encode(list(fn.inputs), list(args))
    return "0x" + payload.hex()


def decode_result(fn: AbiFunction, data: str) -> tuple[Any, ...]:
    """Decode the hex return data of an ``eth_call``."""
    raw = bytes.fromhex(_strip_0x(data))
    if not raw and fn.outputs:
        raise ValueError(f"Empty return data for {fn.signature}")
    return tuple(abi_decode(list(fn.outputs), raw))


def decode_revert_reason(data: Any) -> str | None:
    """Extract the ``Error(string)`` reason from revert data, if present."""
    if not isinstance(data, str):
        return None
    hex_body = _strip_0x(data)
    if not hex_body.startswith(_REVERT_SELECTOR):
        return None
    try:
        (reason,) = abi_decode(["string"], bytes.fromhex(hex_body[8:]))
    except (DecodingError, ValueError):
        return None
    return reason


def word_to_int(data: str) -> int:
    """Interpret a 32-byte storage word as an unsigned integer."""
    body = _strip_0x(data)
    return int(body, 16) if body else 0


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value
