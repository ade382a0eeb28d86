"""Conversion between decimal strings and fixed-point token amounts."""
from __future__ import annotations

from decimal import ROUND_DOWN, Context, Decimal, InvalidOperation

from .errors import ValidationError

TOKEN_DECIMALS = 18

# Wide enough for any uint256 amount.
_CONTEXT = Context(prec=80)


def parse_amount(text: str, decimals: int = TOKEN_DECIMALS, field: str = "amount") -> int:
    """Parse a user-entered amount such as ``"12.5"`` into base units.

    Raises ``ValidationError`` for empty, non-numeric, negative or zero
    input, and for more fractional digits than ``decimals`` allows.
    """
    stripped = (text or "").strip()
    if not stripped:
        raise ValidationError("Please enter an amount", field=field)

    try:
        value = Decimal(stripped)
    except InvalidOperation as e:
        raise ValidationError(
            f"'{text}' is not a number", field=field, value=text
        ) from e

    if not value.is_finite():
        raise ValidationError(f"'{text}' is not a number", field=field, value=text)
    if value <= 0:
        raise ValidationError(
            "Amount must be greater than zero", field=field, value=text, constraint="> 0"
        )

    scaled = value.scaleb(decimals, context=_CONTEXT)
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"Amount has more than {decimals} decimal places",
            field=field,
            value=text,
            constraint=f"<= {decimals} decimals",
        )
    return int(scaled)


def format_amount(amount: int, decimals: int = TOKEN_DECIMALS, places: int = 6) -> str:
    """Render base units as a decimal string truncated to ``places`` digits."""
    value = Decimal(amount).scaleb(-decimals, context=_CONTEXT)
    quantum = Decimal(1).scaleb(-places)
    truncated = value.quantize(quantum, rounding=ROUND_DOWN, context=_CONTEXT)
    text = format(truncated, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
