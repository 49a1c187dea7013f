"""
Token amount arithmetic.

Pure functions converting between human-readable amounts and ledger base
units, and between two tokens at a basis-point exchange rate. Everything is
exact integer math; values are bounded to the ledger's unsigned 64-bit range.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from .recovery.errors import (
    AmountOverflowError,
    InvalidAmountError,
    InvalidConfigurationError,
)

U64_MAX = 2**64 - 1
U8_MAX = 2**8 - 1
BPS_DENOMINATOR = 10_000
MAX_PARSE_DECIMALS = 18

_AMOUNT_RE = re.compile(r"^\+?(?P<whole>\d*)(?:\.(?P<frac>\d*))?$")

HumanAmount = Union[str, int, Decimal]


def _require_int(value: object, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigurationError(f"{name} must be an integer, got {value!r}", setting=name)
    return value


def _check_decimals(decimals: object, name: str) -> int:
    value = _require_int(decimals, name)
    if value < 0 or value > U8_MAX:
        raise InvalidConfigurationError(f"{name} must be between 0 and {U8_MAX}, got {value}", setting=name)
    return value


def _round_half_even(numerator: int, denominator: int) -> int:
    quotient, remainder = divmod(numerator, denominator)
    if remainder * 2 > denominator:
        return quotient + 1
    if remainder * 2 == denominator:
        return quotient if quotient % 2 == 0 else quotient + 1
    return quotient


def convert_amount(
    amount: int,
    rate_bps: int,
    source_decimals: int,
    target_decimals: int,
) -> int:
    """
    Convert a base-unit amount of one token into base units of another.

    Uses banker's rounding (round half to even) on the basis-point division,
    then rescales for the decimal difference. Narrowing decimals truncates,
    so results are not exactly invertible in that direction.

    Args:
        amount: Amount in source token base units (u64)
        rate_bps: Exchange rate in basis points (10000 = 1:1, 15000 = 1.5:1)
        source_decimals: Source token decimals (u8)
        target_decimals: Target token decimals (u8)

    Returns:
        Amount in target token base units

    Raises:
        AmountOverflowError: If the amount, the rate product or the rescaled
            result exceeds the u64 limit
        InvalidAmountError: If the amount is negative
        InvalidConfigurationError: If the rate or decimals are out of range
    """
    amount = _require_int(amount, "amount")
    rate_bps = _require_int(rate_bps, "rate_bps")
    source_decimals = _check_decimals(source_decimals, "source_decimals")
    target_decimals = _check_decimals(target_decimals, "target_decimals")

    if amount < 0:
        raise InvalidAmountError(f"Amount {amount} is negative", value=amount)
    if amount > U64_MAX:
        raise AmountOverflowError(f"Amount {amount} exceeds maximum supported value (u64 limit)", value=amount)
    if rate_bps < 0 or rate_bps > U64_MAX:
        raise InvalidConfigurationError(f"Exchange rate {rate_bps} bps is out of range", setting="rate_bps")

    numerator = amount * rate_bps
    if numerator > U64_MAX:
        raise AmountOverflowError(
            f"Amount {amount} at {rate_bps} bps exceeds maximum supported value (u64 limit)",
            value=numerator,
        )

    converted = _round_half_even(numerator, BPS_DENOMINATOR)

    if target_decimals == source_decimals:
        return converted

    if target_decimals > source_decimals:
        result = converted * 10 ** (target_decimals - source_decimals)
        if result > U64_MAX:
            raise AmountOverflowError(
                "Converted amount exceeds maximum supported value (u64 limit)",
                value=result,
            )
        return result

    return converted // 10 ** (source_decimals - target_decimals)


@dataclass(frozen=True)
class ConversionRequest:
    """Immutable conversion input; validated on construction."""

    amount: int
    rate_bps: int
    source_decimals: int
    target_decimals: int

    def __post_init__(self) -> None:
        amount = _require_int(self.amount, "amount")
        if amount < 0:
            raise InvalidAmountError(f"Amount {amount} is negative", value=amount)
        if amount > U64_MAX:
            raise AmountOverflowError(f"Amount {amount} exceeds maximum supported value (u64 limit)", value=amount)
        rate = _require_int(self.rate_bps, "rate_bps")
        if rate < 0 or rate > U64_MAX:
            raise InvalidConfigurationError(f"Exchange rate {rate} bps is out of range", setting="rate_bps")
        _check_decimals(self.source_decimals, "source_decimals")
        _check_decimals(self.target_decimals, "target_decimals")

    def convert(self) -> int:
        return convert_amount(self.amount, self.rate_bps, self.source_decimals, self.target_decimals)


def adjust_for_decimals(amount: int, from_decimals: int, to_decimals: int) -> int:
    """
    Rebase an amount from one decimal count to another.

    Widening multiplies (checked against u64), narrowing truncates.
    """
    amount = _require_int(amount, "amount")
    from_decimals = _check_decimals(from_decimals, "from_decimals")
    to_decimals = _check_decimals(to_decimals, "to_decimals")
    if amount < 0:
        raise InvalidAmountError(f"Amount {amount} is negative", value=amount)

    if from_decimals == to_decimals:
        return amount
    if to_decimals > from_decimals:
        result = amount * 10 ** (to_decimals - from_decimals)
        if result > U64_MAX:
            raise AmountOverflowError("Rebased amount exceeds maximum supported value (u64 limit)", value=result)
        return result
    return amount // 10 ** (from_decimals - to_decimals)


def _amount_text(amount: HumanAmount) -> str:
    if isinstance(amount, bool):
        raise InvalidAmountError(f"Invalid amount: {amount!r}", value=amount)
    if isinstance(amount, int):
        return str(amount)
    if isinstance(amount, Decimal):
        if not amount.is_finite():
            raise InvalidAmountError(f"Invalid amount: {amount} is not a finite number", value=amount)
        return format(amount, "f")
    if isinstance(amount, str):
        return amount.strip()
    raise InvalidAmountError(
        f"Invalid amount type {type(amount).__name__}; pass a decimal string, int or Decimal",
        value=amount,
    )


def parse_token_amount(amount: HumanAmount, decimals: int) -> int:
    """
    Convert a human-readable amount to base units without floating point.

    Fractional digits beyond `decimals` are truncated; shorter fractions are
    padded with zeros.

    Args:
        amount: Decimal string ("12.34"), int or Decimal
        decimals: Token decimals (0-18)

    Returns:
        Amount in base units

    Raises:
        InvalidAmountError: If the amount is negative, malformed, or the
            decimals are out of range
        AmountOverflowError: If the result exceeds the u64 limit
    """
    if isinstance(decimals, bool) or not isinstance(decimals, int) or not 0 <= decimals <= MAX_PARSE_DECIMALS:
        raise InvalidAmountError(
            f"Invalid decimals: {decimals} must be an integer between 0 and {MAX_PARSE_DECIMALS}",
            value=decimals,
        )

    text = _amount_text(amount)
    if text.startswith("-"):
        raise InvalidAmountError(f"Invalid amount: {text} is negative", value=text)

    match = _AMOUNT_RE.match(text)
    if match is None:
        raise InvalidAmountError(f"Invalid amount: {text!r} is not a decimal number", value=text)

    whole = match.group("whole") or ""
    frac = match.group("frac") or ""
    if not whole and not frac:
        raise InvalidAmountError(f"Invalid amount: {text!r} is not a decimal number", value=text)

    digits = (whole or "0") + frac[:decimals].ljust(decimals, "0")
    result = int(digits)
    if result > U64_MAX:
        raise AmountOverflowError(f"Amount {text} exceeds maximum supported value (u64 limit)", value=result)
    return result


def format_token_amount(amount: int, decimals: int) -> str:
    """Render base units as a decimal string, trailing zeros trimmed."""
    negative = amount < 0
    whole, remainder = divmod(abs(amount), 10**decimals)
    fraction = str(remainder).zfill(decimals).rstrip("0") if decimals else ""
    sign = "-" if negative else ""
    if not fraction:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{fraction}"


def format_exchange_rate(rate_bps: int) -> str:
    """
    Render a basis-point rate as a ratio.

    10000 -> "1:1", 20000 -> "2:1", 15000 -> "1.5:1", 5000 -> "1:2"
    """
    if rate_bps <= 0:
        raise InvalidConfigurationError(f"Exchange rate must be positive, got {rate_bps}", setting="rate_bps")

    rate = Decimal(rate_bps) / BPS_DENOMINATOR
    if rate == 1:
        return "1:1"
    if rate > 1:
        if rate == rate.to_integral_value():
            return f"{int(rate)}:1"
        return f"{rate:.1f}:1"

    inverse = 1 / rate
    if inverse == inverse.to_integral_value():
        return f"1:{int(inverse)}"
    return f"1:{inverse:.1f}"


def format_percentage(bps: int) -> str:
    percentage = Decimal(bps) / 100
    if percentage == percentage.to_integral_value():
        return f"{int(percentage)}%"
    return f"{percentage:.1f}%"
