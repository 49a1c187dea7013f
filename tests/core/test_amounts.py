"""
Tests for token amount arithmetic.

Covers basis-point conversion with banker's rounding, u64 overflow
detection, decimal rebasing and string parsing/formatting.
"""

from dataclasses import FrozenInstanceError
from decimal import Decimal

import pytest

from ledger_runtime.core.amounts import (
    U64_MAX,
    ConversionRequest,
    adjust_for_decimals,
    convert_amount,
    format_exchange_rate,
    format_percentage,
    format_token_amount,
    parse_token_amount,
)
from ledger_runtime.core.recovery.errors import (
    AmountOverflowError,
    ErrorCategory,
    InvalidAmountError,
    InvalidConfigurationError,
)


# =============================================================================
# Conversion Tests
# =============================================================================

class TestConvertAmount:
    """Tests for basis-point conversion."""

    def test_one_to_one_same_decimals(self):
        assert convert_amount(100_000_000_000, 10_000, 9, 9) == 100_000_000_000

    def test_two_to_one(self):
        assert convert_amount(100_000_000_000, 20_000, 9, 9) == 200_000_000_000

    def test_rounds_up_above_half(self):
        # 1 * 6000 / 10000 = 0.6
        assert convert_amount(1, 6_000, 0, 0) == 1

    def test_truncates_below_half(self):
        # 1 * 4000 / 10000 = 0.4
        assert convert_amount(1, 4_000, 0, 0) == 0

    def test_exact_half_rounds_to_even(self):
        # 0.5 -> 0, 1.5 -> 2, 2.5 -> 2, 3.5 -> 4
        assert convert_amount(1, 5_000, 0, 0) == 0
        assert convert_amount(3, 5_000, 0, 0) == 2
        assert convert_amount(5, 5_000, 0, 0) == 2
        assert convert_amount(7, 5_000, 0, 0) == 4

    def test_ties_always_pick_even_candidate(self):
        """Every exact tie resolves to the even one of quotient / quotient+1."""
        for amount in range(1, 400, 2):
            numerator = amount * 5_000
            quotient, remainder = divmod(numerator, 10_000)
            assert remainder * 2 == 10_000

            result = convert_amount(amount, 5_000, 0, 0)

            assert result in (quotient, quotient + 1)
            assert result % 2 == 0

    def test_widening_decimals_multiplies(self):
        assert convert_amount(100_000_000, 10_000, 6, 9) == 100_000_000_000

    def test_narrowing_decimals_truncates(self):
        assert convert_amount(123_456_789, 10_000, 9, 6) == 123_456

    def test_zero_rate(self):
        assert convert_amount(1_000, 0, 6, 9) == 0

    def test_end_to_end_scenario(self):
        """12.34 tokens at 1.5x from 6 to 9 decimals."""
        source = parse_token_amount("12.34", 6)
        assert source == 12_340_000
        assert source * 15_000 == 185_100_000_000

        assert convert_amount(source, 15_000, 6, 9) == 18_510_000_000

    def test_conversion_request_value_object(self):
        request = ConversionRequest(amount=12_340_000, rate_bps=15_000, source_decimals=6, target_decimals=9)

        assert request.convert() == 18_510_000_000

        with pytest.raises(FrozenInstanceError):
            request.amount = 1


# =============================================================================
# Overflow Tests
# =============================================================================

class TestOverflow:
    """Tests for u64 bounds."""

    def test_amount_above_u64_rejected(self):
        with pytest.raises(AmountOverflowError) as exc_info:
            convert_amount(U64_MAX + 1, 10_000, 9, 9)

        assert exc_info.value.category == ErrorCategory.AMOUNT_OVERFLOW
        assert exc_info.value.context.recoverable is False

    def test_numerator_overflow_never_wraps(self):
        for amount, rate in [(U64_MAX, 2), (2**63, 2), (2**40, 2**24 + 1), (U64_MAX // 3 + 1, 3)]:
            assert amount * rate > U64_MAX
            with pytest.raises(AmountOverflowError):
                convert_amount(amount, rate, 9, 9)

    def test_numerator_at_limit_is_accepted(self):
        # U64_MAX * 1 fits; 1615 remainder rounds down
        assert convert_amount(U64_MAX, 1, 0, 0) == 1_844_674_407_370_955

    def test_rescale_overflow(self):
        # Product fits (1e19), widening by 10^5 does not
        with pytest.raises(AmountOverflowError):
            convert_amount(10**15, 10_000, 4, 9)

    def test_conversion_request_rejects_oversized_amount(self):
        with pytest.raises(AmountOverflowError):
            ConversionRequest(amount=U64_MAX + 1, rate_bps=10_000, source_decimals=9, target_decimals=9)


# =============================================================================
# Validation Tests
# =============================================================================

class TestValidation:
    """Tests for input validation."""

    def test_negative_amount(self):
        with pytest.raises(InvalidAmountError):
            convert_amount(-1, 10_000, 9, 9)

    def test_negative_rate(self):
        with pytest.raises(InvalidConfigurationError):
            convert_amount(1, -10_000, 9, 9)

    def test_decimals_out_of_u8_range(self):
        with pytest.raises(InvalidConfigurationError):
            convert_amount(1, 10_000, 256, 9)
        with pytest.raises(InvalidConfigurationError):
            convert_amount(1, 10_000, 9, -1)

    def test_non_integer_amount(self):
        with pytest.raises(InvalidConfigurationError):
            convert_amount(1.5, 10_000, 9, 9)  # type: ignore[arg-type]

    def test_conversion_request_validates_decimals(self):
        with pytest.raises(InvalidConfigurationError):
            ConversionRequest(amount=1, rate_bps=10_000, source_decimals=300, target_decimals=9)


# =============================================================================
# Decimal Rebasing Tests
# =============================================================================

class TestAdjustForDecimals:
    """Tests for decimal rebasing and round trips."""

    def test_same_decimals(self):
        assert adjust_for_decimals(42, 6, 6) == 42

    def test_widen(self):
        assert adjust_for_decimals(100_000_000, 6, 9) == 100_000_000_000

    def test_narrow(self):
        assert adjust_for_decimals(100_000_000_000, 9, 6) == 100_000_000

    def test_round_trip_when_widening(self):
        for amount in (0, 1, 999, 123_456_789, 10**12):
            widened = convert_amount(amount, 10_000, 6, 9)
            assert convert_amount(widened, 10_000, 9, 6) == amount

    def test_narrowing_loses_precision(self):
        narrowed = convert_amount(123_456_789, 10_000, 9, 6)
        restored = convert_amount(narrowed, 10_000, 6, 9)

        assert restored == 123_456_000
        assert restored != 123_456_789

    def test_widen_overflow(self):
        with pytest.raises(AmountOverflowError):
            adjust_for_decimals(U64_MAX, 0, 1)


# =============================================================================
# Parsing Tests
# =============================================================================

class TestParseTokenAmount:
    """Tests for human amount parsing."""

    def test_fractional_amount(self):
        assert parse_token_amount("100.5", 9) == 100_500_000_000

    def test_whole_amount(self):
        assert parse_token_amount("5", 6) == 5_000_000

    def test_truncates_extra_digits(self):
        assert parse_token_amount("0.1234567", 6) == 123_456

    def test_leading_and_trailing_dot(self):
        assert parse_token_amount(".5", 2) == 50
        assert parse_token_amount("5.", 2) == 500

    def test_zero_decimals(self):
        assert parse_token_amount("42.9", 0) == 42

    def test_whitespace_and_plus_sign(self):
        assert parse_token_amount("  +1.25 ", 2) == 125

    def test_decimal_and_int_inputs(self):
        assert parse_token_amount(Decimal("1.25"), 2) == 125
        assert parse_token_amount(7, 3) == 7_000

    def test_large_amount_keeps_precision(self):
        # Well past float precision
        assert parse_token_amount("12345678901.123456789", 9) == 12_345_678_901_123_456_789

    @pytest.mark.parametrize("bad", ["-1", "abc", "1e5", "", ".", "1.2.3", "1,000"])
    def test_rejects_malformed(self, bad):
        with pytest.raises(InvalidAmountError):
            parse_token_amount(bad, 6)

    def test_rejects_float(self):
        with pytest.raises(InvalidAmountError):
            parse_token_amount(1.5, 6)  # type: ignore[arg-type]

    def test_rejects_decimals_out_of_range(self):
        with pytest.raises(InvalidAmountError):
            parse_token_amount("1", 19)

    def test_rejects_non_finite_decimal(self):
        with pytest.raises(InvalidAmountError):
            parse_token_amount(Decimal("Infinity"), 6)

    def test_overflow(self):
        with pytest.raises(AmountOverflowError):
            parse_token_amount("18446744073709551616", 0)


# =============================================================================
# Formatting Tests
# =============================================================================

class TestFormatting:
    """Tests for display helpers."""

    def test_format_token_amount(self):
        assert format_token_amount(100_500_000_000, 9) == "100.5"
        assert format_token_amount(100_000_000_000, 9) == "100"
        assert format_token_amount(1, 6) == "0.000001"
        assert format_token_amount(0, 0) == "0"
        assert format_token_amount(-1_500, 3) == "-1.5"

    def test_format_exchange_rate(self):
        assert format_exchange_rate(10_000) == "1:1"
        assert format_exchange_rate(20_000) == "2:1"
        assert format_exchange_rate(15_000) == "1.5:1"
        assert format_exchange_rate(5_000) == "1:2"
        assert format_exchange_rate(3_000) == "1:3.3"

    def test_format_exchange_rate_rejects_zero(self):
        with pytest.raises(InvalidConfigurationError):
            format_exchange_rate(0)

    def test_format_percentage(self):
        assert format_percentage(1_000) == "10%"
        assert format_percentage(250) == "2.5%"
        assert format_percentage(10_000) == "100%"
