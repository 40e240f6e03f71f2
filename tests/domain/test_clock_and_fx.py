"""
Tests for the injectable clock, the FX port and document numbering.
"""

import re
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from fulfillment_kernel.domain.clock import DeterministicClock, SystemClock
from fulfillment_kernel.domain.documents import SALES_ORDER, document_number
from fulfillment_kernel.domain.fx import StaticRateProvider
from fulfillment_kernel.exceptions import ExchangeRateUnavailableError


class TestDeterministicClock:

    def test_fixed_until_advanced(self):
        clock = DeterministicClock(datetime(2024, 12, 1, 12, tzinfo=UTC))
        assert clock.now() == clock.now()
        clock.advance_days(31)
        assert clock.today() == date(2025, 1, 1)

    def test_set_date_moves_to_noon(self):
        clock = DeterministicClock()
        clock.set_date(date(2025, 3, 4))
        assert clock.now_utc() == datetime(2025, 3, 4, 12, tzinfo=UTC)

    def test_tick(self):
        clock = DeterministicClock()
        before = clock.now()
        assert (clock.tick() - before).total_seconds() == 1

    def test_system_clock_is_utc(self):
        assert SystemClock().now_utc().tzinfo is not None


class TestStaticRateProvider:

    def test_same_currency_is_identity(self):
        assert StaticRateProvider().get_rate("USD", "usd") == Decimal("1")

    def test_direct_and_inverse_rates(self):
        fx = StaticRateProvider({("EUR", "USD"): Decimal("1.25")})
        assert fx.get_rate("EUR", "USD") == Decimal("1.25")
        assert fx.get_rate("USD", "EUR") == Decimal("0.8")

    def test_convert(self):
        fx = StaticRateProvider({("EUR", "USD"): Decimal("1.10")})
        assert fx.convert(Decimal("100"), "EUR", "USD") == Decimal("110.00")

    def test_missing_rate_raises(self):
        with pytest.raises(ExchangeRateUnavailableError) as exc_info:
            StaticRateProvider().get_rate("GBP", "JPY", date(2024, 12, 1))
        assert exc_info.value.from_currency == "GBP"
        assert exc_info.value.code == "EXCHANGE_RATE_UNAVAILABLE"

    def test_non_positive_rate_rejected(self):
        with pytest.raises(ValueError):
            StaticRateProvider({("EUR", "USD"): Decimal("0")})


def test_document_number_format():
    number = document_number(SALES_ORDER, date(2024, 12, 1))
    assert re.fullmatch(r"SO-20241201-[0-9A-F]{6}", number)
