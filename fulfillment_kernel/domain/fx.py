"""
Exchange rate port.

Responsibility:
    The core never sources exchange rates itself.  Callers inject an
    ``ExchangeRateProvider``; the three-way match uses it to convert a vendor
    bill into the purchase order's currency.  A provider either returns a
    rate or raises ``ExchangeRateUnavailableError``.  It must not block
    indefinitely.

Architecture position:
    Kernel > Domain -- pure.  ``StaticRateProvider`` is an in-memory
    implementation for tests and single-currency deployments.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal

from fulfillment_kernel.exceptions import ExchangeRateUnavailableError


class ExchangeRateProvider(ABC):
    """Source of ``from_currency -> to_currency`` multipliers."""

    @abstractmethod
    def get_rate(
        self,
        from_currency: str,
        to_currency: str,
        as_of: date | None = None,
    ) -> Decimal:
        """Return the multiplier converting one unit of from_currency.

        Raises:
            ExchangeRateUnavailableError: No rate for the pair.
        """
        ...

    def convert(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        as_of: date | None = None,
    ) -> Decimal:
        if from_currency == to_currency:
            return amount
        return amount * self.get_rate(from_currency, to_currency, as_of)


class StaticRateProvider(ExchangeRateProvider):
    """
    Fixed rate table.

    Inverse rates are derived when only the opposite direction is known.
    Same-currency conversion is always 1.
    """

    def __init__(self, rates: dict[tuple[str, str], Decimal] | None = None):
        self._rates: dict[tuple[str, str], Decimal] = {}
        for (src, dst), rate in (rates or {}).items():
            self.set_rate(src, dst, rate)

    def set_rate(self, from_currency: str, to_currency: str, rate: Decimal) -> None:
        rate = Decimal(str(rate))
        if rate <= 0:
            raise ValueError(f"Exchange rate must be positive, got {rate}")
        self._rates[(from_currency.upper(), to_currency.upper())] = rate

    def get_rate(
        self,
        from_currency: str,
        to_currency: str,
        as_of: date | None = None,
    ) -> Decimal:
        src, dst = from_currency.upper(), to_currency.upper()
        if src == dst:
            return Decimal("1")
        if (src, dst) in self._rates:
            return self._rates[(src, dst)]
        if (dst, src) in self._rates:
            return Decimal("1") / self._rates[(dst, src)]
        raise ExchangeRateUnavailableError(src, dst, as_of)
