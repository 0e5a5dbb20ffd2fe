"""
Money arithmetic for session totals.

All amounts are Decimal. Line totals (unit price x quantity) are exact at two
decimal places; tax and service charge keep full precision and rounding
happens once, ROUND_HALF_UP, on the final total.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from collections.abc import Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Decimal | int | str | float | None) -> Decimal:
    """
    Convert a stored or user-supplied amount to Decimal.

    Floats go through ``str`` so 8.99 stays 8.99 instead of its binary
    approximation.
    """
    if value is None:
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount


def round_money(value: Decimal | int | str | float | None) -> Decimal:
    """Round half-up to cents. ValueError for NaN, infinity and out-of-range amounts."""
    try:
        return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError(f"Not a monetary amount: {value!r}") from e


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    """Exact line total; both factors are already at cent precision."""
    return to_decimal(unit_price) * quantity


@dataclass(frozen=True)
class SessionTotals:
    """
    Aggregate totals of one dining session.

    ``tax`` and ``service_charge`` are unrounded; ``total`` is the only
    rounded figure.
    """

    subtotal: Decimal
    tax: Decimal
    service_charge: Decimal
    total: Decimal

    def grand_total(self, tip: Decimal) -> Decimal:
        return self.total + round_money(tip)


def compute_totals(
    line_totals: Iterable[Decimal],
    tax_rate: Decimal,
    service_charge_rate: Decimal,
) -> SessionTotals:
    """
    subtotal = sum of line totals
    tax = subtotal x tax_rate
    service charge = subtotal x service_charge_rate
    total = round_half_up(subtotal + tax + service charge)
    """
    subtotal = sum((to_decimal(t) for t in line_totals), ZERO)
    tax = subtotal * to_decimal(tax_rate)
    service_charge = subtotal * to_decimal(service_charge_rate)
    total = round_money(subtotal + tax + service_charge)
    return SessionTotals(
        subtotal=subtotal,
        tax=tax,
        service_charge=service_charge,
        total=total,
    )
