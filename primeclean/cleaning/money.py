"""Money arithmetic shared by bookings, invoices and reports.

All amounts are handled as :class:`~decimal.Decimal` values quantized to
cents with half-up rounding. Values read back from SQLite are floats, so they
go through :func:`to_money` before any arithmetic.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, NamedTuple

from .errors import ValidationError

CENT = Decimal("0.01")
TAX_RATE = Decimal("0.07")
DEFAULT_BASE_AREA_SQM = Decimal("100")
MAX_AMOUNT = Decimal("10000000")
MAX_SQUARE_METERS = Decimal("100000")


class TaxBreakdown(NamedTuple):
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def to_money(value: Any) -> Decimal:
    """Convert ``value`` to a Decimal rounded to cents."""

    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc


def as_float(amount: Decimal) -> float:
    return float(amount.quantize(CENT, rounding=ROUND_HALF_UP))


def forward_tax(subtotal: Any) -> TaxBreakdown:
    """Apply sales tax on top of a known subtotal."""

    base = to_money(subtotal)
    tax = (base * TAX_RATE).quantize(CENT, rounding=ROUND_HALF_UP)
    return TaxBreakdown(base, TAX_RATE, tax, base + tax)


def reverse_tax(total: Any) -> TaxBreakdown:
    """Split a tax-inclusive total into subtotal and tax.

    The total is kept as given; the tax is whatever remains after rounding
    the subtotal, so ``subtotal + tax_amount`` always equals the total.
    """

    gross = to_money(total)
    base = (gross / (Decimal("1") + TAX_RATE)).quantize(CENT, rounding=ROUND_HALF_UP)
    return TaxBreakdown(base, TAX_RATE, gross - base, gross)


def exempt(amount: Any) -> TaxBreakdown:
    base = to_money(amount)
    return TaxBreakdown(base, Decimal("0"), Decimal("0.00"), base)


def price_for(
    base_price: Any,
    square_meters: Any,
    *,
    base_area_sqm: Any = DEFAULT_BASE_AREA_SQM,
) -> Decimal:
    """Return the job price for a service and a floor area.

    The base price covers up to ``base_area_sqm``; larger areas scale the
    price linearly.
    """

    try:
        area = Decimal(str(square_meters))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Square meters must be a number") from exc
    if not area.is_finite() or area <= 0:
        raise ValidationError("Square meters must be greater than zero")
    if area > MAX_SQUARE_METERS:
        raise ValidationError(f"Square meters must not exceed {MAX_SQUARE_METERS}")
    included = Decimal(str(base_area_sqm))
    multiplier = max(Decimal("1"), area / included)
    try:
        price = (to_money(base_price) * multiplier).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError("Price is out of range") from exc
    if price > MAX_AMOUNT:
        raise ValidationError(f"Price must not exceed {MAX_AMOUNT}")
    return price


def money_sum(values: Any) -> Decimal:
    return sum((to_money(value) for value in values), Decimal("0.00"))
