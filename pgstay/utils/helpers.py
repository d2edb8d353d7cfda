from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable


def money(value) -> float:
    """Round to 2 decimals with half-up rounding."""
    return float(Decimal(str(value or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def money_sum(values: Iterable) -> float:
    total = Decimal("0")
    for value in values:
        total += Decimal(str(value or 0))
    return money(total)


def percentage(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def average(values: Iterable, places: str = "0.1") -> float:
    """Half-up rounded mean; 0.0 for no values."""
    items = [Decimal(str(v)) for v in values]
    if not items:
        return 0.0
    return float((sum(items) / len(items)).quantize(Decimal(places), rounding=ROUND_HALF_UP))
