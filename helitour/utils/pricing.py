from typing import Tuple

from helitour.core.config import settings


def calculate_totals(unit_price: int, pax: int) -> Tuple[int, int, int]:
    """Return (subtotal, tax, total_price). Tax is rounded down to the yen."""
    subtotal = unit_price * pax
    tax = subtotal * settings.TAX_RATE_PERCENT // 100
    return subtotal, tax, subtotal + tax
