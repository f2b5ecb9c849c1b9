"""Order pricing: tax, shipping tiers and currency conversion."""

from .config import DEFAULT_SHIPPING_RATES
from .errors import ValidationError
from .models import Pricing

DEFAULT_TAX_RATE = 0.18  # GST


def shipping_cost(method: str, rates: dict[str, float] | None = None) -> float:
    """
    Look up the shipping charge for a shipping method.

    Raises:
        ValidationError: If the method has no configured rate.
    """
    table = DEFAULT_SHIPPING_RATES if rates is None else rates
    if method not in table:
        raise ValidationError(
            f"Unknown shipping method '{method}'. "
            f"Expected one of: {', '.join(sorted(table))}",
            field="shipping.method",
        )
    return float(table[method])


def compute_pricing(
    subtotal: float,
    shipping_method: str,
    tax_rate: float = DEFAULT_TAX_RATE,
    rates: dict[str, float] | None = None,
) -> Pricing:
    """Compute the pricing breakdown; total = subtotal + tax + shipping."""
    subtotal = round(subtotal, 2)
    tax = round(subtotal * tax_rate, 2)
    shipping = shipping_cost(shipping_method, rates)
    return Pricing(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total=round(subtotal + tax + shipping, 2),
    )


def to_minor_units(amount: float) -> int:
    """Convert a major-unit amount (rupees) to the smallest unit (paise)."""
    return int(round(amount * 100))
