"""Tests for order pricing."""

import pytest

from storefront.errors import ValidationError
from storefront.pricing import compute_pricing, shipping_cost, to_minor_units


class TestComputePricing:
    def test_express_order_of_1000(self):
        pricing = compute_pricing(1000.0, "express")

        assert pricing.subtotal == 1000.0
        assert pricing.tax == 180.0
        assert pricing.shipping == 200.0
        assert pricing.total == 1380.0

    @pytest.mark.parametrize(
        "subtotal,method",
        [(0.0, "standard"), (99.99, "standard"), (1234.56, "overnight"), (19.5, "express")],
    )
    def test_total_is_subtotal_plus_tax_plus_shipping(self, subtotal, method):
        pricing = compute_pricing(subtotal, method)

        expected = subtotal + subtotal * 0.18 + shipping_cost(method)
        assert pricing.total == pytest.approx(expected, abs=0.01)

    def test_custom_tax_rate_and_rates(self):
        pricing = compute_pricing(200.0, "pickup", tax_rate=0.05, rates={"pickup": 0.0})

        assert pricing.tax == 10.0
        assert pricing.total == 210.0

    def test_amounts_rounded_to_paise(self):
        pricing = compute_pricing(10.333, "standard")

        assert pricing.subtotal == 10.33
        assert pricing.tax == 1.86


class TestShippingCost:
    def test_default_tiers(self):
        assert shipping_cost("standard") == 100.0
        assert shipping_cost("express") == 200.0
        assert shipping_cost("overnight") == 500.0

    def test_unknown_method_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            shipping_cost("teleport")

        assert exc_info.value.field == "shipping.method"


class TestMinorUnits:
    def test_conversion(self):
        assert to_minor_units(1380.0) == 138000
        assert to_minor_units(0.1 + 0.2) == 30
        assert to_minor_units(19.99) == 1999
