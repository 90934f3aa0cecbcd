"""
Tests for the pricing calculator.

Tests: subtotal/shipping/total identity, free-shipping threshold, rejection
of empty carts, bad quantities and negative prices.
"""
import pytest

from domain.cart import CartLine, CartSnapshot
from domain.results import ErrorCode
from services.pricing_service import PricingError, ShippingRule, calculate_totals, default_shipping_rule
from tests.factories import snapshot_of

RULE = ShippingRule(flat_fee_minor=160, free_threshold_minor=2160)


class TestShippingThreshold:

    @pytest.mark.unit
    def test_below_threshold_pays_flat_fee(self):
        result = calculate_totals(snapshot_of((1, 1900)), RULE)
        assert result.subtotal_minor == 1900
        assert result.shipping_fee_minor == 160
        assert result.total_minor == 2060

    @pytest.mark.unit
    def test_above_threshold_ships_free(self):
        result = calculate_totals(snapshot_of((1, 2500)), RULE)
        assert result.shipping_fee_minor == 0
        assert result.total_minor == 2500

    @pytest.mark.unit
    def test_exactly_at_threshold_ships_free(self):
        result = calculate_totals(snapshot_of((1, 2160)), RULE)
        assert result.shipping_fee_minor == 0
        assert result.total_minor == 2160

    @pytest.mark.unit
    def test_one_below_threshold_pays_fee(self):
        result = calculate_totals(snapshot_of((1, 2159)), RULE)
        assert result.shipping_fee_minor == 160

    @pytest.mark.unit
    def test_default_rule_comes_from_settings(self):
        rule = default_shipping_rule()
        assert rule.flat_fee_minor == 16_000
        assert rule.free_threshold_minor == 216_000


class TestTotals:

    @pytest.mark.unit
    def test_total_is_subtotal_plus_shipping(self):
        for lines in [((1, 500), (2, 300)), ((3, 700),), ((1, 0), (1, 1))]:
            result = calculate_totals(snapshot_of(*lines), RULE)
            assert result.subtotal_minor == sum(q * p for q, p in lines)
            assert result.total_minor == result.subtotal_minor + result.shipping_fee_minor

    @pytest.mark.unit
    def test_quantity_multiplies_unit_price(self):
        result = calculate_totals(snapshot_of((3, 800)), RULE)
        assert result.subtotal_minor == 2400
        assert result.shipping_fee_minor == 0

    @pytest.mark.unit
    def test_free_artwork_still_pays_shipping(self):
        result = calculate_totals(snapshot_of((1, 0)), RULE)
        assert result.total_minor == 160


class TestRejections:

    @pytest.mark.unit
    def test_empty_cart(self):
        with pytest.raises(PricingError) as exc:
            calculate_totals(CartSnapshot.of([], "EUR"), RULE)
        assert exc.value.code == ErrorCode.EMPTY_CART

    @pytest.mark.unit
    @pytest.mark.parametrize("quantity", [0, -1])
    def test_quantity_below_one(self, quantity):
        with pytest.raises(PricingError) as exc:
            calculate_totals(snapshot_of((1, 100), (quantity, 100)), RULE)
        assert exc.value.code == ErrorCode.INVALID_QUANTITY

    @pytest.mark.unit
    def test_non_integer_quantity(self):
        snapshot = CartSnapshot.of([CartLine("art-1", 1.5, 100)], "EUR")
        with pytest.raises(PricingError) as exc:
            calculate_totals(snapshot, RULE)
        assert exc.value.code == ErrorCode.INVALID_QUANTITY

    @pytest.mark.unit
    def test_negative_unit_price(self):
        with pytest.raises(PricingError) as exc:
            calculate_totals(snapshot_of((1, -5)), RULE)
        assert exc.value.code == ErrorCode.INVALID_PRICE
