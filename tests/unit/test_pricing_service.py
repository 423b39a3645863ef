"""
Unit tests for order pricing.
"""
from decimal import Decimal

from orderdesk.services.loyalty_service import LoyaltySettings
from orderdesk.services.pricing_service import (
    AddonSelection, Discount, DiscountType, LineItem,
    calculate_points_to_earn, calculate_subtotal, calculate_totals,
    is_duplicate_points_discount, item_subtotal, resolve_discount_amount, totals_from_subtotal
)


def _item(price, quantity=1, addons=(), weight_grams=None):
    return LineItem(
        product_id=1,
        product_name='Item',
        unit_price=Decimal(price),
        quantity=quantity,
        addons=tuple(addons),
        is_weight_based=weight_grams is not None,
        weight_grams=Decimal(weight_grams) if weight_grams is not None else None,
    )


class TestItemSubtotal:
    """Tests for per-line pricing."""

    def test_addons_are_multiplied_by_item_quantity(self):
        item = _item('10', quantity=3, addons=[AddonSelection(addon_id=1, title='Card', price=Decimal('2'))])

        assert item_subtotal(item) == Decimal('36')
        assert item.total_price == Decimal('36')

    def test_addon_quantity_counts_per_unit(self):
        item = _item('5', quantity=2, addons=[
            AddonSelection(addon_id=1, title='Card', price=Decimal('2'), quantity=2),
            AddonSelection(addon_id=2, title='Ribbon', price=Decimal('1.50')),
        ])

        # 5*2 + (2*2 + 1.5) * 2
        assert item_subtotal(item) == Decimal('21.00')

    def test_weight_item_uses_unit_price_once(self):
        item = LineItem(
            product_id=1, product_name='Coffee', unit_price=Decimal('6.00'), quantity=4,
            is_weight_based=True, weight_grams=Decimal('250')
        )

        assert item_subtotal(item) == Decimal('6.00')

    def test_subtotal_sums_items(self):
        assert calculate_subtotal([_item('10', 2), _item('3.33', 3)]) == Decimal('29.99')
        assert calculate_subtotal([]) == Decimal('0')


class TestDiscounts:
    """Tests for manual discount resolution."""

    def test_percentage_discount(self):
        discount = Discount(type=DiscountType.PERCENTAGE, value=Decimal('10'))
        assert resolve_discount_amount(Decimal('100'), discount) == Decimal('10')

    def test_amount_discount(self):
        discount = Discount(type=DiscountType.AMOUNT, value=Decimal('7.50'))
        assert resolve_discount_amount(Decimal('100'), discount) == Decimal('7.50')

    def test_no_discount(self):
        assert resolve_discount_amount(Decimal('100'), None) == Decimal('0')

    def test_percentage_matches_subtotal_share(self):
        subtotal = Decimal('123.45')
        for p in (0, 1, 33, 50, 99, 100):
            discount = Discount(type=DiscountType.PERCENTAGE, value=Decimal(p))
            assert resolve_discount_amount(subtotal, discount) == subtotal * Decimal(p) / Decimal('100')


class TestCalculateTotals:
    """Tests for the full totals computation."""

    def test_percentage_discount_tax_and_shipping(self):
        totals = calculate_totals(
            [_item('100')],
            discount=Discount(type=DiscountType.PERCENTAGE, value=Decimal('10')),
            tax_rate=Decimal('8'),
            shipping_amount=Decimal('5'),
        )

        assert totals.subtotal == Decimal('100')
        assert totals.discount_amount == Decimal('10')
        assert totals.tax_amount == Decimal('7.2')
        assert totals.total_amount == Decimal('102.2')
        assert totals.to_dict()['total_amount'] == Decimal('102.20')

    def test_total_equals_subtotal_without_adjustments(self):
        items = [_item('19.99', 2), _item('0.01', 5)]
        totals = calculate_totals(items)

        assert totals.total_amount == totals.subtotal == Decimal('40.03')

    def test_coupon_and_points_reduce_taxable_base(self):
        totals = calculate_totals(
            [_item('50')],
            coupon_discount_amount=Decimal('5'),
            points_discount_amount=Decimal('5'),
            tax_rate=Decimal('10'),
        )

        assert totals.discounted_subtotal == Decimal('40')
        assert totals.tax_amount == Decimal('4')
        assert totals.total_amount == Decimal('44')

    def test_negative_base_is_clamped_before_tax(self):
        totals = calculate_totals(
            [_item('20')],
            discount=Discount(type=DiscountType.AMOUNT, value=Decimal('30')),
            tax_rate=Decimal('21'),
            shipping_amount=Decimal('4.99'),
        )

        assert totals.discounted_subtotal == Decimal('-10')
        assert totals.tax_amount == Decimal('0')
        assert totals.total_amount == Decimal('4.99')

    def test_full_precision_until_display(self):
        totals = calculate_totals([_item('0.333', 3)], tax_rate=Decimal('10'))

        assert totals.subtotal == Decimal('0.999')
        assert totals.to_dict()['subtotal'] == Decimal('1.00')
        assert totals.to_dict()['tax_amount'] == Decimal('0.10')


class TestDuplicatePointsDiscount:
    """Tests for the edit-flow duplicate discount rule."""

    def test_detects_mirror_within_a_cent(self):
        assert is_duplicate_points_discount(Decimal('5.00'), Decimal('5.005')) is True
        assert is_duplicate_points_discount(Decimal('5.00'), Decimal('5.01')) is False
        assert is_duplicate_points_discount(Decimal('0'), Decimal('0')) is False

    def test_dropped_only_when_enabled(self):
        kwargs = dict(discount_amount=Decimal('5'), points_discount_amount=Decimal('5'))

        kept = totals_from_subtotal(Decimal('100'), **kwargs)
        deduped = totals_from_subtotal(Decimal('100'), dedupe_points_discount=True, **kwargs)

        assert kept.total_amount == Decimal('90')
        assert kept.duplicate_discount_dropped is False
        assert deduped.discount_amount == Decimal('0')
        assert deduped.total_amount == Decimal('95')
        assert deduped.duplicate_discount_dropped is True


class TestPointsToEarn:
    """Tests for earned points."""

    def test_disabled_loyalty_earns_nothing(self):
        totals = calculate_totals([_item('100')])
        assert calculate_points_to_earn(totals, LoyaltySettings(enabled=False)) == 0

    def test_earning_basis(self):
        totals = calculate_totals([_item('100')], shipping_amount=Decimal('20.75'))

        on_subtotal = LoyaltySettings(enabled=True, earning_rate=Decimal('1'), earning_basis='subtotal')
        on_total = LoyaltySettings(enabled=True, earning_rate=Decimal('1'), earning_basis='total')

        assert calculate_points_to_earn(totals, on_subtotal) == 100
        assert calculate_points_to_earn(totals, on_total) == 120

    def test_minimum_order(self):
        totals = calculate_totals([_item('49.99')])
        settings = LoyaltySettings(enabled=True, minimum_order=Decimal('50'))

        assert calculate_points_to_earn(totals, settings) == 0
