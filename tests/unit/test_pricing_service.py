"""
Unit tests for the pricing engine.
"""

import pytest
from decimal import Decimal

from app.exceptions import BusinessLogicError
from app.services.pricing_service import (
    apply_promotions, compute_summary, line_amounts, normalize_discount,
    resolve_unit_price, tier_price, to_decimal
)


def _item(product_id='p1', qty=1, price='100', cost='60', discount_type=None, discount_value='0'):
    return {
        'product_id': product_id,
        'qty': qty,
        'cost': Decimal(cost),
        'original_price': Decimal(price),
        'unit_price': Decimal(price),
        'discount_type': discount_type,
        'discount_value': Decimal(discount_value),
    }


TIERED = {
    'id': 'promo-a',
    'active': True,
    'target_product_ids': ['p1'],
    'tiers': [
        {'min_quantity': 1, 'unit_price': '100'},
        {'min_quantity': 5, 'unit_price': '90'},
        {'min_quantity': 10, 'unit_price': '80'},
    ],
}


class TestTierPrice:
    """Tests for tier selection."""

    @pytest.mark.parametrize('qty, expected', [
        (3, Decimal('100')),
        (5, Decimal('90')),
        (7, Decimal('90')),
        (10, Decimal('80')),
        (12, Decimal('80')),
    ])
    def test_highest_reached_tier_wins(self, qty, expected):
        tiers = [(1, Decimal('100')), (5, Decimal('90')), (10, Decimal('80'))]
        assert tier_price(tiers, qty) == expected

    def test_tier_order_does_not_matter(self):
        tiers = [(10, Decimal('80')), (1, Decimal('100')), (5, Decimal('90'))]
        assert tier_price(tiers, 6) == Decimal('90')

    def test_below_every_tier(self):
        assert tier_price([(3, Decimal('50'))], 2) is None


class TestApplyPromotions:
    """Tests for promotion application."""

    def test_tier_price_applied(self):
        priced = apply_promotions([_item(qty=7)], [TIERED])
        assert priced[0]['unit_price'] == Decimal('90')
        assert priced[0]['promotion_id'] == 'promo-a'

    def test_idempotent(self):
        once = apply_promotions([_item(qty=12), _item('p2', qty=2, price='35')], [TIERED])
        twice = apply_promotions(once, [TIERED])
        assert twice == once

    def test_reverts_to_original_price_when_no_tier_qualifies(self):
        promo = {**TIERED, 'tiers': [{'min_quantity': 5, 'unit_price': '90'}]}
        item = _item(qty=7)
        priced = apply_promotions([item], [promo])
        assert priced[0]['unit_price'] == Decimal('90')

        priced[0]['qty'] = 2
        repriced = apply_promotions(priced, [promo])
        assert repriced[0]['unit_price'] == Decimal('100')
        assert repriced[0]['promotion_id'] is None

    def test_inactive_promotion_ignored(self):
        priced = apply_promotions([_item(qty=12)], [{**TIERED, 'active': False}])
        assert priced[0]['unit_price'] == Decimal('100')

    def test_untargeted_product_keeps_catalog_price(self):
        priced = apply_promotions([_item('p2', qty=12, price='35')], [TIERED])
        assert priced[0]['unit_price'] == Decimal('35')

    def test_promotion_without_tiers_ignored(self):
        priced = apply_promotions([_item(qty=3)], [{**TIERED, 'tiers': []}])
        assert priced[0]['unit_price'] == Decimal('100')

    def test_does_not_mutate_input(self):
        item = _item(qty=12)
        apply_promotions([item], [TIERED])
        assert item['unit_price'] == Decimal('100')

    def test_lowest_price_wins_between_promotions(self):
        other = {'id': 'promo-b', 'active': True, 'target_product_ids': ['p1'],
                 'tiers': [{'min_quantity': 1, 'unit_price': '95'}]}
        price, promo_id = resolve_unit_price(_item(qty=7), [
            {'id': 'promo-b', 'active': True, 'targets': {'p1'}, 'tiers': [(1, Decimal('95'))]},
            {'id': 'promo-a', 'active': True, 'targets': {'p1'},
             'tiers': [(1, Decimal('100')), (5, Decimal('90'))]},
        ])
        assert (price, promo_id) == (Decimal('90'), 'promo-a')

        priced = apply_promotions([_item(qty=2)], [TIERED, other])
        assert priced[0]['unit_price'] == Decimal('95')
        assert priced[0]['promotion_id'] == 'promo-b'

    def test_equal_prices_go_to_smallest_id(self):
        a = {'id': 'promo-z', 'active': True, 'target_product_ids': ['p1'],
             'tiers': [{'min_quantity': 1, 'unit_price': '90'}]}
        b = {**a, 'id': 'promo-m'}
        priced = apply_promotions([_item(qty=1)], [a, b])
        assert priced[0]['promotion_id'] == 'promo-m'


class TestDiscounts:
    """Tests for discount normalization and line amounts."""

    def test_percentage_clamped_to_hundred(self):
        assert normalize_discount({'type': 'percentage', 'value': '150'}) == {
            'type': 'percentage', 'value': Decimal('100')
        }

    def test_negative_value_clamped_to_zero(self):
        assert normalize_discount({'type': 'fixed', 'value': '-5'})['value'] == Decimal('0')

    def test_aliases(self):
        assert normalize_discount({'type': '%', 'value': 10})['type'] == 'percentage'
        assert normalize_discount({'type': 'amount', 'value': 10})['type'] == 'fixed'

    def test_no_discount(self):
        assert normalize_discount(None) is None
        assert normalize_discount({'type': None, 'value': 5}) is None

    def test_unknown_type_rejected(self):
        with pytest.raises(BusinessLogicError):
            normalize_discount({'type': 'bogo', 'value': 1})

    def test_percentage_line_discount(self):
        amounts = line_amounts(_item(qty=2, discount_type='percentage', discount_value='10'))
        assert amounts == {'gross': Decimal('200.00'), 'discount': Decimal('20.00'), 'net': Decimal('180.00')}

    def test_fixed_line_discount_capped_at_line_total(self):
        amounts = line_amounts(_item(qty=1, discount_type='fixed', discount_value='500'))
        assert amounts['discount'] == Decimal('100.00')
        assert amounts['net'] == Decimal('0.00')

    def test_invalid_number(self):
        with pytest.raises(BusinessLogicError):
            to_decimal('abc')


class TestComputeSummary:
    """Tests for order totals."""

    def test_profit_formula(self):
        summary = compute_summary([_item(qty=2, price='100', cost='60')])
        assert summary['subtotal'] == Decimal('200.00')
        assert summary['total'] == Decimal('200.00')
        assert summary['profit'] == Decimal('80.00')

    def test_empty_cart(self):
        summary = compute_summary([], {'type': 'fixed', 'value': '10'})
        assert all(value == Decimal('0') for value in summary.values())

    def test_item_discount_reduces_subtotal(self):
        summary = compute_summary([_item(qty=2, discount_type='fixed', discount_value='30')])
        assert summary['subtotal'] == Decimal('170.00')
        assert summary['item_discount_total'] == Decimal('30.00')

    def test_percentage_bill_discount(self):
        summary = compute_summary([_item(qty=2)], {'type': 'percentage', 'value': '10'})
        assert summary['bill_discount_amount'] == Decimal('20.00')
        assert summary['total'] == Decimal('180.00')
        # cost basis ignores discounts
        assert summary['profit'] == Decimal('60.00')

    @pytest.mark.parametrize('bill', [
        {'type': 'fixed', 'value': '1000'},
        {'type': 'percentage', 'value': '100'},
        {'type': 'percentage', 'value': '250'},
    ])
    def test_total_never_negative(self, bill):
        summary = compute_summary([_item(qty=1), _item('p2', qty=3, price='35')], bill)
        assert summary['total'] == Decimal('0.00')

    def test_profit_can_be_negative(self):
        summary = compute_summary([_item(qty=1, cost='60')], {'type': 'fixed', 'value': '90'})
        assert summary['total'] == Decimal('10.00')
        assert summary['profit'] == Decimal('-50.00')

    def test_rounds_half_up_to_cents(self):
        summary = compute_summary([_item(qty=1, price='10.005', cost='0')])
        assert summary['subtotal'] == Decimal('10.01')
