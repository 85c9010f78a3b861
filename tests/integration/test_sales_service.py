"""
Integration tests for the stock reconciler against SQLite.
"""

import pytest
from decimal import Decimal

from app.exceptions import (
    BusinessLogicError, InsufficientStockError, InvalidTransitionError, NotFoundError, PersistenceError
)
from app.models import Sale, SaleStatus
from app.services import cart_service, sales_service
from app.stores import SaleStore


def _cart(products, **quantities):
    cart = cart_service.new_cart()
    for product_id, qty in quantities.items():
        cart = cart_service.add_product(cart, products[product_id], [], qty)
    return cart


def _checkout(session, cart, promotions=(), **kwargs):
    return sales_service.checkout(cart, {'customer_name': 'Noy'}, session, list(promotions), **kwargs)


class TestCheckout:
    """Tests for committing a cart."""

    def test_completed_sale_deducts_stock(self, session, products, stock_of):
        sale = _checkout(session, _cart(products, p1=3, p2=2))

        assert sale.status == SaleStatus.COMPLETED
        assert sale.id.startswith('INV-')
        assert stock_of('p1') == 7
        assert stock_of('p2') == 3
        assert sale.total == Decimal('370.00')
        assert sale.customer_name == 'Noy'

    def test_snapshot_keeps_prices_as_sold(self, session, products):
        sale = _checkout(session, _cart(products, p1=1))
        products['p1'].price = Decimal('999')
        session.commit()

        line = sale.line_items()[0]
        assert line['unit_price'] == Decimal('100')
        assert line['cost'] == Decimal('60')

    def test_checkout_reprices_with_current_promotions(self, session, products, tiered_promotion, stock_of):
        from app.services.promotion_service import get_active_promotions

        cart = _cart(products, p1=6)
        # cart was priced without promotions
        assert cart['items'][0]['unit_price'] == Decimal('100')

        sale = _checkout(session, cart, get_active_promotions(session))
        assert sale.line_items()[0]['unit_price'] == Decimal('90')
        assert sale.subtotal == Decimal('540.00')
        assert sale.profit == Decimal('180.00')

    def test_pending_sale_leaves_stock(self, session, products, stock_of):
        sale = _checkout(session, _cart(products, p1=3), auto_complete=False)
        assert sale.status == SaleStatus.PENDING
        assert stock_of('p1') == 10

    def test_explicit_order_status_overrides_default(self, session, products):
        sale = _checkout(session, _cart(products, p1=1), auto_complete=True, order_status='Pending')
        assert sale.status == SaleStatus.PENDING

    def test_empty_cart_rejected(self, session, products):
        with pytest.raises(BusinessLogicError):
            _checkout(session, cart_service.new_cart())

    def test_insufficient_stock_rejected_without_mutation(self, session, products, stock_of):
        with pytest.raises(InsufficientStockError) as exc_info:
            _checkout(session, _cart(products, p1=2, p2=6))

        assert exc_info.value.product_id == 'p2'
        assert exc_info.value.shortfall == 1
        assert exc_info.value.to_dict()['shortfall'] == 1
        assert stock_of('p1') == 10
        assert stock_of('p2') == 5
        assert session.query(Sale).count() == 0

    def test_invalid_payment_method_rejected(self, session, products, stock_of):
        with pytest.raises(BusinessLogicError):
            sales_service.checkout(_cart(products, p1=1), {'payment_method': 'Crypto'}, session, [])
        assert stock_of('p1') == 10

    def test_write_failure_rolls_back_everything(self, session, products, stock_of, monkeypatch):
        def broken_commit():
            raise RuntimeError('disk full')

        monkeypatch.setattr(session, 'commit', broken_commit)
        with pytest.raises(PersistenceError):
            _checkout(session, _cart(products, p1=3))
        monkeypatch.undo()

        assert stock_of('p1') == 10
        assert session.query(Sale).count() == 0


class TestValidateStock:
    """Tests for the availability pre-check."""

    def test_exact_stock_allowed(self, products):
        cart = _cart(products, p2=5)
        sales_service.validate_stock(cart['items'], list(products.values()))

    def test_shortfall(self, products):
        cart = _cart(products, p2=6)
        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.validate_stock(cart['items'], products)
        assert exc_info.value.shortfall == 1

    def test_prior_reservation_counts_as_available(self, session, products):
        prior = _checkout(session, _cart(products, p2=4))
        # stock is now 1, but the prior sale holds 4 more
        cart = _cart(products, p2=5)
        sales_service.validate_stock(cart['items'], products, prior)

    def test_unknown_product(self, products):
        line = {'product_id': 'ghost', 'qty': 1}
        with pytest.raises(NotFoundError):
            sales_service.validate_stock([line], products)


class TestCancelSale:
    """Tests for cancellation."""

    def test_cancel_restores_stock(self, session, products, stock_of):
        sale = _checkout(session, _cart(products, p1=3))
        assert stock_of('p1') == 7

        cancelled = sales_service.cancel_sale(sale.id, session)
        assert cancelled.status == SaleStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        assert stock_of('p1') == 10

    def test_cancel_twice_is_noop(self, session, products, stock_of):
        sale = _checkout(session, _cart(products, p1=3))
        sales_service.cancel_sale(sale.id, session)
        again = sales_service.cancel_sale(sale.id, session)

        assert again.status == SaleStatus.CANCELLED
        assert stock_of('p1') == 10

    def test_cancel_missing_sale_is_noop(self, session, products, stock_of):
        assert sales_service.cancel_sale('INV-0', session) is None
        assert stock_of('p1') == 10

    def test_cancel_pending_does_not_touch_stock(self, session, products, stock_of):
        sale = _checkout(session, _cart(products, p1=3), auto_complete=False)
        sales_service.cancel_sale(sale.id, session)
        assert stock_of('p1') == 10

    def test_cancel_after_product_deleted(self, session, products, stock_of):
        from app.services.catalog_service import delete_product

        sale = _checkout(session, _cart(products, p1=1, p2=1))
        delete_product('p2', session)
        sales_service.cancel_sale(sale.id, session)
        assert stock_of('p1') == 10


class TestApproveSale:
    """Tests for Pending -> Completed."""

    def test_approve_deducts(self, session, products, stock_of):
        sale = _checkout(session, _cart(products, p1=4), auto_complete=False)
        approved = sales_service.approve_sale(sale.id, session)
        assert approved.status == SaleStatus.COMPLETED
        assert stock_of('p1') == 6

    def test_approve_checks_current_stock(self, session, products, stock_of):
        sale = _checkout(session, _cart(products, p2=4), auto_complete=False)
        _checkout(session, _cart(products, p2=3))

        with pytest.raises(InsufficientStockError):
            sales_service.approve_sale(sale.id, session)
        assert SaleStore(session).get(sale.id).status == SaleStatus.PENDING
        assert stock_of('p2') == 2

    def test_completed_cannot_be_approved(self, session, products):
        sale = _checkout(session, _cart(products, p1=1))
        with pytest.raises(InvalidTransitionError):
            sales_service.approve_sale(sale.id, session)

    def test_cancelled_cannot_be_approved(self, session, products):
        sale = _checkout(session, _cart(products, p1=1), auto_complete=False)
        sales_service.cancel_sale(sale.id, session)
        with pytest.raises(InvalidTransitionError):
            sales_service.approve_sale(sale.id, session)


class TestEditAndResubmit:
    """Tests for replacing a committed sale."""

    def test_edit_restores_then_deducts(self, session, products, stock_of):
        first = _checkout(session, _cart(products, p1=2))
        assert stock_of('p1') == 8

        cart = sales_service.edit_sale_cart(first.id, session, [])
        assert cart['editing_sale_id'] == first.id
        cart = cart_service.set_quantity(cart, 'p1', 5, [])
        second = _checkout(session, cart)

        assert stock_of('p1') == 5
        session.expire_all()
        old = SaleStore(session).get(first.id)
        assert old.status == SaleStatus.CANCELLED
        assert old.replaced_by_sale_id == second.id
        assert second.status == SaleStatus.COMPLETED
        assert second.replaces_sale_id == first.id

    def test_edit_may_use_units_held_by_prior_sale(self, session, products, stock_of):
        first = _checkout(session, _cart(products, p2=5))
        assert stock_of('p2') == 0

        cart = sales_service.edit_sale_cart(first.id, session, [])
        cart = cart_service.add_product(cart, products['p1'], [], 1)
        _checkout(session, cart)
        assert stock_of('p2') == 0
        assert stock_of('p1') == 9

    def test_edit_rejected_leaves_everything(self, session, products, stock_of):
        first = _checkout(session, _cart(products, p2=2))
        cart = sales_service.edit_sale_cart(first.id, session, [])
        cart = cart_service.set_quantity(cart, 'p2', 8, [])

        with pytest.raises(InsufficientStockError):
            _checkout(session, cart)

        assert stock_of('p2') == 3
        session.expire_all()
        assert SaleStore(session).get(first.id).status == SaleStatus.COMPLETED
        assert session.query(Sale).count() == 1

    def test_edit_of_pending_sale_does_not_restore(self, session, products, stock_of):
        first = _checkout(session, _cart(products, p1=2), auto_complete=False)
        cart = sales_service.edit_sale_cart(first.id, session, [])
        _checkout(session, cart)
        assert stock_of('p1') == 8

    def test_replaced_sale_cannot_be_edited_again(self, session, products):
        first = _checkout(session, _cart(products, p1=1))
        cart = sales_service.edit_sale_cart(first.id, session, [])
        _checkout(session, cart)

        with pytest.raises(BusinessLogicError):
            sales_service.edit_sale_cart(first.id, session, [])
        with pytest.raises(BusinessLogicError) as excinfo:
            _checkout(session, cart)
        assert excinfo.value.status_code == 409
        assert excinfo.value.payload['sale_id'] == first.id
        assert '/sales/cart/clear' in excinfo.value.message

    def test_edit_keeps_original_prices(self, session, products):
        first = _checkout(session, _cart(products, p1=1))
        products['p1'].price = Decimal('120')
        session.commit()

        cart = sales_service.edit_sale_cart(first.id, session, [])
        assert cart['items'][0]['original_price'] == Decimal('100')


class TestSaleDetails:
    """Tests for metadata edits and queries."""

    def test_update_details(self, session, products, stock_of):
        sale = _checkout(session, _cart(products, p1=1))
        updated = sales_service.update_sale_details(
            sale.id, {'payment_status': 'Outstanding', 'logistics': 'HAL'}, session
        )
        assert updated.payment_status == 'Outstanding'
        assert updated.logistics == 'HAL'
        assert stock_of('p1') == 9

    def test_update_refuses_items_and_status(self, session, products):
        sale = _checkout(session, _cart(products, p1=1))
        with pytest.raises(BusinessLogicError):
            sales_service.update_sale_details(sale.id, {'status': 'Cancelled'}, session)
        with pytest.raises(BusinessLogicError):
            sales_service.update_sale_details(sale.id, {'items': []}, session)

    def test_update_missing_sale(self, session):
        with pytest.raises(NotFoundError):
            sales_service.update_sale_details('INV-0', {'logistics': 'HAL'}, session)

    def test_list_by_status(self, session, products):
        _checkout(session, _cart(products, p1=1))
        pending = _checkout(session, _cart(products, p1=1), auto_complete=False)

        assert [s.id for s in sales_service.list_sales(session, 'Pending')] == [pending.id]
        assert len(sales_service.list_sales(session)) == 2
        with pytest.raises(BusinessLogicError):
            sales_service.list_sales(session, 'Archived')

    def test_get_missing_sale(self, session):
        with pytest.raises(NotFoundError):
            sales_service.get_sale('INV-0', session)
