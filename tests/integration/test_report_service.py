"""
Integration tests for the sales report.
"""

from decimal import Decimal

from app.services import cart_service, sales_service
from app.services.report_service import get_sales_report


def _sell(session, product, qty, customer='Walk-in', **kwargs):
    cart = cart_service.add_product(cart_service.new_cart(), product, [], qty)
    return sales_service.checkout(cart, {'customer_name': customer}, session, [], **kwargs)


class TestSalesReport:
    """Tests for the aggregated figures."""

    def test_empty(self, session):
        report = get_sales_report(session)
        assert report['sale_count'] == 0
        assert report['revenue'] == Decimal('0')
        assert report['status_counts'] == {'Pending': 0, 'Completed': 0, 'Cancelled': 0}

    def test_figures_exclude_cancelled(self, session, products):
        _sell(session, products['p1'], 2, customer='Mali')
        _sell(session, products['p2'], 1, customer='Khamla')
        cancelled = _sell(session, products['p1'], 1, customer='Mali')
        sales_service.cancel_sale(cancelled.id, session)

        report = get_sales_report(session)
        assert report['sale_count'] == 2
        assert report['revenue'] == Decimal('235.00')
        assert report['cost'] == Decimal('140.00')
        assert report['profit'] == Decimal('95.00')
        assert report['status_counts']['Cancelled'] == 1
        assert report['top_customers'][0] == {'name': 'Mali', 'total': Decimal('200.00')}

    def test_pending_sales_count_as_revenue(self, session, products):
        _sell(session, products['p1'], 1, auto_complete=False)
        report = get_sales_report(session)
        assert report['sale_count'] == 1
        assert report['status_counts']['Pending'] == 1

    def test_stock_value_and_low_stock(self, session, products):
        report = get_sales_report(session, low_stock_threshold=5)
        # 10 * 60 + 5 * 20 + 0 * 8
        assert report['stock_value'] == Decimal('700.00')
        assert [p['id'] for p in report['low_stock_products']] == ['p3', 'p2']
