"""
Report service.
Aggregated sales and inventory figures for the reports screen.
"""

from decimal import Decimal
from sqlalchemy import func
from app.models import Product, Sale, SaleStatus
from app.services.cache_service import cached, invalidate
from app.services.pricing_service import money, to_decimal

CACHE_MODULE = 'reports'


def _sales_figures(session) -> dict:
    """Revenue, cost and profit over every sale that is not Cancelled."""
    valid_sales = session.query(Sale).filter(Sale.status != SaleStatus.CANCELLED).all()

    revenue = Decimal('0')
    cost = Decimal('0')
    customers = {}
    for sale in valid_sales:
        total = to_decimal(sale.total)
        revenue += total
        for line in sale.line_items():
            cost += to_decimal(line.get('cost')) * line['qty']
        customers[sale.customer_name] = customers.get(sale.customer_name, Decimal('0')) + total

    return {
        'sale_count': len(valid_sales),
        'revenue': money(revenue),
        'cost': money(cost),
        'profit': money(revenue - cost),
        'customers': customers,
    }


def get_sales_report(session, low_stock_threshold: int = 10, top_customers: int = 5) -> dict:
    """
    Build the sales report.

    Returns:
        dict with keys:
            - sale_count, revenue, cost, profit (non-cancelled sales)
            - status_counts: {status: count}
            - stock_value: sum of stock * cost
            - top_customers: [{name, total}] by revenue
            - low_stock_products: products at or under the threshold
    """
    figures = _sales_figures(session)

    status_counts = {status.value: 0 for status in SaleStatus}
    for status, count in session.query(Sale.status, func.count(Sale.id)).group_by(Sale.status).all():
        status_counts[status.value] = count

    stock_value = Decimal('0')
    for product in session.query(Product).all():
        stock_value += to_decimal(product.cost) * product.stock

    low_stock = (
        session.query(Product)
        .filter(Product.stock <= low_stock_threshold)
        .order_by(Product.stock, Product.name)
        .all()
    )

    ranked = sorted(figures['customers'].items(), key=lambda kv: (-kv[1], kv[0]))[:top_customers]

    return {
        'sale_count': figures['sale_count'],
        'revenue': figures['revenue'],
        'cost': figures['cost'],
        'profit': figures['profit'],
        'status_counts': status_counts,
        'stock_value': money(stock_value),
        'top_customers': [{'name': name, 'total': money(total)} for name, total in ranked],
        'low_stock_products': [p.to_dict() for p in low_stock],
    }


def get_cached_sales_report(session, low_stock_threshold: int = 10) -> dict:
    return cached(
        CACHE_MODULE, f'summary:{low_stock_threshold}',
        lambda: get_sales_report(session, low_stock_threshold),
        ttl_setting='CACHE_REPORTS_TTL'
    )


def invalidate_reports_cache(ids=None) -> None:
    invalidate(CACHE_MODULE)
