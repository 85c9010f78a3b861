import pytest
from decimal import Decimal

from app import create_app
from app.database import get_session, create_tables, drop_tables
from app.services import catalog_service


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite, no cache, no CSRF)."""
    app = create_app('config.TestingConfig')
    return app


@pytest.fixture(scope='function')
def client(app, session):
    """Create test client on a clean database."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session on freshly created tables."""
    drop_tables()
    create_tables()
    session = get_session()
    yield session
    session.rollback()
    session.remove()


@pytest.fixture(scope='function')
def products(session):
    """Small catalog: ids p1, p2, p3."""
    rows = [
        {'id': 'p1', 'name': 'Rice 5kg', 'cost': Decimal('60'), 'price': Decimal('100'),
         'category': 'Food', 'stock': 10},
        {'id': 'p2', 'name': 'Fish Sauce', 'cost': Decimal('20'), 'price': Decimal('35'),
         'category': 'Food', 'stock': 5},
        {'id': 'p3', 'name': 'Soap', 'cost': Decimal('8'), 'price': Decimal('15'),
         'category': 'Home', 'stock': 0},
    ]
    return {row['id']: catalog_service.create_product(row, session) for row in rows}


@pytest.fixture(scope='function')
def tiered_promotion(session, products):
    """Tiers 1 -> 100, 5 -> 90, 10 -> 80 on p1."""
    from app.services.promotion_service import create_promotion
    return create_promotion({
        'id': 'promo-rice',
        'name': 'Rice bulk price',
        'target_product_ids': ['p1'],
        'tiers': [
            {'min_quantity': 1, 'unit_price': '100'},
            {'min_quantity': 5, 'unit_price': '90'},
            {'min_quantity': 10, 'unit_price': '80'},
        ],
    }, session)


@pytest.fixture(scope='function')
def stock_of(session):
    """Committed stock of a product, read fresh from the database."""
    from app.models import Product

    def read(product_id):
        session.expire_all()
        return session.get(Product, product_id).stock
    return read
