"""Models package - exports all SQLAlchemy models."""
from app.models.product import Product
from app.models.promotion import Promotion
from app.models.sale import Sale, SaleStatus, PaymentMethod, PaymentStatus, SNAPSHOT_MONEY_FIELDS

__all__ = [
    'Product', 'Promotion',
    'Sale', 'SaleStatus', 'PaymentMethod', 'PaymentStatus', 'SNAPSHOT_MONEY_FIELDS',
]
