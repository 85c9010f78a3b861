"""Product model."""
from sqlalchemy import Column, String, Integer, Numeric, DateTime
from sqlalchemy.sql import func
from app.database import Base


class Product(Base):
    """Catalog entry. The id is the product code shown on shelves and receipts."""

    __tablename__ = 'product'

    id = Column(String(64), primary_key=True)
    name = Column(String, nullable=False)
    cost = Column(Numeric(12, 2), nullable=False, default=0)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    category = Column(String, nullable=False, default='General')
    stock = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'cost': self.cost,
            'price': self.price,
            'category': self.category,
            'stock': self.stock,
        }

    def __repr__(self):
        return f"<Product(id='{self.id}', name='{self.name}', stock={self.stock})>"
