"""Promotion model (tiered quantity pricing)."""
from decimal import Decimal
from sqlalchemy import Column, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from app.database import Base


class Promotion(Base):
    """
    Quantity-tier pricing rule.

    ``tiers`` is stored as a JSON list of ``{"min_quantity": int, "unit_price": str}``;
    money is kept as strings so JSON never sees a float.
    """

    __tablename__ = 'promotion'

    id = Column(String(64), primary_key=True)
    name = Column(String, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    target_product_ids = Column(JSON, nullable=False, default=list)
    tiers = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def tier_list(self):
        """Tiers with Decimal prices, in stored order."""
        return [
            {'min_quantity': int(t['min_quantity']), 'unit_price': Decimal(str(t['unit_price']))}
            for t in (self.tiers or [])
        ]

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'active': bool(self.active),
            'target_product_ids': list(self.target_product_ids or []),
            'tiers': self.tier_list(),
        }

    def __repr__(self):
        return f"<Promotion(id='{self.id}', name='{self.name}', active={self.active})>"
