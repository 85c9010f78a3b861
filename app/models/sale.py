"""Sale model (committed transaction record)."""
from decimal import Decimal
from sqlalchemy import Column, String, Numeric, DateTime, Enum, JSON
from sqlalchemy.sql import func
from app.database import Base
import enum


class SaleStatus(str, enum.Enum):
    """Sale status enum."""
    PENDING = "Pending"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PaymentMethod(str, enum.Enum):
    """Payment method enum."""
    CASH = "Cash"
    TRANSFER = "Transfer"
    COD = "COD"


class PaymentStatus(str, enum.Enum):
    """Payment status enum."""
    PAID = "Paid"
    OUTSTANDING = "Outstanding"


# Money fields inside the JSON item snapshot
SNAPSHOT_MONEY_FIELDS = ('cost', 'original_price', 'unit_price', 'discount_value')


class Sale(Base):
    """
    Sale record (venta).

    ``items`` is the priced cart exactly as sold; money values are stored as
    strings. A sale in ``CANCELLED`` status has had its stock effect reversed
    and is never touched again by the stock reconciler.
    """

    __tablename__ = 'sale'

    id = Column(String(64), primary_key=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    items = Column(JSON, nullable=False, default=list)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    item_discount_total = Column(Numeric(12, 2), nullable=False, default=0)
    bill_discount_type = Column(String(20), nullable=True)
    bill_discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    bill_discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    profit = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(Enum(SaleStatus, name='sale_status'), nullable=False, default=SaleStatus.COMPLETED)
    payment_method = Column(String(20), nullable=False, default=PaymentMethod.CASH.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PAID.value)

    customer_name = Column(String, nullable=False, default='Walk-in')
    customer_phone = Column(String, nullable=True)
    customer_address = Column(String, nullable=True)
    logistics = Column(String, nullable=True)
    destination_branch = Column(String, nullable=True)

    # Edit-and-resubmit links
    replaces_sale_id = Column(String(64), nullable=True)
    replaced_by_sale_id = Column(String(64), nullable=True)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def line_items(self):
        """Snapshot lines with money converted back to Decimal."""
        lines = []
        for raw in self.items or []:
            line = dict(raw)
            for field in SNAPSHOT_MONEY_FIELDS:
                if line.get(field) is not None:
                    line[field] = Decimal(str(line[field]))
            line['qty'] = int(line['qty'])
            lines.append(line)
        return lines

    def reserved_quantities(self):
        """Units per product this sale holds against stock (0 unless Completed)."""
        reserved = {}
        if self.status != SaleStatus.COMPLETED:
            return reserved
        for line in self.items or []:
            pid = line['product_id']
            reserved[pid] = reserved.get(pid, 0) + int(line['qty'])
        return reserved

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'items': self.line_items(),
            'subtotal': self.subtotal,
            'item_discount_total': self.item_discount_total,
            'bill_discount_type': self.bill_discount_type,
            'bill_discount_value': self.bill_discount_value,
            'bill_discount_amount': self.bill_discount_amount,
            'total': self.total,
            'profit': self.profit,
            'status': self.status.value,
            'payment_method': self.payment_method,
            'payment_status': self.payment_status,
            'customer_name': self.customer_name,
            'customer_phone': self.customer_phone,
            'customer_address': self.customer_address,
            'logistics': self.logistics,
            'destination_branch': self.destination_branch,
            'replaces_sale_id': self.replaces_sale_id,
            'replaced_by_sale_id': self.replaced_by_sale_id,
        }

    def __repr__(self):
        return f"<Sale(id='{self.id}', total={self.total}, status={self.status.value})>"
