"""
Sales service with transactional stock logic.

Handles checkout, approval, cancellation and edit-and-resubmit of sales while
keeping product stock equal to the net effect of every Completed sale:

- Pending: stock untouched.
- Completed: each line's quantity deducted exactly once.
- Cancelled: a Completed sale's deduction restored exactly once; terminal.

Every operation validates first, then mutates products and sales in the same
session and commits once. Any failure rolls the whole session back.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from app.exceptions import (
    BusinessLogicError, NotFoundError, InsufficientStockError,
    InvalidTransitionError, PersistenceError
)
from app.models import Product, Sale, SaleStatus, PaymentMethod, PaymentStatus, SNAPSHOT_MONEY_FIELDS
from app.services import cart_service
from app.services.pricing_service import compute_summary, normalize_discount
from app.stores import ProductStore, SaleStore

logger = logging.getLogger(__name__)

# Fields editable on an existing sale without touching stock
DETAIL_FIELDS = (
    'customer_name', 'customer_phone', 'customer_address',
    'logistics', 'destination_branch', 'payment_method', 'payment_status',
)

_SNAPSHOT_FIELDS = (
    'product_id', 'name', 'category', 'qty', 'cost', 'original_price',
    'unit_price', 'discount_type', 'discount_value', 'promotion_id',
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _quantities(lines: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Total requested units per product."""
    totals: Dict[str, int] = {}
    for line in lines:
        qty = line['qty']
        if not isinstance(qty, int) or qty <= 0:
            raise BusinessLogicError(f'Invalid quantity {qty!r} for product {line["product_id"]}')
        totals[line['product_id']] = totals.get(line['product_id'], 0) + qty
    return totals


def validate_stock(cart_items: List[Dict[str, Any]],
                   products: Union[Dict[str, Product], Iterable[Product]],
                   prior_sale: Optional[Sale] = None) -> None:
    """
    Raise InsufficientStockError unless every line fits in available stock.

    Units already held by ``prior_sale`` (the sale being replaced) count as
    available. Never mutates anything.
    """
    if not isinstance(products, dict):
        products = {p.id: p for p in products}
    reserved = prior_sale.reserved_quantities() if prior_sale is not None else {}

    for product_id, qty in _quantities(cart_items).items():
        product = products.get(product_id)
        if product is None:
            raise NotFoundError(f'Product {product_id} not found')
        available = product.stock + reserved.get(product_id, 0)
        if qty > available:
            raise InsufficientStockError(product_id, product.name, qty, available)


def _apply_stock(store: ProductStore, products: Dict[str, Product], deltas: Dict[str, int]) -> None:
    for product_id, delta in deltas.items():
        product = products.get(product_id)
        if product is None:
            logger.warning(f"[SALES] Product {product_id} no longer exists; stock change of {delta} skipped")
            continue
        store.save(product_id, {'stock': product.stock + delta})


def _snapshot(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    lines = []
    for item in items:
        line = {field: item.get(field) for field in _SNAPSHOT_FIELDS}
        for field in SNAPSHOT_MONEY_FIELDS:
            if line.get(field) is not None:
                line[field] = str(line[field])
        lines.append(line)
    return lines


def _clean_details(metadata: Dict[str, Any]) -> Dict[str, Any]:
    details = {}
    for field in DETAIL_FIELDS:
        if field not in metadata:
            continue
        value = metadata[field]
        if isinstance(value, str):
            value = value.strip()
        details[field] = value or None

    if 'customer_name' in details and not details['customer_name']:
        details['customer_name'] = 'Walk-in'
    for field, choices in (('payment_method', PaymentMethod), ('payment_status', PaymentStatus)):
        if field not in details:
            continue
        if details[field] is None:
            del details[field]
            continue
        try:
            details[field] = choices(details[field]).value
        except ValueError:
            raise BusinessLogicError(f'Invalid {field.replace("_", " ")}: {details[field]}')
    return details


def generate_sale_id(store: SaleStore) -> str:
    """``INV-<epoch ms>``, suffixed when two sales land in the same millisecond."""
    base = f'INV-{int(time.time() * 1000)}'
    candidate, n = base, 1
    while store.exists(candidate):
        n += 1
        candidate = f'{base}-{n}'
    return candidate


def _run(session: Session, action: str, fn):
    """Run ``fn`` as one unit of work: commit on success, roll back on any error."""
    try:
        result = fn()
        session.commit()
        return result
    except (BusinessLogicError, NotFoundError):
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[SALES] {action} failed")
        raise PersistenceError(f'Error while trying to {action}: {e}') from e


def commit_sale(cart_items: List[Dict[str, Any]],
                summary: Dict[str, Any],
                metadata: Dict[str, Any],
                session: Session,
                status: Union[SaleStatus, str] = SaleStatus.COMPLETED,
                prior_sale_id: Optional[str] = None,
                bill_discount: Optional[Dict[str, Any]] = None) -> Sale:
    """
    Persist a priced cart as a sale and move stock accordingly.

    With ``prior_sale_id`` (edit-and-resubmit) the prior sale's deduction is
    restored and it is marked Cancelled in the same commit that deducts the
    new cart and records the new sale.
    """
    if not cart_items:
        raise BusinessLogicError('The cart is empty')
    status = SaleStatus(status)
    if status == SaleStatus.CANCELLED:
        raise BusinessLogicError('A new sale cannot start out Cancelled')
    details = _clean_details(metadata or {})
    bill = normalize_discount(bill_discount)

    products_store = ProductStore(session)
    sales_store = SaleStore(session)

    def work():
        prior = None
        if prior_sale_id:
            prior = sales_store.get_many([prior_sale_id], for_update=True).get(prior_sale_id)
            if prior is None:
                raise NotFoundError(f'Sale {prior_sale_id} not found')
            if prior.replaced_by_sale_id:
                raise BusinessLogicError(
                    f'Sale {prior_sale_id} was already replaced by {prior.replaced_by_sale_id}; '
                    'clear the cart (POST /sales/cart/clear) to start a new sale',
                    status_code=409,
                    payload={'sale_id': prior_sale_id, 'replaced_by_sale_id': prior.replaced_by_sale_id}
                )

        wanted = _quantities(cart_items)
        product_ids = set(wanted)
        if prior is not None:
            product_ids |= set(prior.reserved_quantities())
        products = products_store.get_many(product_ids, for_update=True)

        # Nothing is mutated before this check passes
        validate_stock(cart_items, products, prior)

        sale_id = generate_sale_id(sales_store)
        deltas: Dict[str, int] = {}
        if prior is not None:
            prior_fields = {'replaced_by_sale_id': sale_id}
            if prior.status != SaleStatus.CANCELLED:
                # Pending sales reserve nothing, so only Completed ones give stock back
                for pid, qty in prior.reserved_quantities().items():
                    deltas[pid] = deltas.get(pid, 0) + qty
                prior_fields.update(status=SaleStatus.CANCELLED, cancelled_at=_now())
            sales_store.save(prior.id, prior_fields)
        if status == SaleStatus.COMPLETED:
            for pid, qty in wanted.items():
                deltas[pid] = deltas.get(pid, 0) - qty
        _apply_stock(products_store, products, {k: v for k, v in deltas.items() if v})

        fields = {
            'timestamp': _now(),
            'items': _snapshot(cart_items),
            'subtotal': summary['subtotal'],
            'item_discount_total': summary.get('item_discount_total', 0),
            'bill_discount_type': bill['type'] if bill else None,
            'bill_discount_value': bill['value'] if bill else 0,
            'bill_discount_amount': summary.get('bill_discount_amount', 0),
            'total': summary['total'],
            'profit': summary['profit'],
            'status': status,
            'replaces_sale_id': prior.id if prior is not None else None,
            **details,
        }
        return sales_store.save(sale_id, fields, merge=False)

    sale = _run(session, 'commit sale', work)
    logger.info(
        f"[SALES] Committed {sale.id} status={status.value} total={sale.total}"
        + (f" replacing {prior_sale_id}" if prior_sale_id else "")
    )
    return sale


def checkout(cart: Dict[str, Any], metadata: Dict[str, Any], session: Session,
             promotions: Iterable[Any], auto_complete: bool = True,
             order_status: Optional[str] = None) -> Sale:
    """
    Re-price the cart against the current promotions and commit it.

    ``order_status`` (Pending/Completed) overrides the configured default.
    """
    if not cart.get('items'):
        raise BusinessLogicError('The cart is empty. Add products before checking out.')

    if order_status:
        try:
            status = SaleStatus(order_status)
        except ValueError:
            raise BusinessLogicError(f'Invalid order status: {order_status}')
    else:
        status = SaleStatus.COMPLETED if auto_complete else SaleStatus.PENDING

    priced = cart_service.reprice(cart, promotions)
    summary = compute_summary(priced['items'], priced.get('bill_discount'))
    return commit_sale(
        priced['items'], summary, metadata, session,
        status=status,
        prior_sale_id=priced.get('editing_sale_id'),
        bill_discount=priced.get('bill_discount'),
    )


def cancel_sale(sale_id: str, session: Session) -> Optional[Sale]:
    """
    Cancel a sale, restoring stock if it was Completed.

    Unknown or already Cancelled sales are left alone (returns the sale, or None).
    """
    products_store = ProductStore(session)
    sales_store = SaleStore(session)

    sale = sales_store.get_many([sale_id], for_update=True).get(sale_id)
    if sale is None or sale.status == SaleStatus.CANCELLED:
        logger.info(f"[SALES] Cancel of {sale_id} ignored (missing or already cancelled)")
        session.rollback()
        return sale

    def work():
        deltas = sale.reserved_quantities()
        if deltas:
            products = products_store.get_many(deltas, for_update=True)
            _apply_stock(products_store, products, deltas)
        return sales_store.save(sale.id, {'status': SaleStatus.CANCELLED, 'cancelled_at': _now()})

    previous = sale.status
    sale = _run(session, 'cancel sale', work)
    logger.info(f"[SALES] Cancelled {sale_id} (was {previous.value})")
    return sale


def approve_sale(sale_id: str, session: Session) -> Sale:
    """Pending -> Completed: validate and deduct stock."""
    products_store = ProductStore(session)
    sales_store = SaleStore(session)

    def work():
        sale = sales_store.get_many([sale_id], for_update=True).get(sale_id)
        if sale is None:
            raise NotFoundError(f'Sale {sale_id} not found')
        if sale.status != SaleStatus.PENDING:
            raise InvalidTransitionError(sale_id, sale.status.value, SaleStatus.COMPLETED.value)

        lines = sale.line_items()
        wanted = _quantities(lines)
        products = products_store.get_many(wanted, for_update=True)
        validate_stock(lines, products)
        _apply_stock(products_store, products, {pid: -qty for pid, qty in wanted.items()})
        return sales_store.save(sale.id, {'status': SaleStatus.COMPLETED})

    sale = _run(session, 'approve sale', work)
    logger.info(f"[SALES] Approved {sale_id}")
    return sale


def update_sale_details(sale_id: str, fields: Dict[str, Any], session: Session) -> Sale:
    """Edit customer/payment/logistics fields. Items, totals and status are refused."""
    forbidden = set(fields) - set(DETAIL_FIELDS)
    if forbidden:
        raise BusinessLogicError(
            f'Only sale details can be edited here; not allowed: {", ".join(sorted(forbidden))}'
        )
    sales_store = SaleStore(session)
    details = _clean_details(fields)

    def work():
        if not sales_store.exists(sale_id):
            raise NotFoundError(f'Sale {sale_id} not found')
        return sales_store.save(sale_id, details, merge=True)

    return _run(session, 'update sale', work)


def get_sale(sale_id: str, session: Session) -> Sale:
    sale = SaleStore(session).get(sale_id)
    if sale is None:
        raise NotFoundError(f'Sale {sale_id} not found')
    return sale


def list_sales(session: Session, status: Optional[str] = None) -> List[Sale]:
    store = SaleStore(session)
    if status:
        try:
            return store.by_status(SaleStatus(status))
        except ValueError:
            raise BusinessLogicError(f'Invalid status filter: {status}')
    return store.list()


def edit_sale_cart(sale_id: str, session: Session, promotions: Iterable[Any]) -> Dict[str, Any]:
    """Cart pre-filled with a sale's lines, ready to be edited and resubmitted."""
    sale = get_sale(sale_id, session)
    if sale.replaced_by_sale_id:
        raise BusinessLogicError(f'Sale {sale_id} was already replaced by {sale.replaced_by_sale_id}')
    return cart_service.load_sale(sale, promotions)
