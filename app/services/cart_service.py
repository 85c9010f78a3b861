"""Cart service - ephemeral order builder kept in the user session."""

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from app.exceptions import BusinessLogicError, NotFoundError
from app.models import SNAPSHOT_MONEY_FIELDS
from app.services.pricing_service import (
    apply_promotions, compute_summary, line_amounts, normalize_discount, to_decimal
)

_CART_MONEY_FIELDS = SNAPSHOT_MONEY_FIELDS


def new_cart() -> Dict[str, Any]:
    return {'items': [], 'bill_discount': None, 'editing_sale_id': None}


def item_from_product(product, qty: int = 1) -> Dict[str, Any]:
    """Build a cart line from a catalog product, remembering its catalog price."""
    return {
        'product_id': product.id,
        'name': product.name,
        'category': product.category,
        'cost': to_decimal(product.cost),
        'original_price': to_decimal(product.price),
        'unit_price': to_decimal(product.price),
        'qty': qty,
        'discount_type': None,
        'discount_value': Decimal('0'),
        'promotion_id': None,
    }


def _parse_qty(value) -> int:
    try:
        qty = int(value)
    except (TypeError, ValueError):
        raise BusinessLogicError(f'Invalid quantity: {value!r}')
    if qty != to_decimal(value):
        raise BusinessLogicError(f'Quantity must be a whole number: {value!r}')
    return qty


def _find(cart: Dict[str, Any], product_id: str) -> Dict[str, Any]:
    for item in cart['items']:
        if item['product_id'] == product_id:
            return item
    raise NotFoundError(f'Product {product_id} is not in the cart')


def reprice(cart: Dict[str, Any], promotions: Iterable[Any]) -> Dict[str, Any]:
    """Drop empty lines and re-apply promotions to what is left."""
    items = [item for item in cart['items'] if item['qty'] > 0]
    return {**cart, 'items': apply_promotions(items, promotions)}


def add_product(cart: Dict[str, Any], product, promotions: Iterable[Any], qty=1) -> Dict[str, Any]:
    """Add ``qty`` units of ``product`` (merging with an existing line)."""
    qty = _parse_qty(qty)
    if qty <= 0:
        raise BusinessLogicError('Quantity must be greater than 0')

    items = []
    found = False
    for item in cart['items']:
        if item['product_id'] == product.id:
            item = {**item, 'qty': item['qty'] + qty}
            found = True
        items.append(item)
    if not found:
        items.append(item_from_product(product, qty))
    return reprice({**cart, 'items': items}, promotions)


def change_quantity(cart: Dict[str, Any], product_id: str, delta, promotions: Iterable[Any]) -> Dict[str, Any]:
    """Increment/decrement a line; reaching 0 removes it."""
    current = _find(cart, product_id)['qty']
    return set_quantity(cart, product_id, current + _parse_qty(delta), promotions)


def set_quantity(cart: Dict[str, Any], product_id: str, qty, promotions: Iterable[Any]) -> Dict[str, Any]:
    """Set a line's quantity; values below 1 remove the line."""
    _find(cart, product_id)
    qty = max(0, _parse_qty(qty))
    items = [
        {**item, 'qty': qty} if item['product_id'] == product_id else item
        for item in cart['items']
    ]
    return reprice({**cart, 'items': items}, promotions)


def remove_item(cart: Dict[str, Any], product_id: str, promotions: Iterable[Any]) -> Dict[str, Any]:
    items = [item for item in cart['items'] if item['product_id'] != product_id]
    return reprice({**cart, 'items': items}, promotions)


def set_item_discount(cart: Dict[str, Any], product_id: str, discount: Optional[Dict[str, Any]],
                      promotions: Iterable[Any]) -> Dict[str, Any]:
    _find(cart, product_id)
    normalized = normalize_discount(discount)
    items = []
    for item in cart['items']:
        if item['product_id'] == product_id:
            item = {
                **item,
                'discount_type': normalized['type'] if normalized else None,
                'discount_value': normalized['value'] if normalized else Decimal('0'),
            }
        items.append(item)
    return reprice({**cart, 'items': items}, promotions)


def set_bill_discount(cart: Dict[str, Any], discount: Optional[Dict[str, Any]],
                      promotions: Iterable[Any]) -> Dict[str, Any]:
    return reprice({**cart, 'bill_discount': normalize_discount(discount)}, promotions)


def summarize(cart: Dict[str, Any]) -> Dict[str, Decimal]:
    return compute_summary(cart['items'], cart.get('bill_discount'))


def load_sale(sale, promotions: Iterable[Any]) -> Dict[str, Any]:
    """Re-open a committed sale as a cart for the edit-and-resubmit flow."""
    bill_discount = None
    if sale.bill_discount_type:
        bill_discount = {'type': sale.bill_discount_type, 'value': sale.bill_discount_value}
    cart = {
        'items': sale.line_items(),
        'bill_discount': normalize_discount(bill_discount),
        'editing_sale_id': sale.id,
    }
    return reprice(cart, promotions)


def cart_view(cart: Dict[str, Any]) -> Dict[str, Any]:
    """Cart lines with their amounts plus the order summary."""
    lines = []
    for item in cart['items']:
        lines.append({**item, **line_amounts(item)})
    return {
        'items': lines,
        'bill_discount': cart.get('bill_discount'),
        'editing_sale_id': cart.get('editing_sale_id'),
        'summary': summarize(cart),
    }


def dump_cart(cart: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-safe copy for the Flask session."""
    items: List[Dict[str, Any]] = []
    for item in cart['items']:
        data = dict(item)
        for field in _CART_MONEY_FIELDS:
            if data.get(field) is not None:
                data[field] = str(data[field])
        items.append(data)
    bill = cart.get('bill_discount')
    if bill:
        bill = {'type': bill['type'], 'value': str(bill['value'])}
    return {'items': items, 'bill_discount': bill, 'editing_sale_id': cart.get('editing_sale_id')}


def load_cart(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Inverse of dump_cart; missing data yields an empty cart."""
    if not data:
        return new_cart()
    items = []
    for raw in data.get('items') or []:
        item = dict(raw)
        for field in _CART_MONEY_FIELDS:
            if item.get(field) is not None:
                item[field] = to_decimal(item[field])
        item['qty'] = int(item['qty'])
        items.append(item)
    return {
        'items': items,
        'bill_discount': normalize_discount(data.get('bill_discount')),
        'editing_sale_id': data.get('editing_sale_id'),
    }
