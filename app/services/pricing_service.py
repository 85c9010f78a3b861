"""
Pricing engine: promotion tiers, line discounts and order totals.

Pure functions over cart item dicts. Nothing in this module reads or writes the
database; callers pass in the promotion catalog they want applied.

A cart item is a dict with at least::

    product_id, qty, cost, original_price, unit_price,
    discount_type, discount_value
"""
import enum
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.exceptions import BusinessLogicError

ZERO = Decimal('0')
HUNDRED = Decimal('100')
CENT = Decimal('0.01')


class DiscountType(str, enum.Enum):
    """Discount type enum."""
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


_DISCOUNT_ALIASES = {
    'percentage': DiscountType.PERCENTAGE,
    'percent': DiscountType.PERCENTAGE,
    '%': DiscountType.PERCENTAGE,
    'fixed': DiscountType.FIXED,
    'amount': DiscountType.FIXED,
}


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Parse a money/number value; ``None`` and '' map to ``default``."""
    if value is None or value == '':
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip().replace(',', ''))
    except (InvalidOperation, ValueError):
        raise BusinessLogicError(f'Invalid numeric value: {value!r}')


def money(value: Decimal) -> Decimal:
    """Round to cents."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_discount(discount: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Normalize a ``{type, value}`` discount.

    Out-of-range values are clamped, never rejected: percentages to [0, 100],
    fixed amounts to [0, inf). Returns ``None`` for "no discount".
    """
    if not discount:
        return None
    raw_type = discount.get('type')
    if raw_type is None:
        return None
    key = raw_type.value if isinstance(raw_type, DiscountType) else str(raw_type).strip().lower()
    discount_type = _DISCOUNT_ALIASES.get(key)
    if discount_type is None:
        raise BusinessLogicError(f'Unknown discount type: {raw_type}')

    value = to_decimal(discount.get('value'))
    if value < ZERO:
        value = ZERO
    if discount_type == DiscountType.PERCENTAGE and value > HUNDRED:
        value = HUNDRED
    return {'type': discount_type.value, 'value': value}


def _item_discount(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return normalize_discount({
        'type': item.get('discount_type'),
        'value': item.get('discount_value'),
    })


def _promotion_view(promotion: Any) -> Dict[str, Any]:
    """Accept Promotion models or their dict form."""
    data = promotion.to_dict() if hasattr(promotion, 'to_dict') else promotion
    return {
        'id': str(data['id']),
        'active': bool(data.get('active')),
        'targets': set(data.get('target_product_ids') or ()),
        'tiers': [
            (int(t['min_quantity']), to_decimal(t['unit_price']))
            for t in data.get('tiers') or ()
        ],
    }


def tier_price(tiers: Iterable[Tuple[int, Decimal]], qty: int) -> Optional[Decimal]:
    """Price of the highest tier ``qty`` reaches, or ``None`` if it reaches none."""
    for min_quantity, unit_price in sorted(tiers, key=lambda t: t[0], reverse=True):
        if qty >= min_quantity:
            return unit_price
    return None


def resolve_unit_price(item: Dict[str, Any], promotions: List[Dict[str, Any]]) -> Tuple[Decimal, Optional[str]]:
    """
    Effective unit price for one cart item and the promotion that set it.

    When several active promotions target the product, the lowest qualifying
    tier price wins; equal prices go to the smallest promotion id.
    """
    original = to_decimal(item.get('original_price'))
    qty = int(item.get('qty') or 0)
    candidates = []
    for promo in promotions:
        if not promo['active'] or not promo['tiers']:
            continue
        if item['product_id'] not in promo['targets']:
            continue
        price = tier_price(promo['tiers'], qty)
        if price is not None:
            candidates.append((price, promo['id']))

    if not candidates:
        return original, None
    price, promotion_id = min(candidates)
    return price, promotion_id


def apply_promotions(items: List[Dict[str, Any]], promotions: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    Return new cart items priced against ``promotions``.

    Every item is reset from its ``original_price`` first, so applying twice
    gives the same result as applying once.
    """
    views = [_promotion_view(p) for p in promotions]
    priced = []
    for item in items:
        unit_price, promotion_id = resolve_unit_price(item, views)
        priced.append({**item, 'unit_price': unit_price, 'promotion_id': promotion_id})
    return priced


def line_amounts(item: Dict[str, Any]) -> Dict[str, Decimal]:
    """Gross, discount and net amounts of one cart line."""
    qty = int(item.get('qty') or 0)
    gross = to_decimal(item.get('unit_price')) * qty
    discount = _item_discount(item)

    amount = ZERO
    if discount is not None:
        if discount['type'] == DiscountType.PERCENTAGE.value:
            amount = gross * discount['value'] / HUNDRED
        else:
            amount = discount['value']
    amount = max(ZERO, min(amount, gross))

    return {
        'gross': money(gross),
        'discount': money(amount),
        'net': money(gross - amount),
    }


def compute_summary(items: List[Dict[str, Any]], bill_discount: Optional[Dict[str, Any]] = None) -> Dict[str, Decimal]:
    """
    Order totals for a priced cart.

    profit is revenue after all discounts minus the undiscounted cost basis.
    """
    subtotal = ZERO
    item_discount_total = ZERO
    cost_total = ZERO
    for item in items:
        amounts = line_amounts(item)
        subtotal += amounts['net']
        item_discount_total += amounts['discount']
        cost_total += to_decimal(item.get('cost')) * int(item.get('qty') or 0)

    bill = normalize_discount(bill_discount)
    bill_amount = ZERO
    if bill is not None and subtotal > ZERO:
        if bill['type'] == DiscountType.PERCENTAGE.value:
            bill_amount = subtotal * bill['value'] / HUNDRED
        else:
            bill_amount = bill['value']

    total = max(ZERO, subtotal - bill_amount)

    return {
        'subtotal': money(subtotal),
        'item_discount_total': money(item_discount_total),
        'bill_discount_amount': money(bill_amount),
        'total': money(total),
        'cost_total': money(cost_total),
        'profit': money(total - cost_total),
    }
