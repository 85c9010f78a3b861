"""Sales blueprint: POS cart, checkout and sale lifecycle."""
from flask import Blueprint, jsonify, request, session, send_file, current_app
from typing import Any, Dict

from app.database import get_session
from app.exceptions import BusinessLogicError, InsufficientStockError
from app.forms.pos_forms import CheckoutForm
from app.models import SaleStatus
from app.services import cart_service, catalog_service, sales_service
from app.services.promotion_service import get_active_promotions
from app.services.receipt_service import generate_receipt_pdf
from app.stores import SaleStore
from app.blueprints.metrics import sales_committed_total, sales_cancelled_total, checkouts_rejected_total
from app.utils.http import get_payload, shop_info

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')

CART_SESSION_KEY = 'cart'


def get_cart() -> Dict[str, Any]:
    """Cart from the user session."""
    return cart_service.load_cart(session.get(CART_SESSION_KEY))


def save_cart(cart: Dict[str, Any]) -> None:
    session[CART_SESSION_KEY] = cart_service.dump_cart(cart)
    session.modified = True


def _cart_response(cart: Dict[str, Any]):
    save_cart(cart)
    return jsonify(cart_service.cart_view(cart))


def _required(payload: Dict[str, Any], key: str):
    value = payload.get(key)
    if value in (None, ''):
        raise BusinessLogicError(f'Missing {key}')
    return value


def _discount(payload: Dict[str, Any]):
    if payload.get('type') in (None, ''):
        return None
    return {'type': payload['type'], 'value': payload.get('value')}


# ============================================================================
# Cart
# ============================================================================

@sales_bp.route('/cart')
def view_cart():
    """Current cart, re-priced against the active promotions."""
    cart = cart_service.reprice(get_cart(), get_active_promotions(get_session()))
    return _cart_response(cart)


@sales_bp.route('/cart/add', methods=['POST'])
def cart_add():
    db_session = get_session()
    payload = get_payload()
    product = catalog_service.get_product(str(_required(payload, 'product_id')), db_session)

    cart = cart_service.add_product(
        get_cart(), product, get_active_promotions(db_session), payload.get('qty', 1)
    )
    current_app.logger.info(f"[cart_add] product_id={product.id}, lines={len(cart['items'])}")
    return _cart_response(cart)


@sales_bp.route('/cart/update', methods=['POST'])
def cart_update():
    """Set a line's quantity (``qty``) or move it by ``delta``; 0 removes it."""
    payload = get_payload()
    product_id = str(_required(payload, 'product_id'))
    promotions = get_active_promotions(get_session())

    if payload.get('delta') not in (None, ''):
        cart = cart_service.change_quantity(get_cart(), product_id, payload['delta'], promotions)
    else:
        cart = cart_service.set_quantity(get_cart(), product_id, _required(payload, 'qty'), promotions)
    return _cart_response(cart)


@sales_bp.route('/cart/remove', methods=['POST'])
def cart_remove():
    payload = get_payload()
    cart = cart_service.remove_item(
        get_cart(), str(_required(payload, 'product_id')), get_active_promotions(get_session())
    )
    return _cart_response(cart)


@sales_bp.route('/cart/discount', methods=['POST'])
def cart_item_discount():
    """Line discount: ``{product_id, type, value}``; no type clears it."""
    payload = get_payload()
    cart = cart_service.set_item_discount(
        get_cart(), str(_required(payload, 'product_id')), _discount(payload),
        get_active_promotions(get_session())
    )
    return _cart_response(cart)


@sales_bp.route('/cart/bill-discount', methods=['POST'])
def cart_bill_discount():
    cart = cart_service.set_bill_discount(
        get_cart(), _discount(get_payload()), get_active_promotions(get_session())
    )
    return _cart_response(cart)


@sales_bp.route('/cart/clear', methods=['POST'])
def cart_clear():
    return _cart_response(cart_service.new_cart())


# ============================================================================
# Checkout
# ============================================================================

@sales_bp.route('/checkout', methods=['POST'])
def checkout():
    """
    Commit the cart as a sale.

    On success the cart is cleared. On any failure the cart is kept as it
    was and nothing is written.
    """
    db_session = get_session()
    form = CheckoutForm()
    if not form.validate_on_submit():
        errors = '; '.join(f'{k}: {", ".join(v)}' for k, v in form.errors.items())
        raise BusinessLogicError(f'Invalid checkout details: {errors}')

    cart = get_cart()
    try:
        sale = sales_service.checkout(
            cart,
            form.metadata(),
            db_session,
            get_active_promotions(db_session),
            auto_complete=current_app.config.get('ORDER_AUTO_COMPLETE', True),
            order_status=form.order_status.data or None,
        )
    except InsufficientStockError:
        checkouts_rejected_total.labels(reason='insufficient_stock').inc()
        raise
    except BusinessLogicError:
        checkouts_rejected_total.labels(reason='invalid').inc()
        raise

    sales_committed_total.labels(status=sale.status.value).inc()
    if cart.get('editing_sale_id'):
        sales_cancelled_total.inc()
    save_cart(cart_service.new_cart())
    return jsonify(sale.to_dict()), 201


# ============================================================================
# Sales
# ============================================================================

@sales_bp.route('/')
def list_sales():
    """Sales, most recent first; ``?status=`` filters by lifecycle state."""
    sales = sales_service.list_sales(get_session(), request.args.get('status', '').strip() or None)
    return jsonify({'sales': [s.to_dict() for s in sales]})


@sales_bp.route('/<sale_id>')
def detail_sale(sale_id: str):
    return jsonify(sales_service.get_sale(sale_id, get_session()).to_dict())


@sales_bp.route('/<sale_id>', methods=['PATCH'])
def update_sale(sale_id: str):
    """Customer, payment and delivery fields only."""
    sale = sales_service.update_sale_details(sale_id, get_payload(), get_session())
    return jsonify(sale.to_dict())


@sales_bp.route('/<sale_id>/approve', methods=['POST'])
def approve_sale(sale_id: str):
    sale = sales_service.approve_sale(sale_id, get_session())
    sales_committed_total.labels(status=SaleStatus.COMPLETED.value).inc()
    return jsonify(sale.to_dict())


@sales_bp.route('/<sale_id>/cancel', methods=['POST'])
def cancel_sale(sale_id: str):
    """Cancelling a missing or already cancelled sale changes nothing."""
    db_session = get_session()
    existing = SaleStore(db_session).get(sale_id)
    previous = existing.status if existing is not None else None

    sale = sales_service.cancel_sale(sale_id, db_session)
    if previous not in (None, SaleStatus.CANCELLED):
        sales_cancelled_total.inc()
    return jsonify({'status': 'ok', 'sale': sale.to_dict() if sale is not None else None})


@sales_bp.route('/<sale_id>/edit', methods=['POST'])
def edit_sale(sale_id: str):
    """Load a committed sale into the cart for edit-and-resubmit."""
    db_session = get_session()
    cart = sales_service.edit_sale_cart(sale_id, db_session, get_active_promotions(db_session))
    return _cart_response(cart)


@sales_bp.route('/<sale_id>/receipt.pdf')
def receipt_pdf(sale_id: str):
    sale = sales_service.get_sale(sale_id, get_session())
    pdf_buffer = generate_receipt_pdf(sale, shop_info())
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"receipt_{sale.id}.pdf"
    )
