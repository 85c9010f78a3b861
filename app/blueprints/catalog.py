"""Catalog blueprint for products management."""
from datetime import datetime

from flask import Blueprint, jsonify, request, send_file, current_app

from app.database import get_session
from app.exceptions import BusinessLogicError
from app.forms.pos_forms import ProductForm
from app.services import catalog_service
from app.services.receipt_service import generate_inventory_checklist_pdf
from app.utils.http import get_payload, shop_info
import logging

logger = logging.getLogger(__name__)

catalog_bp = Blueprint('catalog', __name__, url_prefix='/products')


def _form_errors(form) -> str:
    return '; '.join(f'{field}: {", ".join(errors)}' for field, errors in form.errors.items())


@catalog_bp.route('/')
def list_products():
    """List products, optionally filtered by ?category= and ?q=."""
    db_session = get_session()
    products = catalog_service.list_products(
        db_session,
        category=request.args.get('category', '').strip() or None,
        search=request.args.get('q', '').strip() or None,
    )
    return jsonify({'products': [p.to_dict() for p in products]})


@catalog_bp.route('/<product_id>')
def get_product(product_id: str):
    product = catalog_service.get_product(product_id, get_session())
    return jsonify(product.to_dict())


@catalog_bp.route('/', methods=['POST'])
def create_product():
    db_session = get_session()
    form = ProductForm()
    if not form.validate_on_submit():
        raise BusinessLogicError(f'Invalid product: {_form_errors(form)}')

    product = catalog_service.create_product(form.to_data(), db_session)
    return jsonify(product.to_dict()), 201


@catalog_bp.route('/<product_id>', methods=['PATCH', 'POST'])
def update_product(product_id: str):
    """Partial update; ``stock`` is an absolute count (e.g. after a recount)."""
    product = catalog_service.update_product(product_id, get_payload(), get_session())
    return jsonify(product.to_dict())


@catalog_bp.route('/<product_id>', methods=['DELETE'])
def delete_product(product_id: str):
    catalog_service.delete_product(product_id, get_session())
    return jsonify({'status': 'ok', 'deleted': product_id})


@catalog_bp.route('/import', methods=['POST'])
def import_products():
    """
    Bulk import from a CSV upload (``file``) or a JSON list of products.

    Existing ids are overwritten; all rows land in one commit.
    """
    db_session = get_session()

    upload = request.files.get('file')
    if upload is not None and upload.filename:
        records = catalog_service.parse_csv(upload.stream)
    else:
        payload = request.get_json(silent=True)
        records = payload.get('products') if isinstance(payload, dict) else payload
        if not isinstance(records, list):
            raise BusinessLogicError('Send a CSV file or a JSON list of products')

    result = catalog_service.import_products(records, db_session)
    current_app.logger.info(f"[catalog] import: {result}")
    return jsonify({'status': 'ok', **result})


@catalog_bp.route('/checklist.pdf')
def checklist_pdf():
    """Printable stock count sheet for the (optionally filtered) catalog."""
    db_session = get_session()
    products = catalog_service.list_products(
        db_session,
        category=request.args.get('category', '').strip() or None,
    )
    pdf_buffer = generate_inventory_checklist_pdf(products, shop_info())
    filename = f"checklist_{datetime.now().strftime('%Y%m%d_%H%M%S')}.pdf"
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=filename
    )
