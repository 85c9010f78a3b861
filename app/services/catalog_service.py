"""
Catalog service - product CRUD and bulk import.

Stock values written here are absolute counts (initial stock, physical
recounts, imports). Sales move stock only through sales_service.
"""
import csv
import io
import logging
import time
from decimal import Decimal
from typing import Any, Dict, IO, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.exceptions import BusinessLogicError, DuplicateProductError, NotFoundError, PersistenceError
from app.services.pricing_service import money, to_decimal
from app.stores import ProductStore

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = 'General'

# Spreadsheet header aliases (English and Thai exports)
_COLUMN_ALIASES = {
    'id': ('Code', 'code', 'SKU', 'sku', 'Code*', 'รหัสสินค้า'),
    'name': ('Name', 'name', 'Name*', 'ชื่อสินค้า'),
    'cost': ('Cost', 'cost', 'ราคาทุน'),
    'price': ('Price', 'price', 'ราคาขาย'),
    'stock': ('Stock', 'stock', 'สต็อก'),
    'category': ('Category', 'category', 'หมวดหมู่'),
}


def generate_product_id() -> str:
    return f'p-{int(time.time() * 1000)}'


def _money_field(data: Dict[str, Any], key: str) -> Decimal:
    value = to_decimal(data.get(key))
    if value < 0:
        raise BusinessLogicError(f'{key.capitalize()} cannot be negative')
    return money(value)


def _stock_field(data: Dict[str, Any]) -> int:
    raw = data.get('stock') or 0
    try:
        stock = int(to_decimal(raw))
    except (BusinessLogicError, ValueError, OverflowError):
        raise BusinessLogicError(f'Invalid stock value: {raw!r}')
    if stock != to_decimal(raw):
        raise BusinessLogicError(f'Stock must be a whole number: {raw!r}')
    if stock < 0:
        raise BusinessLogicError('Stock cannot be negative')
    return stock


def _clean_product_fields(data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
    fields = {}
    if 'name' in data or not partial:
        name = str(data.get('name') or '').strip()
        if not name:
            raise BusinessLogicError('Product name is required')
        fields['name'] = name
    for key in ('cost', 'price'):
        if key in data or not partial:
            fields[key] = _money_field(data, key)
    if 'category' in data or not partial:
        fields['category'] = str(data.get('category') or '').strip() or DEFAULT_CATEGORY
    if 'stock' in data or not partial:
        fields['stock'] = _stock_field(data)
    return fields


def _commit(session: Session, action: str) -> None:
    try:
        session.commit()
    except Exception as e:
        session.rollback()
        logger.exception(f"[CATALOG] {action} failed")
        raise PersistenceError(f'Could not save product changes: {e}') from e


def create_product(data: Dict[str, Any], session: Session):
    """Create a product. An existing id is rejected and left untouched."""
    store = ProductStore(session)
    product_id = str(data.get('id') or data.get('code') or '').strip() or generate_product_id()
    if store.exists(product_id):
        raise DuplicateProductError(product_id)

    fields = _clean_product_fields(data, partial=False)
    product = store.save(product_id, fields, merge=False)
    _commit(session, f'create {product_id}')
    logger.info(f"[CATALOG] Created product {product_id} with stock {fields['stock']}")
    return product


def update_product(product_id: str, data: Dict[str, Any], session: Session):
    store = ProductStore(session)
    if not store.exists(product_id):
        raise NotFoundError(f'Product {product_id} not found')
    fields = _clean_product_fields(data, partial=True)
    product = store.save(product_id, fields, merge=True)
    _commit(session, f'update {product_id}')
    return product


def delete_product(product_id: str, session: Session) -> None:
    store = ProductStore(session)
    if not store.delete(product_id):
        raise NotFoundError(f'Product {product_id} not found')
    _commit(session, f'delete {product_id}')


def get_product(product_id: str, session: Session):
    product = ProductStore(session).get(product_id)
    if product is None:
        raise NotFoundError(f'Product {product_id} not found')
    return product


def list_products(session: Session, category: Optional[str] = None, search: Optional[str] = None):
    return ProductStore(session).search(category=category, text=search)


def import_products(records: Iterable[Dict[str, Any]], session: Session) -> Dict[str, int]:
    """
    Merge records into the catalog by id, overwriting on conflict.

    All rows are written in one commit; a bad row rejects the whole file.
    """
    store = ProductStore(session)
    created = updated = 0
    try:
        for index, record in enumerate(records, start=1):
            product_id = str(record.get('id') or '').strip() or generate_product_id() + f'-{index}'
            try:
                fields = _clean_product_fields(record, partial=False)
            except BusinessLogicError as e:
                raise BusinessLogicError(f'Row {index}: {e.message}')
            if store.exists(product_id):
                updated += 1
            else:
                created += 1
            store.save(product_id, fields, merge=True)
        session.commit()
    except BusinessLogicError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception("[CATALOG] Import failed")
        raise PersistenceError(f'Import failed: {e}') from e

    logger.info(f"[CATALOG] Import done: {created} created, {updated} updated")
    return {'created': created, 'updated': updated}


def _pick(row: Dict[str, Any], field: str) -> Optional[str]:
    for alias in _COLUMN_ALIASES[field]:
        value = row.get(alias)
        if value not in (None, ''):
            return str(value).strip()
    return None


def _lenient_number(value: Optional[str], row_number: int, field: str):
    if value is None:
        return 0
    try:
        return to_decimal(value)
    except BusinessLogicError:
        logger.warning(f"[CATALOG] Row {row_number}: invalid {field} {value!r}, using 0")
        return 0


def _lenient_stock(value: Optional[str], row_number: int) -> int:
    number = _lenient_number(value, row_number, 'stock')
    try:
        whole = int(number)
    except (ValueError, OverflowError):
        logger.warning(f"[CATALOG] Row {row_number}: invalid stock {value!r}, using 0")
        return 0
    if whole != number:
        logger.warning(f"[CATALOG] Row {row_number}: stock {value!r} is not a whole number, using {whole}")
    return whole


def parse_csv(stream: IO) -> List[Dict[str, Any]]:
    """Read product rows from a CSV file (text or bytes stream)."""
    raw = stream.read()
    if isinstance(raw, bytes):
        raw = raw.decode('utf-8-sig')
    reader = csv.DictReader(io.StringIO(raw))

    records = []
    for row_number, row in enumerate(reader, start=2):
        stock = _lenient_stock(_pick(row, 'stock'), row_number)
        records.append({
            'id': _pick(row, 'id'),
            'name': _pick(row, 'name') or 'Unnamed product',
            'cost': max(_lenient_number(_pick(row, 'cost'), row_number, 'cost'), 0),
            'price': max(_lenient_number(_pick(row, 'price'), row_number, 'price'), 0),
            'stock': max(stock, 0),
            'category': _pick(row, 'category') or DEFAULT_CATEGORY,
        })
    return records
