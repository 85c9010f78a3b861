"""Promotion service - tiered quantity pricing rules."""
import logging
import time
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from app.exceptions import BusinessLogicError, NotFoundError, PersistenceError
from app.services.cache_service import cached, invalidate
from app.services.pricing_service import to_decimal
from app.stores import PromotionStore

logger = logging.getLogger(__name__)

CACHE_MODULE = 'promotions'
DEFAULT_MAX_TARGETS = 50
DEFAULT_MAX_TIERS = 10


def _parse_targets(raw, max_targets: int) -> List[str]:
    """Accept a list or a comma separated string; dedupe, keep order."""
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(',')
    targets = []
    for value in raw:
        pid = str(value).strip()
        if pid and pid not in targets:
            targets.append(pid)
    if len(targets) > max_targets:
        raise BusinessLogicError(f'A promotion can target at most {max_targets} products ({len(targets)} given)')
    return targets


def _parse_tiers(raw, max_tiers: int) -> List[Dict[str, Any]]:
    if not isinstance(raw, list) or not raw:
        raise BusinessLogicError('A promotion needs at least one price tier')
    if len(raw) > max_tiers:
        raise BusinessLogicError(f'A promotion can have at most {max_tiers} tiers')

    tiers = []
    seen = set()
    for entry in raw:
        try:
            min_quantity = int(entry.get('min_quantity'))
        except (AttributeError, TypeError, ValueError):
            raise BusinessLogicError('Each tier needs an integer min_quantity')
        unit_price = to_decimal(entry.get('unit_price'), default=None)
        if min_quantity < 1:
            raise BusinessLogicError('Tier min_quantity must be at least 1')
        if unit_price is None or unit_price < Decimal('0'):
            raise BusinessLogicError('Tier unit_price must be zero or positive')
        if min_quantity in seen:
            raise BusinessLogicError(f'Duplicate tier for quantity {min_quantity}')
        seen.add(min_quantity)
        tiers.append({'min_quantity': min_quantity, 'unit_price': str(unit_price)})

    return sorted(tiers, key=lambda t: t['min_quantity'])


def _clean(data: Dict[str, Any], partial: bool, max_targets: int, max_tiers: int) -> Dict[str, Any]:
    fields = {}
    if 'name' in data or not partial:
        name = (data.get('name') or '').strip()
        if not name:
            raise BusinessLogicError('Promotion name is required')
        fields['name'] = name
    if 'active' in data:
        fields['active'] = bool(data['active'])
    elif not partial:
        fields['active'] = True
    if 'target_product_ids' in data or not partial:
        fields['target_product_ids'] = _parse_targets(data.get('target_product_ids'), max_targets)
    if 'tiers' in data or not partial:
        fields['tiers'] = _parse_tiers(data.get('tiers'), max_tiers)
    return fields


def _commit(session: Session, action: str) -> None:
    try:
        session.commit()
    except Exception as e:
        session.rollback()
        logger.exception(f"[PROMOTIONS] {action} failed")
        raise PersistenceError(f'Could not save promotion: {e}') from e


def create_promotion(data: Dict[str, Any], session: Session,
                     max_targets: int = DEFAULT_MAX_TARGETS, max_tiers: int = DEFAULT_MAX_TIERS):
    """Create a promotion; ``id`` defaults to ``promo-<epoch ms>``."""
    store = PromotionStore(session)
    promo_id = str(data.get('id') or '').strip() or f'promo-{int(time.time() * 1000)}'
    if store.exists(promo_id):
        raise BusinessLogicError(f'Promotion {promo_id} already exists', status_code=409)

    fields = _clean(data, partial=False, max_targets=max_targets, max_tiers=max_tiers)
    promotion = store.save(promo_id, fields, merge=False)
    _commit(session, f'create {promo_id}')
    logger.info(f"[PROMOTIONS] Created {promo_id} targeting {len(fields['target_product_ids'])} products")
    return promotion


def update_promotion(promo_id: str, data: Dict[str, Any], session: Session,
                     max_targets: int = DEFAULT_MAX_TARGETS, max_tiers: int = DEFAULT_MAX_TIERS):
    store = PromotionStore(session)
    if not store.exists(promo_id):
        raise NotFoundError(f'Promotion {promo_id} not found')
    fields = _clean(data, partial=True, max_targets=max_targets, max_tiers=max_tiers)
    promotion = store.save(promo_id, fields, merge=True)
    _commit(session, f'update {promo_id}')
    return promotion


def delete_promotion(promo_id: str, session: Session) -> None:
    store = PromotionStore(session)
    if not store.delete(promo_id):
        raise NotFoundError(f'Promotion {promo_id} not found')
    _commit(session, f'delete {promo_id}')


def list_promotions(session: Session):
    return PromotionStore(session).list()


def get_active_promotions(session: Session) -> List[Dict[str, Any]]:
    """Active promotions as dicts, served from cache when available."""
    def loader():
        return [p.to_dict() for p in PromotionStore(session).list() if p.active]
    return cached(CACHE_MODULE, 'active', loader, ttl_setting='CACHE_PROMOTIONS_TTL')


def invalidate_promotions_cache(ids=None) -> None:
    invalidate(CACHE_MODULE)
