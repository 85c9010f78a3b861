"""Promotions blueprint: quantity-tier pricing rules."""
from flask import Blueprint, jsonify, current_app

from app.database import get_session
from app.services import promotion_service
from app.utils.http import get_payload

promotions_bp = Blueprint('promotions', __name__, url_prefix='/promotions')


def _limits() -> dict:
    return {
        'max_targets': current_app.config.get('PROMOTION_MAX_TARGETS', promotion_service.DEFAULT_MAX_TARGETS),
        'max_tiers': current_app.config.get('PROMOTION_MAX_TIERS', promotion_service.DEFAULT_MAX_TIERS),
    }


@promotions_bp.route('/')
def list_promotions():
    promotions = promotion_service.list_promotions(get_session())
    return jsonify({'promotions': [p.to_dict() for p in promotions]})


@promotions_bp.route('/', methods=['POST'])
def create_promotion():
    promotion = promotion_service.create_promotion(get_payload(), get_session(), **_limits())
    return jsonify(promotion.to_dict()), 201


@promotions_bp.route('/<promo_id>', methods=['PATCH', 'POST'])
def update_promotion(promo_id: str):
    promotion = promotion_service.update_promotion(promo_id, get_payload(), get_session(), **_limits())
    return jsonify(promotion.to_dict())


@promotions_bp.route('/<promo_id>', methods=['DELETE'])
def delete_promotion(promo_id: str):
    promotion_service.delete_promotion(promo_id, get_session())
    return jsonify({'status': 'ok', 'deleted': promo_id})
