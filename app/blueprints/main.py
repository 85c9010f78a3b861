"""Main blueprint with health check endpoints."""
from flask import Blueprint, jsonify
from flask_wtf.csrf import generate_csrf
from sqlalchemy import text
from app.database import get_session

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """
    Health check endpoint that validates database connection.

    Returns:
        200: Healthy (DB connected)
        500: Unhealthy (DB error)
    """
    try:
        session = get_session()
        row = session.execute(text("SELECT 1 as health_check")).fetchone()

        if row and row[0] == 1:
            return jsonify({'status': 'healthy', 'database': 'connected'}), 200
        return jsonify({
            'status': 'unhealthy',
            'database': 'error',
            'message': 'Unexpected query result'
        }), 500

    except Exception as e:
        return jsonify({
            'status': 'unhealthy',
            'database': 'disconnected',
            'error': str(e),
        }), 500


@main_bp.route('/health/cache')
def health_cache():
    """
    Cache health check. Never returns 500: the app runs without Redis,
    so a missing cache is reported as "degraded".
    """
    from app.services.cache_service import get_cache
    try:
        cache = get_cache()
        if not cache.is_available():
            return jsonify({'status': 'degraded', 'cache': 'unavailable'}), 200

        cache.set('system', 'health_check', {'test': 'ok'}, ttl=10)
        result = cache.get('system', 'health_check')
        if result and result.get('test') == 'ok':
            return jsonify({'status': 'ok', 'cache': 'connected'}), 200
        return jsonify({'status': 'degraded', 'cache': 'connected_but_failing'}), 200

    except Exception as e:
        return jsonify({'status': 'degraded', 'cache': 'error', 'error': str(e)}), 200


@main_bp.route('/csrf-token')
def csrf_token():
    """Token for the X-CSRFToken header on state-changing requests."""
    return jsonify({'csrf_token': generate_csrf()})
