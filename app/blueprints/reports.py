"""Reports blueprint: sales and inventory summary."""
from flask import Blueprint, jsonify, request, current_app

from app.database import get_session
from app.exceptions import BusinessLogicError
from app.services.report_service import get_cached_sales_report

reports_bp = Blueprint('reports', __name__, url_prefix='/reports')


@reports_bp.route('/summary')
def summary():
    """Revenue, profit, stock value and low-stock list; ``?threshold=`` overrides the default."""
    threshold = request.args.get('threshold', current_app.config.get('LOW_STOCK_THRESHOLD', 10))
    try:
        threshold = int(threshold)
    except (TypeError, ValueError):
        raise BusinessLogicError(f'Invalid threshold: {threshold}')

    return jsonify(get_cached_sales_report(get_session(), threshold))
