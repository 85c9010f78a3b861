"""Request helpers shared by the JSON blueprints."""
from flask import current_app, request


def get_payload() -> dict:
    """JSON body when present, otherwise the submitted form fields."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def shop_info() -> dict:
    """Shop header printed on receipts and checklists."""
    return {
        'name': current_app.config.get('SHOP_NAME', ''),
        'address': current_app.config.get('SHOP_ADDRESS', ''),
        'phone': current_app.config.get('SHOP_PHONE', ''),
        'currency': current_app.config.get('CURRENCY_SYMBOL', ''),
    }
