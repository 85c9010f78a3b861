"""Custom exceptions for the POS application."""


class PosError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(PosError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


def _fmt_qty(value):
    return f"{int(value)}" if value % 1 == 0 else f"{value:.2f}".rstrip('0').rstrip('.')


class InsufficientStockError(BusinessLogicError):
    """Raised when a cart line asks for more units than are available."""
    def __init__(self, product_id, product_name, requested, available):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        message = (
            f"Insufficient stock for {product_name}: requested {_fmt_qty(requested)}, "
            f"available {_fmt_qty(available)} (short by {_fmt_qty(self.shortfall)})"
        )
        super().__init__(message, status_code=409, payload={
            'product_id': product_id,
            'shortfall': self.shortfall,
        })


class DuplicateProductError(BusinessLogicError):
    """Raised when creating a product whose id already exists."""
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(
            f'A product with code "{product_id}" already exists',
            status_code=409,
            payload={'product_id': product_id}
        )


class InvalidTransitionError(BusinessLogicError):
    """Raised when a sale cannot move to the requested status."""
    def __init__(self, sale_id, from_status, to_status):
        super().__init__(
            f'Sale {sale_id} cannot transition from {from_status} to {to_status}',
            status_code=409,
            payload={'sale_id': sale_id}
        )


class PersistenceError(PosError):
    """Raised when a write to the backing store fails; nothing was applied."""
    def __init__(self, message="The operation could not be saved"):
        super().__init__(message, 503)
