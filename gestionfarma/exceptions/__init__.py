"""Custom exceptions for the GestionFarma point of sale."""


def _fmt_qty(value):
    return f"{int(value)}" if value % 1 == 0 else f"{value:.2f}".rstrip('0').rstrip('.')


class PosError(Exception):
    """Base exception for all application errors."""
    category = 'error'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        rv['category'] = self.category
        return rv


class ValidationError(PosError):
    """Raised for invalid input before any mutation happens."""
    category = 'warning'

    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class BusinessLogicError(PosError):
    """Exception raised for business logic violations."""
    category = 'warning'

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""

    def __init__(self, product_name, required, available):
        message = (
            f"Stock insuficiente para {product_name}: "
            f"se requieren {_fmt_qty(required)}, disponible {_fmt_qty(available)}"
        )
        super().__init__(message, status_code=409, payload={
            'required': int(required),
            'available': int(available),
        })
        self.product_name = product_name
        self.required = required
        self.available = available


class InsufficientPointsError(BusinessLogicError):
    """Raised when a client cannot afford a redemption."""

    def __init__(self, client_name, required, available):
        message = f"Puntos insuficientes para {client_name}: se requieren {required}, disponible {available}"
        super().__init__(message, status_code=409, payload={
            'required': required,
            'available': available,
        })
        self.required = required
        self.available = available


class RegisterError(BusinessLogicError):
    """Raised for cash register (caja) lifecycle errors."""

    def __init__(self, message):
        super().__init__(message, status_code=409)


class PersistenceError(PosError):
    """Raised when the backing store fails; the transaction has been rolled back."""

    def __init__(self, message="Error al guardar en la base de datos"):
        super().__init__(message, 500)


class UnauthorizedError(PosError):
    """Raised when there is no authenticated user for a request."""

    def __init__(self, message="Debes iniciar sesión"):
        super().__init__(message, 401)
