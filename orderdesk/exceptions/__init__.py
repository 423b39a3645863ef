"""Custom exceptions for the order desk application."""


class OrderDeskError(Exception):
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


class BusinessLogicError(OrderDeskError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class ValidationError(BusinessLogicError):
    """One or more user-facing validation messages blocked the operation."""
    def __init__(self, errors, payload=None):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        payload = dict(payload or ())
        payload['errors'] = self.errors
        super().__init__('; '.join(self.errors), status_code=422, payload=payload)


class NotFoundError(OrderDeskError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class InsufficientStockError(BusinessLogicError):
    """Raised when an order needs more stock than is on hand."""
    def __init__(self, product_name, required, available):
        self.required = required
        self.available = available
        message = f"Insufficient stock for {product_name}: required {required}, available {available}"
        super().__init__(message, status_code=409)


class InsufficientPointsError(BusinessLogicError):
    """Raised when a customer tries to redeem more points than available."""
    def __init__(self, requested, available):
        self.requested = requested
        self.available = available
        message = f"Insufficient points available: requested {requested}, available {available}"
        super().__init__(message, status_code=409)


class RedemptionBelowMinimumError(BusinessLogicError):
    """Raised when a redemption is smaller than the configured minimum."""
    def __init__(self, requested, minimum):
        self.requested = requested
        self.minimum = minimum
        super().__init__(f"Minimum {minimum} points required for redemption")


class PayloadSchemaError(BusinessLogicError):
    """Raised when a stored item payload cannot be read or migrated."""
    def __init__(self, message="Malformed item payload"):
        super().__init__(message, status_code=422)
