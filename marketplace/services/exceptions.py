# marketplace/services/exceptions.py
from typing import Any


class ServiceError(Exception):
    """Base class for service-layer errors.

    ``code`` is the machine readable identifier sent to clients, ``status_code``
    the HTTP status the API maps it to and ``details`` optional structured data
    (for example the quantity still allowed in a cart).
    """

    code = "SERVICE_ERROR"
    status_code = 400

    def __init__(self, detail: str, *, details: dict[str, Any] | None = None):
        self.detail = detail
        self.details = details
        super().__init__(detail)


class InvalidInputError(ServiceError):
    """Malformed identifier or quantity."""

    code = "INVALID_INPUT"
    status_code = 400


class NotFoundError(ServiceError):
    """Referenced entity does not exist or is not visible to the caller."""

    code = "NOT_FOUND"
    status_code = 404


class ProductUnavailableError(NotFoundError):
    """Product missing or inactive."""

    code = "PRODUCT_UNAVAILABLE"


class InsufficientStockError(ServiceError):
    """Requested quantity exceeds the live stock."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409


class OutOfStockError(ServiceError):
    """Checkout cannot be fulfilled for one of the cart lines."""

    code = "OUT_OF_STOCK"
    status_code = 400


class EmptyCartError(ServiceError):
    code = "EMPTY_CART"
    status_code = 400


class InvalidTransitionError(ServiceError):
    code = "INVALID_TRANSITION"
    status_code = 400


class NotCancellableError(ServiceError):
    code = "NOT_CANCELLABLE"
    status_code = 400


class ConflictError(ServiceError):
    """Concurrent modification or duplicate resource."""

    code = "CONFLICT"
    status_code = 409


class AuthenticationError(ServiceError):
    code = "UNAUTHORIZED"
    status_code = 401


class PersistenceFailure(ServiceError):
    """Storage layer error; the message is never exposed in production."""

    code = "PERSISTENCE_FAILURE"
    status_code = 500


class AccountDisabledError(ServiceError):
    code = "ACCOUNT_DISABLED"
    status_code = 403
