# Overview: Service error hierarchy shared by services, routes and the CLI.

"""
Service errors.

Every error a service raises on purpose derives from ServiceError and carries
the HTTP status the route layer should answer with. Routes never inspect the
message to pick a status code.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for expected service failures."""

    status_code = 400

    def __init__(self, message: str, errors: list[str] | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.errors = list(errors or [])
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"success": False, "message": self.message}
        if self.errors:
            payload["errors"] = self.errors
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ServiceError):
    """Malformed or out-of-range input."""
    status_code = 400


class UnauthorizedError(ServiceError):
    """No principal, or the principal cannot be resolved to a tenant."""
    status_code = 401


class ForbiddenError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    """Row absent, or present only in another tenant."""
    status_code = 404


class SaleNotFound(NotFoundError):
    def __init__(self, sale_id=None):
        super().__init__("Sale not found", details={"sale_id": sale_id} if sale_id is not None else None)


class ProductNotFound(NotFoundError):
    def __init__(self, product_id=None):
        msg = f"Product with ID {product_id} not found" if product_id is not None else "Product not found"
        super().__init__(msg, details={"product_id": product_id} if product_id is not None else None)


class InsufficientStockError(ServiceError):
    status_code = 409

    def __init__(self, product_name: str, available: int, requested: int, product_id: int | None = None):
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}, Requested: {requested}",
            details={"product_id": product_id, "available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class DuplicateConflictError(ServiceError):
    status_code = 409


class InternalFailure(ServiceError):
    status_code = 500
