"""
Error taxonomy for the order core.

Propagation policy:
- ValidationError stops a workflow immediately and is shown to the caller.
- CarrierError subclasses are contained by the orchestrator: the order is
  still written, without a tracking number.
- PersistenceError on the order write is fatal to the request.
"""

from __future__ import annotations


class OrderCoreError(Exception):
    """Base class for every error raised by the order core."""


class ValidationError(OrderCoreError):
    """Malformed or missing input. Never retried."""


class ConfigurationError(OrderCoreError):
    """Required configuration (environment or config table) is missing."""


class CarrierError(OrderCoreError):
    """Parcel carrier failure."""


class CarrierAuthError(CarrierError):
    """The carrier credential endpoint was unreachable or rejected us."""


class CarrierRequestError(CarrierError):
    """A shipment call failed; `message` carries the carrier text when present."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(OrderCoreError):
    """The store is unavailable or rejected a write."""


class DuplicateKeyError(PersistenceError):
    """A uniqueness constraint was violated. Retryable for generated keys."""


class ClassificationAmbiguous(PersistenceError):
    """The lead lookup behind a classification could not be completed."""


class OrderNotFoundError(OrderCoreError):
    """No order matches the given identifier."""


class NotificationError(OrderCoreError):
    """The messaging channel did not accept a message."""


__all__ = [
    "OrderCoreError",
    "ValidationError",
    "ConfigurationError",
    "CarrierError",
    "CarrierAuthError",
    "CarrierRequestError",
    "PersistenceError",
    "DuplicateKeyError",
    "ClassificationAmbiguous",
    "OrderNotFoundError",
    "NotificationError",
]
