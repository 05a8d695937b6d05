"""
Fulfillment Exception Hierarchy

All exceptions carry code, message and details for the audit trail.
HTTP status codes live on the class so the API layer can translate them
without a lookup table.

Exception Hierarchy:
    FulfillmentError
    ├── ShipmentNotFoundError
    ├── ShipmentForbiddenError
    ├── ProductNotFoundError
    ├── InvalidStatusError
    ├── CarrierUnavailableError
    └── PersistenceError
"""
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class FulfillmentError(Exception):
    """
    Base exception for all fulfillment errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
    """

    default_code: str = "FulfillmentError"
    default_severity: str = "P2"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ShipmentNotFoundError(FulfillmentError):
    """No shipment matches the identifier or lookup value."""
    default_code = "NotFound"
    default_severity = "P3"
    status_code = 404


class ShipmentForbiddenError(FulfillmentError):
    """The shipment exists but belongs to another business."""
    default_code = "Forbidden"
    default_severity = "P2"
    status_code = 403


class ProductNotFoundError(FulfillmentError):
    """A new shipment references a product that does not exist."""
    default_code = "ProductNotFound"
    default_severity = "P3"
    status_code = 422


class InvalidStatusError(FulfillmentError):
    """Requested status is outside the shipment vocabulary."""
    default_code = "InvalidStatus"
    default_severity = "P3"
    status_code = 422

    def __init__(self, requested: Any, **kwargs):
        self.requested = requested
        super().__init__(f"Invalid shipment status: {requested!r}", **kwargs)


class CarrierUnavailableError(FulfillmentError):
    """A carrier API could not be reached or answered with garbage."""
    default_code = "CarrierUnavailable"
    default_severity = "P3"
    status_code = 502

    def __init__(self, carrier: str, message: str, **kwargs):
        self.carrier = carrier
        details = kwargs.pop("details", None) or {}
        details.setdefault("carrier", carrier)
        super().__init__(message, details=details, **kwargs)


class PersistenceError(FulfillmentError):
    """The store rejected a write. Nothing from the unit of work was kept; safe to retry."""
    default_code = "PersistenceFailure"
    default_severity = "P1"
    status_code = 503
