# Overview: Domain error taxonomy shared by services and routes.

"""
Stock operation errors.

Every error carries a stable machine code, an HTTP status for the route layer,
and an English/Khmer message pair. Routes serialize them with to_dict(); the
payload never contains stack traces or internal identifiers beyond what the
caller already supplied.
"""

from __future__ import annotations


class StockError(Exception):
    """Base class for failures surfaced to callers."""

    code = "STOCK_ERROR"
    status = 400
    message_kh = "បរាជ័យ។"

    def __init__(self, message: str, *, message_kh: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        if message_kh is not None:
            self.message_kh = message_kh
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "isSuccess": False,
            "code": self.code,
            "message": {
                "messageEn": self.message,
                "messageKh": self.message_kh,
            },
            "details": self.details,
        }


class NotFound(StockError):
    """Referenced product, sale, purchase order, supplier or shop does not exist."""
    code = "NOT_FOUND"
    status = 404
    message_kh = "រកមិនឃើញ"


class InsufficientStock(StockError):
    """The change would drive on-hand stock below zero."""
    code = "INSUFFICIENT_STOCK"
    status = 409
    message_kh = "ស្តុកមិនគ្រប់គ្រាន់"


class AlreadyRefunded(StockError):
    code = "ALREADY_REFUNDED"
    status = 409
    message_kh = "ការលក់នេះត្រូវបានសងប្រាក់វិញរួចហើយ"


class AlreadyReceived(StockError):
    code = "ALREADY_RECEIVED"
    status = 409
    message_kh = "ការបញ្ជាទិញនេះត្រូវបានទទួលរួចហើយ"


class InvalidStateTransition(StockError):
    code = "INVALID_STATE"
    status = 409
    message_kh = "ស្ថានភាពមិនត្រឹមត្រូវ"


class StockValidationError(StockError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"
    status = 400
    message_kh = "ទិន្នន័យមិនត្រឹមត្រូវ"


class DuplicateSku(StockError):
    code = "DUPLICATE_SKU"
    status = 409
    message_kh = "ទំនិញមាន SKU នេះរួចហើយ"


class ShopAccessDenied(StockError):
    code = "FORBIDDEN"
    status = 403
    message_kh = "អ្នកមិនមែនជាម្ចាស់ហាងនេះទេ"


class PersistenceFailure(StockError):
    """Store unavailable or a write failed; the unit of work was rolled back."""
    code = "PERSISTENCE_FAILURE"
    status = 500
    message_kh = "កំហុសក្នុងការរក្សាទុកទិន្នន័យ"


class AuthenticationRequired(StockError):
    """Request carries no acting user, or the user is unknown or inactive."""
    code = "UNAUTHENTICATED"
    status = 401
    message_kh = "សូមចូលប្រើប្រាស់ជាមុនសិន"


class PermissionDenied(StockError):
    """Acting user's role may not perform the operation."""
    code = "FORBIDDEN"
    status = 403
    message_kh = "អ្នកមិនមានសិទ្ធិ"


class InternalError(StockError):
    """Unexpected failure; details stay in the server log."""
    code = "INTERNAL_ERROR"
    status = 500
