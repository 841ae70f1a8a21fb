"""
Error taxonomy for the kiosk order pipeline
"""
from typing import Any, Dict, Optional


class KioskError(Exception):
    """Base class; ``code`` is the stable identifier surfaced to views"""
    code = "KioskError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "code": self.code, "error": self.message}


class CatalogLoadError(KioskError):
    code = "CatalogLoad"


class StockInsufficientError(KioskError):
    code = "StockInsufficient"

    def __init__(self, decision, message: str = ""):
        reason = decision.reason
        super().__init__(message or (reason.describe() if reason else "Insufficient stock"))
        self.decision = decision

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["stock"] = self.decision.to_dict()
        return data


class OrderNotFoundError(KioskError):
    code = "OrderNotFound"


class OrderImmutableError(KioskError):
    code = "OrderImmutable"


class NetworkError(KioskError):
    code = "Network"


class ServerError(KioskError):
    code = "ServerError"

    def __init__(self, status_code: int, message: str = "Server error, please try again"):
        super().__init__(message)
        self.status_code = status_code


class ApiError(KioskError):
    """4xx response; ``message`` is the server's text verbatim"""
    code = "ApiError"

    def __init__(self, status_code: int, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class RequestAborted(KioskError):
    code = "Aborted"


class ValidationError(KioskError):
    code = "Validation"


class MissingTheaterError(KioskError):
    code = "MissingTheater"


class CheckoutStateError(KioskError):
    code = "CheckoutState"
