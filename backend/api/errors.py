"""
Error types raised by the service layer.

Every error carries a stable ``kind`` (returned to clients as ``errorKind``)
and the HTTP status the API layer renders it with.
"""


class NavigatorError(Exception):
    """Base class for all expected service failures."""

    kind = "Error"
    status_code = 400

    def __init__(self, message: str, kind: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "errorKind": self.kind}


class InvalidInputError(NavigatorError):
    kind = "InvalidInput"


class FormatError(NavigatorError):
    kind = "FormatError"


class ExpiredError(NavigatorError):
    kind = "Expired"


class UnauthenticatedError(NavigatorError):
    kind = "Unauthenticated"
    status_code = 401


class PaymentError(NavigatorError):
    kind = "PaymentError"
    status_code = 402


class ConfigurationError(NavigatorError):
    """Required configuration (secrets, API keys) is missing."""
    kind = "ConfigurationError"
    status_code = 500


class DatasetUnavailableError(NavigatorError):
    """A chunked lookup dataset has not been generated or is unreadable."""
    kind = "DatasetUnavailable"
    status_code = 503
