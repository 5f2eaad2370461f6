"""Domain errors raised by the service layer.

All of them are ``ValueError`` subclasses so callers that only care about
"business rule rejected this" can keep catching ``ValueError``. The API layer
maps each class to an HTTP status via ``status_code``.
"""


class MarketplaceError(ValueError):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(MarketplaceError):
    status_code = 400


class Unauthorized(MarketplaceError):
    status_code = 401


class Forbidden(MarketplaceError):
    status_code = 403


class NotFound(MarketplaceError):
    status_code = 404


class Conflict(MarketplaceError):
    status_code = 409


class InvalidTransition(Conflict):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot transition order from {current} to {requested}")
        self.current = current
        self.requested = requested
