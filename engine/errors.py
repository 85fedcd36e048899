class EngineError(Exception):
    """Expected business failure, mapped to a JSON error by the app.

    Races (conflicting transitions, replayed operations) are *not* errors;
    they travel on result objects instead.
    """

    code = "ENGINE_ERROR"
    http_status = 400

    def __init__(self, message=None, **details):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details


class InvalidInput(EngineError):
    code = "INVALID_INPUT"
    http_status = 400


class PermissionDenied(EngineError):
    code = "FORBIDDEN"
    http_status = 403


class NotFound(EngineError):
    code = "NOT_FOUND"
    http_status = 404


class InvalidState(EngineError):
    code = "INVALID_STATE"
    http_status = 409


class CapacityExceeded(EngineError):
    code = "CAPACITY_EXCEEDED"
    http_status = 409


class SlotRejected(EngineError):
    """Booking date/time outside the configured window or business hours."""

    code = "SLOT_REJECTED"
    http_status = 400


class InsufficientBalance(EngineError):
    code = "INSUFFICIENT_BALANCE"
    http_status = 422


class InsufficientPoints(EngineError):
    code = "INSUFFICIENT_POINTS"
    http_status = 422
