from __future__ import annotations

"""Engine error kinds.

Every refusal raised by the engine is one of these. They carry the HTTP status
the API layer answers with, so routers never translate them by hand.
"""


class EngineError(Exception):
    status_code = 400
    code = "engine_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(EngineError):
    status_code = 404
    code = "not_found"


class Conflict(EngineError):
    """A locker, slot or open session is already held by a live entry."""

    status_code = 409
    code = "conflict"


class SlotConflict(Conflict):
    code = "slot_conflict"


class InsufficientBalance(EngineError):
    status_code = 409
    code = "insufficient_balance"


class AlreadyClosed(EngineError):
    status_code = 409
    code = "already_closed"


class InvalidTransition(EngineError):
    status_code = 409
    code = "invalid_transition"


class ValidationError(EngineError):
    status_code = 422
    code = "validation_error"


class Forbidden(EngineError):
    status_code = 403
    code = "forbidden"
