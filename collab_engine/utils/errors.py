"""Error taxonomy for the collaboration lifecycle engine."""

from typing import Any


class CollabEngineError(Exception):
    """Base exception for the collaboration engine."""

    code = "collab_error"
    retryable = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and structured logs."""
        return {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class InvalidTransition(CollabEngineError):
    """Requested status change is not an edge of the lifecycle graph."""
    code = "invalid_transition"


class Unauthorized(CollabEngineError):
    """Acting role lacks permission for the operation."""
    code = "unauthorized"


class PreconditionFailed(CollabEngineError):
    """Operation is legal in principle but its precondition does not hold."""
    code = "precondition_failed"


class AlreadyDone(CollabEngineError):
    """Idempotency violation: the role already performed this action."""
    code = "already_done"


class Conflict(CollabEngineError):
    """Concurrent write detected; the caller should reload and retry."""
    code = "conflict"
    retryable = True


class NotFound(CollabEngineError):
    """No collaboration with the given id."""
    code = "not_found"


class StorageError(CollabEngineError):
    """Supabase operation error."""
    code = "storage_error"
