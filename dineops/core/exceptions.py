"""
Domain Exceptions

Every failure the core raises derives from DineOpsError and carries a
machine-readable error_code plus a retryable flag, mirroring the
error_code / error_message pair the service results expose. The HTTP
layer maps each class to a status code.
"""

from typing import Optional


class DineOpsError(Exception):
    """Base class for all domain errors."""

    error_code = "dineops_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": False,
            "error": self.error_code,
            "detail": self.message,
            "retryable": self.retryable,
        }


class ValidationError(DineOpsError):
    """Missing or malformed input; surfaced inline to the user."""

    error_code = "validation_error"
    status_code = 400

    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFound(DineOpsError):
    """A referenced restaurant, food, table, order or document is absent."""

    error_code = "not_found"
    status_code = 404

    def __init__(self, kind: str, identifier: object):
        super().__init__(f"{kind} '{identifier}' not found")
        self.kind = kind
        self.identifier = identifier


class WriteFailure(DineOpsError):
    """The store could not complete a write. The caller may retry."""

    error_code = "write_failure"
    status_code = 503
    retryable = True


class CommitTimeout(WriteFailure):
    """The commit write step exceeded its time budget."""

    error_code = "commit_timeout"
    status_code = 504


class WriteConflict(DineOpsError):
    """
    A conditional write lost to a concurrent one: the document it meant to
    create already exists, or a field it expected has changed. Nothing in
    the batch was applied.
    """

    error_code = "write_conflict"
    status_code = 409
    retryable = True

    def __init__(self, collection: str, doc_id: str, reason: str):
        super().__init__(f"{collection}/{doc_id}: {reason}")
        self.collection = collection
        self.doc_id = doc_id
        self.reason = reason


class EntitlementBlocked(DineOpsError):
    """The tenant was blocked by a platform operator. Fatal to the session."""

    error_code = "entitlement_blocked"
    status_code = 403

    def __init__(self, tenant_id: str, reason: Optional[str] = None):
        super().__init__(
            f"Restaurant '{tenant_id}' is blocked"
            + (f": {reason}" if reason else "")
        )
        self.tenant_id = tenant_id
        self.reason = reason


class InvalidTransition(DineOpsError):
    """An order status change the state machine does not allow."""

    error_code = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move order from '{current}' to '{target}'")
        self.current = current
        self.target = target
