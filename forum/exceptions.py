"""
================================================================================
FORUM DATA STORE - ERROR TAXONOMY
================================================================================

@file        exceptions.py
@description Exception classes and the Result wrapper used by the store
@version     1.0.0

PROPAGATION POLICY
================================================================================
Expected conditions (missing record, duplicate username/email, full meet,
bad reset token) are NOT raised. Repository and manager methods hand them
back inside a Result so the caller can map them to a 4xx response:

    result = store.users.add_user(username="demo", email="demo@x.com", ...)
    if not result.ok:
        return JsonResponse({"error": result.error.message}, status=result.error.status)

Only genuine storage failures (BackendUnavailable) and programming errors
(NotInitialized when lazy init is switched off) are raised.

================================================================================
"""

from dataclasses import dataclass
from typing import Any, Optional


# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class ForumStoreError(Exception):
    """Base class for every condition the forum store can report."""

    code = "forum_error"
    status = 500
    default_message = "Forum store error"

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def as_dict(self):
        return {"code": self.code, "message": self.message, **self.context}


class NotFound(ForumStoreError):
    code = "not_found"
    status = 404
    default_message = "Record not found"


class DuplicateKey(ForumStoreError):
    code = "duplicate_key"
    status = 409
    default_message = "A record with this key already exists"


class CapacityExceeded(ForumStoreError):
    code = "capacity_exceeded"
    status = 409
    default_message = "This meet is full"


class InvalidToken(ForumStoreError):
    # Unknown, expired and consumed tokens all map to this one error.
    code = "invalid_token"
    status = 400
    default_message = "Invalid or expired reset token"


class PostLocked(ForumStoreError):
    code = "post_locked"
    status = 423
    default_message = "This post is locked"


class InsufficientPoints(ForumStoreError):
    code = "insufficient_points"
    status = 400
    default_message = "Not enough points"


class BackendUnavailable(ForumStoreError):
    code = "backend_unavailable"
    status = 503
    default_message = "Storage backend unavailable"


class NotInitialized(ForumStoreError):
    code = "not_initialized"
    status = 503
    default_message = "Forum store has not been initialized"


# ============================================================================
# RESULT WRAPPER
# ============================================================================

@dataclass(frozen=True)
class Result:
    """
    Outcome of an operation that can fail in an expected way.

    Attributes:
        value: Payload on success (record, token string, ...)
        error: ForumStoreError instance on failure, never raised by the store

    Example:
        result = store.rsvp.rsvp(meet_id, user_id, name, email)
        if result.ok:
            meet = result.value
        elif isinstance(result.error, CapacityExceeded):
            ...
    """

    value: Any = None
    error: Optional[ForumStoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    def unwrap(self):
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(cls, value=None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ForumStoreError) -> "Result":
        return cls(error=error)
