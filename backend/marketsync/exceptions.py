"""
MarketSync Backend — Custom Exception Hierarchy
=================================================

What:  Typed failures for every fallible operation in the sync layer.
How:   Each exception carries a user-safe message and a context dict.
       Global handlers in main.py map them to HTTP status codes.
Who:   Raised by stores and managers; caught by route-level handlers and by
       the optimistic mirror flow (which rolls back on any of them).

Exception Hierarchy:
    MarketSyncError (base)
    ├── ValidationError        → 400 Bad Request (caught before any store call)
    ├── NotFoundError          → 404 Not Found
    ├── PermissionDeniedError  → 403 Forbidden
    ├── ConflictError          → 409 Conflict (explicit document id already taken)
    └── TransientStoreError    → 503 Service Unavailable (caller offers retry)

Idempotent operations (double follow, double unfollow) never raise.
"""

from typing import Any, Dict, Optional


class MarketSyncError(Exception):
    """
    Base exception for all MarketSync errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only for 4xx errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(MarketSyncError):
    """
    Raised when caller input fails a business rule.

    When: Blank message content, blank follow target, unknown sender role,
          non-positive service price.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(MarketSyncError):
    """
    Raised when a referenced user, conversation, item or document is absent.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class PermissionDeniedError(MarketSyncError):
    """
    Raised when the caller is not a participant entitled to the action.

    Access rules proper belong to the store. This layer only rejects a message
    whose declared author does not hold the declared role in the conversation.
    """

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConflictError(MarketSyncError):
    """
    Raised by a store when `create` is given an id that already exists.

    The conversation manager relies on this as its uniqueness constraint for
    the sorted pair key and converts it back into a successful lookup.
    """

    def __init__(
        self,
        collection: str,
        doc_id: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.update({"collection": collection, "doc_id": doc_id})
        super().__init__(
            message=f"Document '{doc_id}' already exists in '{collection}'",
            context=ctx,
        )
        self.collection = collection
        self.doc_id = doc_id


class TransientStoreError(MarketSyncError):
    """
    Raised when the persistent store is unreachable or a write fails.

    Never retried automatically by the managers. Optimistic local state must
    be rolled back when this surfaces.
    """

    def __init__(
        self,
        message: str = "The data store is temporarily unavailable. Please try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
