"""
Exception types raised by the event-log core and the document store.
"""

from typing import Optional

from rest_framework.views import exception_handler

ERROR_KEY_EXISTS = "Error: the specified key already exists"
ERROR_KEY_DELETED = "Error: the specified key has been deleted"
ERROR_KEY_NOT_FOUND = "Error: the specified key does not exist"
ERROR_INVALID_POST_BODY = (
    'Error: request body must be of the form {"key":"value"} '
    "with Content-Type application/json"
)
ERROR_INVALID_PUT_BODY = (
    "Error: request body must be a single value with Content-Type text/plain"
)
ERROR_UNEXPECTED = "Unexpected error:"


class EventStoreError(Exception):
    """Base class for every error raised by the event store."""

    default_message = ""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class InvalidBody(EventStoreError):
    """Raised when a request body does not have the expected shape."""

    default_message = ERROR_INVALID_POST_BODY


class KeyNotFound(EventStoreError):
    """Raised when a key has never been created."""

    default_message = ERROR_KEY_NOT_FOUND


class KeyExists(EventStoreError):
    """Raised when creating a key whose latest event is live."""

    default_message = ERROR_KEY_EXISTS


class KeyDeleted(EventStoreError):
    """Raised when updating or deleting a key whose latest event is a delete."""

    default_message = ERROR_KEY_DELETED


class InconsistentRecordError(EventStoreError):
    """Raised when a key record breaks its own invariants (e.g. it is empty)."""


class StoreError(EventStoreError):
    """Raised when the backing document cannot be read or written."""


class StoreReadError(StoreError):
    pass


class StoreParseError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


def plain_text_exception_handler(exc, context):
    """
    DRF exception handler that flattens ``{"detail": ...}`` into a plain string.

    Routing-level errors (405, 406, 415 raised by DRF itself) are then rendered
    by the view's renderer as text instead of a stringified dict.
    """
    response = exception_handler(exc, context)
    if response is not None and isinstance(response.data, dict) and "detail" in response.data:
        response.data = str(response.data["detail"])
    return response
