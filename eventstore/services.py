"""
Event-log core.

The functions in the first half are pure: they take the full document, check
the requested transition against the key's derived state and return a new
document with one event appended. The input document is never modified.

The ``*_value`` functions wrap them in one load-validate-mutate-save cycle
against the repository. Nothing is written when a transition is rejected.
"""

import logging
from typing import List, Optional

from eventstore.events import Document, Event, KeyRecord, KeyState, key_state, latest_event
from eventstore.exceptions import (
    ERROR_INVALID_POST_BODY,
    ERROR_INVALID_PUT_BODY,
    InvalidBody,
    KeyDeleted,
    KeyExists,
    KeyNotFound,
)
from eventstore.repository import JsonFileRepository, get_repository

logger = logging.getLogger(__name__)


def _append(document: Document, key: str, event: Event) -> Document:
    updated = dict(document)
    updated[key] = [*document.get(key, []), event]
    return updated


def _require_value(value, message: str) -> None:
    if not isinstance(value, str) or not value:
        raise InvalidBody(message)


def create_event(document: Document, key: str, value: str) -> Document:
    """
    Append a create event for ``key``.

    A key that was never created gets a new record. A deleted key is brought
    back by appending to its existing record, so its history is kept.

    Raises:
        InvalidBody: If ``value`` is not a non-empty string
        KeyExists: If the key currently holds a value
    """
    _require_value(value, ERROR_INVALID_POST_BODY)
    if key_state(document, key) == KeyState.LIVE:
        raise KeyExists()
    return _append(document, key, Event.create(value))


def current_value(document: Document, key: str) -> Optional[str]:
    """
    Return the value of ``key``, or None if its latest event is a delete.

    Raises:
        KeyNotFound: If the key was never created
    """
    state = key_state(document, key)
    if state == KeyState.ABSENT:
        raise KeyNotFound()
    if state == KeyState.DELETED:
        return None
    return latest_event(document[key]).value


def update_event(document: Document, key: str, value: str) -> Document:
    """
    Append an update event for ``key``.

    Raises:
        InvalidBody: If ``value`` is not a non-empty string
        KeyNotFound: If the key was never created
        KeyDeleted: If the key has been deleted
    """
    _require_value(value, ERROR_INVALID_PUT_BODY)
    state = key_state(document, key)
    if state == KeyState.ABSENT:
        raise KeyNotFound()
    if state == KeyState.DELETED:
        raise KeyDeleted()
    return _append(document, key, Event.update(value))


def delete_event(document: Document, key: str) -> Document:
    """
    Append a delete event for ``key``.

    Raises:
        KeyNotFound: If the key was never created
        KeyDeleted: If the key is already deleted
    """
    state = key_state(document, key)
    if state == KeyState.ABSENT:
        raise KeyNotFound()
    if state == KeyState.DELETED:
        raise KeyDeleted()
    return _append(document, key, Event.delete())


def key_history(document: Document, key: str) -> KeyRecord:
    """Return every event recorded for ``key``, oldest first."""
    if key not in document:
        raise KeyNotFound()
    return list(document[key])


def create_value(key: str, value: str, repository: JsonFileRepository = None) -> None:
    """
    Create ``key`` with ``value`` and persist the document.

    Args:
        key: The key to create
        value: The initial value, must be non-empty
        repository: Store to use (defaults to the configured data file)

    Raises:
        KeyExists: If the key currently holds a value
        StoreError: If the document cannot be loaded or saved
    """
    repository = repository or get_repository()
    document = create_event(repository.load(), key, value)
    repository.save(document)
    logger.info(f"Created key {key} (history length {len(document[key])})")


def read_value(key: str, repository: JsonFileRepository = None) -> Optional[str]:
    """
    Read the current value of ``key``.

    Returns:
        The value, or None if the key has been deleted

    Raises:
        KeyNotFound: If the key was never created
        StoreError: If the document cannot be loaded
    """
    repository = repository or get_repository()
    return current_value(repository.load(), key)


def update_value(key: str, value: str, repository: JsonFileRepository = None) -> None:
    """
    Replace the value of a live key and persist the document.

    Raises:
        KeyNotFound: If the key was never created
        KeyDeleted: If the key has been deleted
        StoreError: If the document cannot be loaded or saved
    """
    repository = repository or get_repository()
    document = update_event(repository.load(), key, value)
    repository.save(document)
    logger.info(f"Updated key {key} (history length {len(document[key])})")


def delete_value(key: str, repository: JsonFileRepository = None) -> None:
    """
    Delete a live key and persist the document. Its history is kept.

    Raises:
        KeyNotFound: If the key was never created
        KeyDeleted: If the key is already deleted
        StoreError: If the document cannot be loaded or saved
    """
    repository = repository or get_repository()
    document = delete_event(repository.load(), key)
    repository.save(document)
    logger.info(f"Deleted key {key} (history length {len(document[key])})")


def read_history(key: str, repository: JsonFileRepository = None) -> List[Event]:
    """
    Return the full event history of ``key``.

    Raises:
        KeyNotFound: If the key was never created
        StoreError: If the document cannot be loaded
    """
    repository = repository or get_repository()
    return key_history(repository.load(), key)
