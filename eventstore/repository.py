"""
JSON file repository for the event document.

The whole store is one JSON object mapping each key to its event history.
Every call reads or writes the full document; there is no locking, so two
writers working from the same snapshot will overwrite each other.
"""

import json
import logging
import os

from django.conf import settings
from rest_framework import serializers

from eventstore.events import Document
from eventstore.exceptions import StoreParseError, StoreReadError, StoreWriteError
from eventstore.serializers import decode_document, encode_document

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = "data.json"


class JsonFileRepository:
    """Load and save the event document as a single JSON file."""

    def __init__(self, path: str) -> None:
        self.path = str(path)

    def initialise(self) -> None:
        """Create the data file holding an empty object if it does not exist."""
        if os.path.exists(self.path):
            return
        logger.info(f"Creating empty event document at {self.path}")
        self._write("{}")

    def load(self) -> Document:
        """
        Read and decode the full document.

        Raises:
            StoreReadError: If the file cannot be read
            StoreParseError: If the file is not valid JSON or breaks the document schema
        """
        try:
            with open(self.path, "rb") as f:
                raw = f.read()
        except OSError as e:
            logger.error(f"Failed to read event document {self.path}: {e}")
            raise StoreReadError(str(e)) from e

        try:
            data = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            # UnicodeDecodeError is a ValueError too
            logger.error(f"Event document {self.path} is not valid UTF-8 JSON: {e}")
            raise StoreParseError(str(e)) from e

        try:
            return decode_document(data)
        except serializers.ValidationError as e:
            logger.error(f"Event document {self.path} failed validation: {e.detail}")
            raise StoreParseError(f"invalid event document: {e.detail}") from e

    def save(self, document: Document) -> None:
        """
        Encode and write the full document.

        Raises:
            StoreWriteError: If the document cannot be serialized or written
        """
        try:
            payload = json.dumps(encode_document(document), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreWriteError(str(e)) from e
        self._write(payload)

    def _write(self, payload: str) -> None:
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(payload)
        except OSError as e:
            logger.error(f"Failed to write event document {self.path}: {e}")
            raise StoreWriteError(str(e)) from e


def get_repository() -> JsonFileRepository:
    """Build a repository for the data file named in settings."""
    return JsonFileRepository(getattr(settings, "EVENTSTORE_DATA_FILE", DEFAULT_DATA_FILE))
