"""JSON file persistence for the secret document.

The whole document is read at startup and rewritten after every mutation.
Writes go straight to the target path; a crash mid-write leaves a file that
the next load discards as malformed.
"""

from __future__ import annotations

import json
import logging
import pathlib

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from secure_settings.errors import PersistenceError
from secure_settings.models import SecretEntry

logger = logging.getLogger(__name__)

SecretDocument = dict[str, SecretEntry]

_DOCUMENT_ADAPTER = TypeAdapter(SecretDocument)


class DocumentFile:
    """Reads and writes one secret document.

    Parameters
    ----------
    path:
        Location of the JSON file. Its parent directory is created on the
        first write.
    """

    def __init__(self, path: pathlib.Path) -> None:
        self._path = path

    @property
    def path(self) -> pathlib.Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> SecretDocument:
        """Return the stored document, or an empty one if missing or malformed."""
        if not self.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return _DOCUMENT_ADAPTER.validate_python(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, PydanticValidationError) as exc:
            logger.error("Failed to load secret document %s: %s", self._path, exc)
            return {}

    def save(self, document: SecretDocument) -> None:
        """Write *document* to disk. Raises ``PersistenceError`` on I/O failure."""
        payload = {key: entry.to_document() for key, entry in document.items()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"failed to write {self._path}: {exc}") from exc
