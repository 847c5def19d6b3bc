"""Visitor identity for the widget.

The visitor id correlates sessions across visits from the same installation.
It is generated once and kept in a small JSON key/value file, the counterpart
of the browser's local storage. When that file cannot be read or written the
widget still works with a throwaway id for the life of the process.
"""

from __future__ import annotations

import json
import logging
import secrets
import string
import uuid
from pathlib import Path

from toledoia.config.settings import settings

logger = logging.getLogger(__name__)

VISITOR_ID_KEY = "toledoia_visitor_id"

_FALLBACK_ALPHABET = string.ascii_lowercase + string.digits
_FALLBACK_LENGTH = 13


class LocalStorage:
    """String key/value store persisted as one JSON object on disk.

    Every call re-reads the file so separate processes sharing the path see
    each other's writes. Read/write failures propagate as ``OSError`` or
    ``ValueError`` (corrupt JSON).
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path is not None else settings.VISITOR_STORE_PATH

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            raise ValueError(f"{self._path} does not hold a JSON object")
        return data

    def _save(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get_item(self, key: str) -> str | None:
        value = self._load().get(key)
        return str(value) if value is not None else None

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)


def random_visitor_id() -> str:
    """Short random id used when storage is unavailable."""
    return "".join(secrets.choice(_FALLBACK_ALPHABET) for _ in range(_FALLBACK_LENGTH))


def get_or_create_visitor_id(storage: LocalStorage) -> str:
    """Return the stored visitor id, generating and persisting one if absent.

    Args:
        storage: Where the id lives.

    Returns:
        The persisted UUID string, or a non-persisted random id when the
        storage cannot be used.
    """
    try:
        visitor_id = storage.get_item(VISITOR_ID_KEY)
        if not visitor_id:
            visitor_id = str(uuid.uuid4())
            storage.set_item(VISITOR_ID_KEY, visitor_id)
            logger.info("Generated new visitor id %s", visitor_id)
        return visitor_id
    except (OSError, ValueError) as e:
        logger.warning("Visitor storage unavailable (%s); using a temporary id", e)
        return random_visitor_id()


def reset_visitor_id(storage: LocalStorage) -> None:
    """Forget the stored visitor id so the next lookup generates a new one."""
    storage.remove_item(VISITOR_ID_KEY)
