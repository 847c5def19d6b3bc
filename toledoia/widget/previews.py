"""Local preview URLs for uploads and file URL normalisation."""

from __future__ import annotations

import re
import uuid

from toledoia.widget.models import UploadFile

PREVIEW_URL_PREFIX = "blob:toledoia/"

# Zero-width, BOM and C0/C1 control characters.
_INVISIBLE_CHARS = re.compile(r"[\u200b-\u200d\ufeff\x00-\x1f\x7f-\x9f]")


class PreviewURLRegistry:
    """Hands out short-lived local URLs that stand in for an upload's bytes.

    A preview URL is only meaningful inside this process; it is shown while
    the upload is in flight and replaced by the server URL once confirmed.
    """

    def __init__(self) -> None:
        self._entries: dict[str, UploadFile] = {}

    def create(self, upload: UploadFile) -> str:
        url = f"{PREVIEW_URL_PREFIX}{uuid.uuid4()}"
        self._entries[url] = upload
        return url

    def resolve(self, url: str) -> UploadFile | None:
        return self._entries.get(url)

    def revoke(self, url: str) -> bool:
        return self._entries.pop(url, None) is not None

    def revoke_all(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def is_preview_url(url: str | None) -> bool:
    return bool(url) and url.startswith(PREVIEW_URL_PREFIX)


def normalize_file_url(file_url: str | None, base_url: str) -> str:
    """Turn a stored file URL into one a client can fetch.

    Invisible characters are stripped. Absolute http(s) URLs and local
    preview URLs are returned as-is; anything else is treated as a path on
    the backend.

    Args:
        file_url: URL as stored on the message.
        base_url: Backend origin, without trailing slash.

    Returns:
        The fetchable URL, or "" when there is none.
    """
    if not file_url:
        return ""

    clean = _INVISIBLE_CHARS.sub("", file_url)
    if clean.startswith("http") or is_preview_url(clean):
        return clean
    if not clean.startswith("/"):
        clean = f"/{clean}"
    return f"{base_url.rstrip('/')}{clean}"
