from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .errors import InvalidId, InvalidPath, NotFound, TypeNotAllowed
from .security import is_safe_identifier, is_safe_relative_path, resolves_inside
from .workspace import ContentStore


logger = logging.getLogger(__name__)

FALLBACK_CONTENT_TYPE = "application/octet-stream"

# Fixed table so classification does not depend on the host's mime.types.
CONTENT_TYPES_BY_EXT = {
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    # Known, never served.
    ".txt": "text/plain",
    ".xml": "application/xml",
    ".php": "application/x-httpd-php",
    ".exe": "application/vnd.microsoft.portable-executable",
    ".zip": "application/zip",
}

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "text/html",
        "text/css",
        "text/javascript",
        "application/javascript",
        "image/png",
        "image/jpeg",
        "image/gif",
        "image/webp",
        "image/svg+xml",
        "audio/mpeg",
        "audio/wav",
        "video/mp4",
        "video/webm",
        "application/json",
        "font/woff",
        "font/woff2",
    }
)


def classify_content_type(path: Path) -> str:
    return CONTENT_TYPES_BY_EXT.get(path.suffix.lower(), FALLBACK_CONTENT_TYPE)


@dataclass(frozen=True)
class ServedFile:
    path: Path
    media_type: str
    size: int


class ContentServer:
    """Resolve ``(playable_id, relative_path)`` to a file that is safe to send.

    Every call re-validates from scratch; nothing about earlier lookups is
    cached. A concurrent delete can still remove the file after resolve()
    returns, in which case streaming fails with an I/O error.
    """

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def resolve(self, playable_id: str, relative_path: str) -> ServedFile:
        if not is_safe_identifier(playable_id):
            raise InvalidId()
        if not is_safe_relative_path(relative_path):
            raise InvalidPath()

        content_root = resolves_inside(self.store.root, playable_id)
        path = resolves_inside(content_root, relative_path)

        if not path.is_file():
            raise NotFound()

        media_type = classify_content_type(path)
        if media_type not in ALLOWED_CONTENT_TYPES:
            logger.warning("Refused %s file in playable %s", media_type, playable_id)
            raise TypeNotAllowed()

        try:
            size = path.stat().st_size
        except FileNotFoundError as exc:
            raise NotFound() from exc
        return ServedFile(path=path, media_type=media_type, size=size)
