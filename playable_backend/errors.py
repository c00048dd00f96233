"""Error kinds raised by the ingestion and serving code.

Every kind maps to one HTTP status and a generic message. Route handlers only
ever forward ``status_code`` and ``detail``, so filesystem paths and library
exceptions never reach the client.
"""

from __future__ import annotations


class PlayableError(Exception):
    status_code = 500
    detail = "Server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.detail)


class InvalidId(PlayableError, ValueError):
    status_code = 400
    detail = "Invalid playable ID"


class InvalidPath(PlayableError, ValueError):
    status_code = 400
    detail = "Invalid file path"


class PathEscape(PlayableError, ValueError):
    status_code = 403
    detail = "Access denied"


class TypeNotAllowed(PlayableError):
    status_code = 403
    detail = "File type not allowed"


class NotFound(PlayableError):
    status_code = 404
    detail = "File not found"


class PlayableNotFound(NotFound):
    detail = "Playable not found"


class AlreadyExists(PlayableError):
    status_code = 409
    detail = "Playable already exists"


class ExtractError(PlayableError):
    status_code = 400
    detail = "Archive extraction failed"


class TooManyEntries(ExtractError):
    detail = "Too many files in archive"


class FileTooLarge(ExtractError):
    status_code = 413
    detail = "File too large in archive"


class UnsafePath(ExtractError):
    detail = "Invalid file path in archive"


class DuplicateEntry(ExtractError):
    detail = "Duplicate file name in archive"


class InvalidArchive(ExtractError):
    detail = "Invalid ZIP"


class ContentIOError(ExtractError):
    status_code = 500
    detail = "Could not write playable contents"


class UploadTooLarge(PlayableError):
    status_code = 413
    detail = "File too large"


class UploadRejected(PlayableError, ValueError):
    status_code = 400
    detail = "Only HTML and ZIP files are allowed"
