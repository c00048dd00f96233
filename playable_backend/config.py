from __future__ import annotations

import logging
import os
import secrets
import tempfile
from dataclasses import dataclass, field
from pathlib import Path


logger = logging.getLogger(__name__)

# playable_backend/ -> project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _env_int(key: str, default: int, min_value: int = 1) -> int:
    raw = os.environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return max(min_value, int(raw))
    except ValueError:
        logger.warning("Invalid value for %s: %r. Using default: %d", key, raw, default)
        return default


def _env_bool(key: str, default: bool = False) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_path(key: str, default: Path) -> Path:
    raw = os.environ.get(key)
    if raw and raw.strip():
        return Path(raw).expanduser().resolve()
    return default.resolve()


# Root directory holding one content directory per playable.
# Override with env var PLAYABLE_UPLOADS_ROOT.
UPLOADS_ROOT = _env_path("PLAYABLE_UPLOADS_ROOT", PROJECT_ROOT / "uploads")

# Where multipart uploads are spooled before extraction.
TEMP_DIR = _env_path("PLAYABLE_TEMP_DIR", Path(tempfile.gettempdir()))

PORT = _env_int("PORT", 3000)
BASE_URL = (os.environ.get("BASE_URL") or f"http://localhost:{PORT}").rstrip("/")

ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD") or "admin123"
# Sessions do not survive a restart unless SESSION_SECRET is set.
SESSION_SECRET = os.environ.get("SESSION_SECRET") or secrets.token_hex(64)
SECURE_COOKIES = _env_bool("PLAYABLE_SECURE_COOKIES")
SESSION_MAX_AGE_SECONDS = 24 * 60 * 60

LOG_LEVEL = (os.environ.get("PLAYABLE_LOG_LEVEL") or "INFO").upper()

# Upload limits.
MAX_UPLOAD_BYTES = _env_int("PLAYABLE_MAX_UPLOAD_BYTES", 50 * 1024 * 1024)  # 50MB
MAX_ARCHIVE_ENTRIES = _env_int("PLAYABLE_MAX_ARCHIVE_ENTRIES", 1000)
MAX_ENTRY_BYTES = _env_int("PLAYABLE_MAX_ENTRY_BYTES", 10 * 1024 * 1024)  # 10MB per file
UPLOAD_CHUNK_BYTES = 1024 * 1024

# Per client IP, in the "count per period" syntax of the limits package.
LOGIN_RATE_LIMIT = os.environ.get("PLAYABLE_LOGIN_RATE_LIMIT") or "5 per 15 minutes"
UPLOAD_RATE_LIMIT = os.environ.get("PLAYABLE_UPLOAD_RATE_LIMIT") or "10 per minute"

ALLOWED_UPLOAD_EXTS = {".html", ".zip"}
ALLOWED_UPLOAD_MIMES = {"text/html", "application/zip", "application/x-zip-compressed"}

MAX_IDENTIFIER_LENGTH = 128
MAX_BASENAME_LENGTH = 50


@dataclass(frozen=True)
class Settings:
    uploads_root: Path = UPLOADS_ROOT
    temp_dir: Path = TEMP_DIR
    base_url: str = BASE_URL
    admin_password: str = ADMIN_PASSWORD
    session_secret: str = field(default=SESSION_SECRET, repr=False)
    secure_cookies: bool = SECURE_COOKIES
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    max_archive_entries: int = MAX_ARCHIVE_ENTRIES
    max_entry_bytes: int = MAX_ENTRY_BYTES
