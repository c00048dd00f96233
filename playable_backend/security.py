from __future__ import annotations

import posixpath
import re
import time
from pathlib import Path

from .config import MAX_BASENAME_LENGTH, MAX_IDENTIFIER_LENGTH
from .errors import InvalidId, PathEscape


_IDENTIFIER_RE = re.compile(r"[A-Za-z0-9._-]+")
_UNSAFE_NAME_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]")
_DOT_RUN_RE = re.compile(r"\.{2,}")


def is_safe_relative_path(candidate: str) -> bool:
    """Check a client- or archive-supplied path before it touches the disk.

    Rejects empty strings, anything containing ``..`` (before or after
    normalization), absolute paths, drive letters and NUL bytes. Backslashes
    count as separators so ``..\\..\\x`` is caught on every platform.
    """
    if not isinstance(candidate, str) or not candidate.strip():
        return False
    if "\x00" in candidate or ":" in candidate:
        # block drive letters / weird schemes
        return False
    unified = candidate.replace("\\", "/")
    if ".." in unified or unified.startswith("/"):
        return False
    normalized = posixpath.normpath(unified)
    if ".." in normalized or posixpath.isabs(normalized):
        return False
    return True


def is_safe_identifier(candidate: str) -> bool:
    """Allow only ``[A-Za-z0-9._-]`` ids short enough to be a directory name.

    Ids end up both in URLs and as directory names under the uploads root,
    so ``.`` and ``..`` are refused even though they match the character class.
    """
    if not isinstance(candidate, str) or not candidate:
        return False
    if len(candidate) > MAX_IDENTIFIER_LENGTH:
        return False
    if candidate in (".", ".."):
        return False
    return _IDENTIFIER_RE.fullmatch(candidate) is not None


def normalize_playable_id(playable_id: str) -> str:
    if not is_safe_identifier(playable_id):
        raise InvalidId()
    return playable_id


def is_safe_basename(name: str) -> bool:
    """Allow only simple filenames (no directories)."""
    if not isinstance(name, str) or not name:
        return False
    if name != Path(name).name:
        return False
    if "/" in name or "\\" in name:
        return False
    return is_safe_relative_path(name)


def resolves_inside(root: Path, *parts: str) -> Path:
    """Join paths onto root and ensure the canonical result stays within it.

    Symlinks are resolved first, so a link pointing out of the root fails
    the same way a ``..`` segment would.
    """
    root = root.resolve()
    candidate = root
    for part in parts:
        candidate = candidate / part
    resolved = candidate.resolve()
    if resolved == root:
        return resolved
    if root not in resolved.parents:
        raise PathEscape()
    return resolved


def sanitize_basename(filename: str) -> str:
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_NAME_CHARS_RE.sub("", name)[:MAX_BASENAME_LENGTH]
    return _DOT_RUN_RE.sub(".", name)


def make_playable_id(original_filename: str, timestamp_ns: int | None = None) -> str:
    """Build ``{timestamp}_{stem}`` from an uploaded file name.

    The stem keeps only identifier characters and loses its extension.
    """
    if timestamp_ns is None:
        timestamp_ns = time.time_ns()
    stem = sanitize_basename(original_filename)
    stem = re.sub(r"\.[^.]*$", "", stem) or "playable"
    playable_id = f"{timestamp_ns}_{stem}"
    return normalize_playable_id(playable_id)


def safe_html_filename(original_filename: str) -> str:
    """Filename used when a single HTML upload is copied into its directory."""
    name = sanitize_basename(original_filename).lstrip(".")
    if not name.lower().endswith(".html") or len(name) <= len(".html"):
        return "index.html"
    if not is_safe_basename(name):
        return "index.html"
    return name
