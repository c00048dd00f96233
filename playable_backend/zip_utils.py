from __future__ import annotations

import logging
import shutil
import uuid
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from fastapi import UploadFile

from .config import (
    ALLOWED_UPLOAD_EXTS,
    ALLOWED_UPLOAD_MIMES,
    MAX_ARCHIVE_ENTRIES,
    MAX_ENTRY_BYTES,
    UPLOAD_CHUNK_BYTES,
)
from .errors import (
    ContentIOError,
    DuplicateEntry,
    FileTooLarge,
    InvalidArchive,
    PathEscape,
    TooManyEntries,
    UnsafePath,
    UploadRejected,
    UploadTooLarge,
)
from .security import is_safe_basename, is_safe_relative_path, resolves_inside


logger = logging.getLogger(__name__)

_COPY_CHUNK_BYTES = 64 * 1024


@dataclass(frozen=True)
class ArchiveEntry:
    name: str  # raw, as stored in the archive
    is_directory: bool
    uncompressed_size: int
    info: zipfile.ZipInfo

    @property
    def basename(self) -> str:
        return self.name.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]


def iter_archive_entries(zf: zipfile.ZipFile) -> Iterator[ArchiveEntry]:
    for info in zf.infolist():
        yield ArchiveEntry(
            name=info.filename,
            is_directory=info.is_dir(),
            uncompressed_size=info.file_size,
            info=info,
        )


class ArchiveExtractor:
    """Extract a ZIP into a flat content directory.

    Rules, checked per entry in archive order before anything is written:
    - at most ``max_entries`` entries (directories included)
    - no Zip Slip (absolute paths, '..', drive letters)
    - at most ``max_entry_bytes`` declared per file; a member whose real size
      differs from its header fails as an invalid archive
    - directory entries are skipped; files land at ``destination/<basename>``

    The first failure aborts. Files already written stay in place; the caller
    owns the destination and must discard it.
    """

    def __init__(
        self,
        max_entries: int = MAX_ARCHIVE_ENTRIES,
        max_entry_bytes: int = MAX_ENTRY_BYTES,
    ) -> None:
        self.max_entries = max_entries
        self.max_entry_bytes = max_entry_bytes

    def extract(self, archive_path: Path, destination_dir: Path) -> list[str]:
        """Returns the names of the files written, sorted."""
        try:
            zf = zipfile.ZipFile(archive_path)
        except zipfile.BadZipFile as exc:
            raise InvalidArchive() from exc
        except OSError as exc:
            raise ContentIOError() from exc

        written: dict[str, str] = {}
        with zf:
            for count, entry in enumerate(iter_archive_entries(zf), start=1):
                if count > self.max_entries:
                    raise TooManyEntries()
                if not is_safe_relative_path(entry.name):
                    logger.warning("Rejected archive entry %r in %s", entry.name, archive_path.name)
                    raise UnsafePath()
                if entry.is_directory:
                    continue
                if entry.uncompressed_size > self.max_entry_bytes:
                    raise FileTooLarge()

                basename = entry.basename
                if not is_safe_basename(basename):
                    raise UnsafePath()
                # Case-folded so two entries never share a file on case-insensitive disks.
                if basename.lower() in written:
                    raise DuplicateEntry()
                try:
                    dest = resolves_inside(destination_dir, basename)
                except PathEscape as exc:
                    raise UnsafePath() from exc

                self._copy_entry(zf, entry, dest)
                written[basename.lower()] = basename

        return sorted(written.values())

    def _copy_entry(self, zf: zipfile.ZipFile, entry: ArchiveEntry, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            # ZipExtFile stops at the declared file_size and checks the CRC,
            # so a member whose header understates its size ends in BadZipFile.
            with zf.open(entry.info) as src, dest.open("xb") as out:
                shutil.copyfileobj(src, out, _COPY_CHUNK_BYTES)
        except (RuntimeError, NotImplementedError, zipfile.BadZipFile, zlib.error, EOFError) as exc:
            # encrypted members, unsupported compression, corrupt or forged data
            raise InvalidArchive() from exc
        except OSError as exc:
            raise ContentIOError() from exc


def check_upload_type(filename: str | None, content_type: str | None) -> str:
    """Validate extension and declared MIME type; returns the lowercased extension."""
    ext = Path(filename or "").suffix.lower()
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if ext not in ALLOWED_UPLOAD_EXTS or mime not in ALLOWED_UPLOAD_MIMES:
        raise UploadRejected()
    return ext


async def spool_upload(file: UploadFile, temp_dir: Path, max_bytes: int) -> Path:
    """Stream an upload to a private temp file, enforcing ``max_bytes``.

    The caller removes the returned file. On failure it is already removed.
    """
    temp_dir.mkdir(parents=True, exist_ok=True)
    dest = temp_dir / f"playable-upload-{uuid.uuid4().hex}"
    total = 0
    try:
        with dest.open("xb") as out:
            while True:
                chunk = await file.read(UPLOAD_CHUNK_BYTES)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    raise UploadTooLarge()
                out.write(chunk)
    except UploadTooLarge:
        dest.unlink(missing_ok=True)
        raise
    except OSError as exc:
        dest.unlink(missing_ok=True)
        raise ContentIOError() from exc
    return dest
