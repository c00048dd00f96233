from __future__ import annotations

import logging
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path

from .errors import AlreadyExists, ContentIOError, PlayableNotFound
from .security import (
    is_safe_identifier,
    is_safe_relative_path,
    make_playable_id,
    normalize_playable_id,
    resolves_inside,
    safe_html_filename,
)
from .zip_utils import ArchiveExtractor


logger = logging.getLogger(__name__)

ENTRY_HTML_SUFFIX = ".html"
_TOMBSTONE_PREFIX = ".deleting-"


@dataclass(frozen=True)
class ContentDirectory:
    playable_id: str
    root: Path


@dataclass(frozen=True)
class PlayableSummary:
    playable_id: str
    has_entry_html: bool


class ContentStore:
    """One content directory per playable id under a single uploads root.

    Directories are written only while an upload is being ingested; after
    that they are read-only until deleted.
    """

    def __init__(self, root: Path) -> None:
        root.mkdir(parents=True, exist_ok=True)
        self.root = root.resolve()

    def path_for(self, playable_id: str) -> Path:
        sid = normalize_playable_id(playable_id)
        return resolves_inside(self.root, sid)

    def get(self, playable_id: str) -> ContentDirectory:
        path = self.path_for(playable_id)
        if not path.is_dir():
            raise PlayableNotFound()
        return ContentDirectory(playable_id=playable_id, root=path)

    def create(self, playable_id: str) -> ContentDirectory:
        path = self.path_for(playable_id)
        try:
            path.mkdir()
        except FileExistsError as exc:
            raise AlreadyExists() from exc
        except OSError as exc:
            raise ContentIOError() from exc
        return ContentDirectory(playable_id=playable_id, root=path)

    def list(self) -> list[PlayableSummary]:
        """Snapshot of the playables currently on disk, sorted by id."""
        summaries: list[PlayableSummary] = []
        for child in sorted(self.root.iterdir(), key=lambda p: p.name):
            if child.name.startswith(".") or not is_safe_identifier(child.name):
                continue
            if child.is_symlink() or not child.is_dir():
                continue
            summaries.append(
                PlayableSummary(
                    playable_id=child.name,
                    has_entry_html=self.find_entry_html(child.name) is not None,
                )
            )
        return summaries

    def find_entry_html(self, playable_id: str) -> str | None:
        """Return the first ``.html`` file (POSIX relative path), or None.

        Candidates are ordered by their full relative path so the pick does
        not depend on directory traversal order. Hidden names (``._index.html``
        AppleDouble files from macOS archives, dot directories) never count.
        """
        root = self.path_for(playable_id)
        if not root.is_dir():
            return None
        candidates = sorted(
            p.relative_to(root).as_posix()
            for p in root.rglob("*")
            if p.suffix.lower() == ENTRY_HTML_SUFFIX
            and not any(part.startswith(".") for part in p.relative_to(root).parts)
            and p.is_file()
            and not p.is_symlink()
        )
        for rel in candidates:
            if is_safe_relative_path(rel):
                return rel
        return None

    def delete(self, playable_id: str) -> bool:
        """Remove a playable. Missing ids are a no-op; returns whether anything was removed.

        The directory is first renamed to a hidden tombstone so it vanishes
        from listings and serving in one step, then removed recursively.
        An id that is itself a symlink only loses the link, never its target.
        """
        link = self.root / normalize_playable_id(playable_id)
        if link.is_symlink():
            link.unlink()
            logger.info("Removed symlinked playable %s", playable_id)
            return True
        path = self.path_for(playable_id)
        if not path.exists():
            return False
        tombstone = self.root / f"{_TOMBSTONE_PREFIX}{uuid.uuid4().hex}"
        try:
            path.rename(tombstone)
        except FileNotFoundError:
            return False
        try:
            shutil.rmtree(tombstone)
        except OSError:
            logger.warning("Could not fully remove %s; left as %s", playable_id, tombstone.name, exc_info=True)
        logger.info("Deleted playable %s", playable_id)
        return True

    def purge_tombstones(self) -> int:
        """Remove leftovers of deletions that did not finish; returns how many."""
        purged = 0
        for child in self.root.iterdir():
            if not child.name.startswith(_TOMBSTONE_PREFIX) or not child.is_dir():
                continue
            shutil.rmtree(child, ignore_errors=True)
            purged += 1
        return purged

    def ingest(self, source: Path, original_filename: str, extractor: ArchiveExtractor) -> ContentDirectory:
        """Materialize an uploaded ``.zip`` or ``.html`` file as a new playable.

        A failed ingest never leaves a content directory behind.
        """
        content = self.create(make_playable_id(original_filename))
        try:
            if Path(original_filename).suffix.lower() == ".zip":
                extractor.extract(source, content.root)
            else:
                dest = resolves_inside(content.root, safe_html_filename(original_filename))
                try:
                    shutil.copyfile(source, dest)
                except OSError as exc:
                    raise ContentIOError() from exc
        except Exception:
            self.delete(content.playable_id)
            raise
        logger.info("Stored playable %s", content.playable_id)
        return content
