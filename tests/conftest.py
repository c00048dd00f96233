"""Shared fixtures for the playable preview tests."""

from __future__ import annotations

import io
import os
import struct
import sys
import tempfile
import zipfile
from pathlib import Path
from typing import Iterable, Mapping, Union

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Importing server builds the default app; keep its uploads root out of the project.
os.environ.setdefault("PLAYABLE_UPLOADS_ROOT", str(Path(tempfile.gettempdir()) / "playable-preview-tests"))

from playable_backend.serving import ContentServer
from playable_backend.workspace import ContentStore


ZipMembers = Union[Mapping[str, bytes], Iterable[tuple]]


def write_zip(path: Path, members: ZipMembers) -> Path:
    """Write a ZIP whose member names are stored exactly as given."""
    items = members.items() if isinstance(members, Mapping) else members
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in items:
            info = zipfile.ZipInfo(name)
            if not name.endswith("/"):
                info.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(info, data)
    return path


def forge_declared_size(data: bytes, declared: int) -> bytes:
    """Rewrite every member's uncompressed size in its local and central headers."""
    forged = bytearray(data)
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        for info in zf.infolist():
            struct.pack_into("<I", forged, info.header_offset + 22, declared)

    offset = forged.find(b"PK\x01\x02")
    while forged[offset : offset + 4] == b"PK\x01\x02":
        struct.pack_into("<I", forged, offset + 24, declared)
        name_len, extra_len, comment_len = struct.unpack_from("<HHH", forged, offset + 28)
        offset += 46 + name_len + extra_len + comment_len
    return bytes(forged)


@pytest.fixture()
def uploads_root(tmp_path: Path) -> Path:
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture()
def store(uploads_root: Path) -> ContentStore:
    return ContentStore(uploads_root)


@pytest.fixture()
def content_server(store: ContentStore) -> ContentServer:
    return ContentServer(store)
