from __future__ import annotations

import re
from pathlib import Path

import pytest

from playable_backend.errors import InvalidId, PathEscape
from playable_backend.security import (
    is_safe_basename,
    is_safe_identifier,
    is_safe_relative_path,
    make_playable_id,
    resolves_inside,
    safe_html_filename,
    sanitize_basename,
)


@pytest.mark.parametrize(
    "candidate",
    [
        "index.html",
        "assets/img.png",
        "a/b/c/style.css",
        "./index.html",
        "folder/",
    ],
)
def test_relative_path_accepts_plain_paths(candidate: str) -> None:
    assert is_safe_relative_path(candidate)


@pytest.mark.parametrize(
    "candidate",
    [
        "",
        "   ",
        "..",
        "../secret.txt",
        "../../etc/passwd",
        "a/../../b",
        "a/../b",
        "game..js",
        "..\\..\\windows\\win.ini",
        "/etc/passwd",
        "\\server\\share",
        "C:\\evil.exe",
        "c:/evil.exe",
        "index.html\x00.png",
    ],
)
def test_relative_path_rejects_traversal_and_absolute(candidate: str) -> None:
    assert not is_safe_relative_path(candidate)


def test_relative_path_rejects_non_strings() -> None:
    assert not is_safe_relative_path(None)  # type: ignore[arg-type]
    assert not is_safe_relative_path(b"index.html")  # type: ignore[arg-type]


@pytest.mark.parametrize("candidate", ["1700000000_game", "a", "A.b-c_d", "x" * 128])
def test_identifier_accepts_allowed_characters(candidate: str) -> None:
    assert is_safe_identifier(candidate)


@pytest.mark.parametrize(
    "candidate",
    ["", ".", "..", "a/b", "a\\b", "game id", "id%2F", "ид", "x" * 129, "a\x00", "abc\n"],
)
def test_identifier_rejects_everything_else(candidate: str) -> None:
    assert not is_safe_identifier(candidate)


def test_basename_rejects_directories() -> None:
    assert is_safe_basename("index.html")
    assert not is_safe_basename("a/index.html")
    assert not is_safe_basename("..")
    assert not is_safe_basename("")


def test_resolves_inside_returns_canonical_path(tmp_path: Path) -> None:
    assert resolves_inside(tmp_path, "a", "b.txt") == (tmp_path / "a" / "b.txt").resolve()
    assert resolves_inside(tmp_path) == tmp_path.resolve()


def test_resolves_inside_rejects_escape(tmp_path: Path) -> None:
    with pytest.raises(PathEscape):
        resolves_inside(tmp_path / "root", "../sibling")
    with pytest.raises(PathEscape):
        resolves_inside(tmp_path, "/etc/passwd")


def test_resolves_inside_rejects_prefix_sibling(tmp_path: Path) -> None:
    (tmp_path / "root").mkdir()
    (tmp_path / "root-evil").mkdir()
    with pytest.raises(PathEscape):
        resolves_inside(tmp_path / "root", "../root-evil/x")


def test_resolves_inside_follows_symlinks(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    outside = tmp_path / "outside.txt"
    outside.write_text("secret", encoding="utf-8")
    (root / "link.txt").symlink_to(outside)
    with pytest.raises(PathEscape):
        resolves_inside(root, "link.txt")


def test_sanitize_basename_strips_unsafe_characters() -> None:
    assert sanitize_basename("my game (final).zip") == "mygamefinal.zip"
    assert sanitize_basename("../../evil..zip") == "evil.zip"
    assert len(sanitize_basename("a" * 80 + ".zip")) == 50


def test_make_playable_id_uses_timestamp_and_stem() -> None:
    assert make_playable_id("Cool Game.zip", timestamp_ns=123) == "123_CoolGame"
    assert make_playable_id("ad.v2.html", timestamp_ns=5) == "5_ad.v2"
    assert make_playable_id("!!!.zip", timestamp_ns=7) == "7_playable"


def test_make_playable_id_is_always_a_safe_identifier() -> None:
    for name in ["../../x.zip", "a/b/c.html", "..", "", "ÿ.zip", "x" * 300 + ".zip"]:
        playable_id = make_playable_id(name)
        assert is_safe_identifier(playable_id)
        assert re.match(r"^\d+_", playable_id)


def test_make_playable_id_rejects_oversized_timestamp() -> None:
    with pytest.raises(InvalidId):
        make_playable_id("game.zip", timestamp_ns=10**130)


def test_safe_html_filename() -> None:
    assert safe_html_filename("Game.HTML") == "Game.HTML"
    assert safe_html_filename("../../index.html") == "index.html"
    assert safe_html_filename("my ad.html") == "myad.html"
    assert safe_html_filename(".html") == "index.html"
    assert safe_html_filename("page.htm") == "index.html"
