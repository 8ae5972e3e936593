"""Source file discovery by recursive directory walk."""

from __future__ import annotations

import os
from pathlib import Path

from almig.config import CONFIG_DIR, INDEX_DIR_NAME

# Directories never holding working objects
SKIP_DIRS = frozenset({
    ".git", ".hg", ".svn", "node_modules", "__pycache__",
    ".vscode", ".alpackages", ".snapshots", ".altestrunner",
    INDEX_DIR_NAME, CONFIG_DIR,
})

MAX_FILE_SIZE = 5_000_000  # 5MB

# Legacy exports are usually written in a Windows codepage.
_FALLBACK_CODEPAGES = ("cp1252", "cp850", "latin-1")


def decode_source(source: bytes) -> str:
    """Decode file bytes: UTF-8 (BOM stripped), then legacy codepages.

    Latin-1 maps every byte, so this never raises.
    """
    if source[:3] == b"\xef\xbb\xbf":
        return source[3:].decode("utf-8", errors="replace")
    if source[:2] in (b"\xff\xfe", b"\xfe\xff"):
        return source.decode("utf-16")
    try:
        return source.decode("utf-8")
    except UnicodeDecodeError:
        pass
    for cp in _FALLBACK_CODEPAGES:
        try:
            return source.decode(cp)
        except UnicodeDecodeError:
            continue
    return source.decode("latin-1")


def read_source(path: str | os.PathLike) -> str:
    """Current text of *path*. Raises OSError when unreadable."""
    with open(path, "rb") as handle:
        return decode_source(handle.read())


def _walk_files(root: Path, extension: str) -> list[str]:
    result = []
    for dirpath, dirnames, filenames in os.walk(root):
        # Filter out skippable directories in place
        dirnames[:] = [d for d in dirnames if d not in SKIP_DIRS]
        for fname in filenames:
            if os.path.splitext(fname)[1].lower() != extension:
                continue
            result.append(os.path.join(dirpath, fname))
    return result


def _filter_files(paths: list[str]) -> list[str]:
    """Drop oversized and unreadable files."""
    kept = []
    for path in paths:
        try:
            if os.stat(path).st_size > MAX_FILE_SIZE:
                continue
        except OSError:
            continue
        kept.append(path)
    return kept


def discover_files(root: str | os.PathLike, extension: str = ".al") -> list[str]:
    """Discover working source files under *root*.

    Skips the ``.index`` directory and tool/VCS folders. Returns a sorted
    list of absolute paths.
    """
    root = Path(root).resolve()
    if not root.is_dir():
        return []
    extension = extension.lower()
    found = _filter_files(_walk_files(root, extension))
    found.sort()
    return found
