"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from treecmp.models import Entry, EntryKind, TreeListing

# Tree layouts map relative paths to file contents; None creates a directory.
TreeLayout = dict[str, "str | bytes | None"]


def build_tree(root: Path, layout: TreeLayout) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for relative_path, content in layout.items():
        path = root / relative_path
        if content is None:
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
    return root


def file_entry(path: str, size: int, mtime_ns: int = 0, checksum: str | None = None) -> Entry:
    return Entry(path, EntryKind.FILE, size, mtime_ns, checksum=checksum)


def dir_entry(path: str) -> Entry:
    return Entry(path, EntryKind.DIRECTORY, None, 0)


def make_listing(*entries: Entry, root: str = "/tree") -> TreeListing:
    return TreeListing.from_entries(Path(root), entries)


@pytest.fixture
def make_tree(tmp_path) -> Callable[[str, TreeLayout], Path]:
    """Create a directory tree under tmp_path from a {relative_path: content} layout."""

    def _make(name: str, layout: TreeLayout) -> Path:
        return build_tree(tmp_path / name, layout)

    return _make
