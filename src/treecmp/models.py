import os
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType


def display_path(path: str | os.PathLike[str]) -> str:
    """
    Render a path as printable UTF-8.

    Bytes that are not valid UTF-8 (kept as surrogates by the filesystem
    layer) are shown as `\\xNN` escapes instead of failing to encode.
    """
    return os.fsencode(path).decode("utf-8", "backslashreplace")


class EntryKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


class EqualityMode(Enum):
    METADATA = "metadata"
    CHECKSUM = "checksum"


class Status(Enum):
    ONLY_A = "ONLY_A"
    ONLY_B = "ONLY_B"
    DIFFER = "DIFFER"
    SAME = "SAME"


@dataclass(frozen=True, slots=True)
class Entry:
    relative_path: str
    kind: EntryKind
    size: int | None
    mtime_ns: int
    checksum: str | None = None
    link_target: str | None = None


class TreeListing(Mapping[str, Entry]):
    """
    Read-only mapping of root-relative path to Entry for one scanned tree.

    A listing is a set of entries: the order in which a walk discovered
    them is not kept. Use `sorted_paths()` when rendering.
    """

    __slots__ = ("root", "skipped", "_entries")

    def __init__(self, root: Path, entries: Mapping[str, Entry], skipped: Iterable[str] = ()) -> None:
        if "" in entries:
            raise ValueError("A listing cannot contain the root itself")

        self.root: Path = root
        self.skipped: tuple[str, ...] = tuple(sorted(skipped))
        self._entries: Mapping[str, Entry] = MappingProxyType(dict(entries))

    @classmethod
    def from_entries(cls, root: Path, entries: Iterable[Entry], skipped: Iterable[str] = ()) -> "TreeListing":
        collected: dict[str, Entry] = {}

        for entry in entries:
            if entry.relative_path in collected:
                raise ValueError(f"Duplicate entry for {entry.relative_path!r}")
            collected[entry.relative_path] = entry

        return cls(root, collected, skipped)

    def __getitem__(self, relative_path: str) -> Entry:
        return self._entries[relative_path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"TreeListing(root={str(self.root)!r}, entries={len(self)}, skipped={len(self.skipped)})"

    def sorted_paths(self) -> list[str]:
        return sorted(self._entries)


@dataclass(frozen=True)
class ClassificationResult:
    only_a: frozenset[str]
    only_b: frozenset[str]
    differ: frozenset[str]
    same: frozenset[str]

    listing_a: TreeListing
    listing_b: TreeListing
    mode: EqualityMode

    @property
    def has_differences(self) -> bool:
        return bool(self.only_a or self.only_b or self.differ)

    def members(self, status: Status) -> frozenset[str]:
        if status is Status.ONLY_A:
            return self.only_a
        elif status is Status.ONLY_B:
            return self.only_b
        elif status is Status.DIFFER:
            return self.differ
        else:
            return self.same

    def kind_mismatch(self, relative_path: str) -> tuple[EntryKind, EntryKind] | None:
        entry_a: Entry | None = self.listing_a.get(relative_path)
        entry_b: Entry | None = self.listing_b.get(relative_path)

        if entry_a is None or entry_b is None or entry_a.kind is entry_b.kind:
            return None

        return entry_a.kind, entry_b.kind


@dataclass(frozen=True, slots=True)
class FoundFile:
    path: Path
    size: int | None


@dataclass(frozen=True, slots=True)
class SizedEntry:
    path: Path
    size: int
    is_dir: bool
