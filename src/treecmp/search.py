import logging
import os
from collections.abc import Iterator
from fnmatch import fnmatchcase
from pathlib import Path

from .errors import ConfigurationError, NotADirectory
from .models import FoundFile, SizedEntry

log = logging.getLogger(__name__)

GLOB_CHARS: frozenset[str] = frozenset("*?[")


def bytes_to_human(size_bytes: int) -> str:
    """Convert byte count to a human-readable string."""
    if size_bytes < 0:
        return f"-{bytes_to_human(-size_bytes)}"
    if size_bytes == 0:
        return "0 B"

    units = ("B", "KB", "MB", "GB", "TB")
    value = float(size_bytes)
    for unit in units[:-1]:
        if abs(value) < 1024:
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} {units[-1]}"


def build_name_pattern(query: str, exact: bool = False) -> str:
    """Wrap a plain query in wildcards so it matches partial names, unless exact."""
    if exact or any(char in GLOB_CHARS for char in query):
        return query
    return f"*{query}*"


def _log_walk_error(error: OSError) -> None:
    log.info("Skipping %s: %s", error.filename, error.strerror)


def find_files(start: Path, query: str, *, exact: bool = False) -> Iterator[FoundFile]:
    """
    Recursively yield regular files under `start` whose name matches `query`.

    Matching is case-insensitive on the base name only. Symlinks are
    neither followed nor reported. Unreadable directories are skipped.

    Raises
    ------
    NotADirectory
        If `start` does not exist or is not a directory.
    """
    if not start.is_dir():
        raise NotADirectory(start)

    pattern: str = build_name_pattern(query, exact).lower()

    for dirpath, dirnames, filenames in os.walk(start, onerror=_log_walk_error):
        dirnames.sort()
        base: Path = Path(dirpath)

        for name in sorted(filenames):
            if not fnmatchcase(name.lower(), pattern):
                continue

            path: Path = base / name
            if path.is_symlink():
                continue

            try:
                size: int | None = path.stat().st_size
            except OSError as e:
                log.info("Cannot stat %s: %s", path, e.strerror)
                size = None

            yield FoundFile(path=path, size=size)


def tree_size(path: Path) -> int:
    """Apparent size in bytes of everything under `path`, without following symlinks."""
    if path.is_symlink() or not path.is_dir():
        return path.lstat().st_size

    total: int = 0
    for dirpath, _, filenames in os.walk(path, onerror=_log_walk_error):
        for name in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except OSError as e:
                log.info("Cannot stat %s: %s", name, e.strerror)

    return total


def largest_entry(base: Path, *, dirs_only: bool = False) -> SizedEntry | None:
    """
    Return the biggest immediate child of `base`, or None if there is none.

    Directories are measured by the total size of their contents.
    Children whose size cannot be determined are skipped.
    """
    if not base.is_dir():
        raise NotADirectory(base)

    largest: SizedEntry | None = None

    try:
        with os.scandir(base) as it:
            children: list[os.DirEntry[str]] = sorted(it, key=lambda e: e.name)
    except OSError as e:
        raise ConfigurationError(f"Cannot read {base}: {e.strerror or e}")

    for child in children:
        is_dir: bool = child.is_dir(follow_symlinks=False)
        if dirs_only and not is_dir:
            continue

        try:
            size: int = tree_size(Path(child.path))
        except OSError as e:
            log.info("Cannot size %s: %s", child.path, e.strerror)
            continue

        if largest is None or size > largest.size:
            largest = SizedEntry(path=Path(child.path), size=size, is_dir=is_dir)

    return largest
