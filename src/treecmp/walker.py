import hashlib
import logging
import os
import stat
import threading
import time
from collections.abc import Iterable, Iterator, Sequence
from concurrent.futures import FIRST_COMPLETED, CancelledError, Future, ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass, field, replace
from fnmatch import fnmatchcase
from pathlib import Path

from .config import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_INFLIGHT, default_max_workers
from .errors import ConfigurationError, NotADirectory, TraversalError
from .models import Entry, EntryKind, TreeListing

log = logging.getLogger(__name__)


@dataclass(slots=True)
class DirScan:
    """Everything found directly inside one directory."""

    entries: list[Entry] = field(default_factory=list)
    subdirs: list[tuple[str, Path]] = field(default_factory=list)
    errors: list[TraversalError] = field(default_factory=list)


def join_relative(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def is_excluded(relative_path: str, is_dir: bool, patterns: Sequence[str]) -> bool:
    """
    Check a root-relative path against rsync-style exclude globs.

    A trailing "/" limits a pattern to directories. A pattern containing
    "/" is matched against the whole relative path (a leading "/" anchors
    it to the root). Any other pattern is matched against the base name
    as well as the whole relative path.
    """
    name: str = relative_path.rsplit("/", 1)[-1]

    for pattern in patterns:
        dir_only: bool = pattern.endswith("/")
        glob: str = pattern.rstrip("/")

        if not glob or (dir_only and not is_dir):
            continue

        if "/" in glob:
            if fnmatchcase(relative_path, glob.lstrip("/")):
                return True
        elif fnmatchcase(name, glob) or fnmatchcase(relative_path, glob):
            return True

    return False


def discover_dir_entries(path: Path, relative_dir: str, excludes: Sequence[str]) -> DirScan:
    """
    Return the entries directly inside `path` and the subdirectories to descend into.

    Symlinks are recorded as such and never followed. Excluded
    directories are neither recorded nor returned for descent. Entries
    that cannot be inspected end up in `errors` instead of `entries`.
    """
    scan: DirScan = DirScan()

    try:
        with os.scandir(path) as it:
            dir_entries: list[os.DirEntry[str]] = list(it)
    except OSError as e:
        scan.errors.append(TraversalError(relative_dir, e))
        return scan

    for dir_entry in dir_entries:
        relative_path: str = join_relative(relative_dir, dir_entry.name)

        try:
            st: os.stat_result = dir_entry.stat(follow_symlinks=False)
        except FileNotFoundError:
            # Removed between listing and stat
            continue
        except OSError as e:
            if not (is_excluded(relative_path, False, excludes) or is_excluded(relative_path, True, excludes)):
                scan.errors.append(TraversalError(relative_path, e))
            continue

        if stat.S_ISLNK(st.st_mode):
            if is_excluded(relative_path, False, excludes):
                continue
            try:
                target: str = os.readlink(dir_entry.path)
            except OSError as e:
                scan.errors.append(TraversalError(relative_path, e))
                continue
            scan.entries.append(
                Entry(relative_path, EntryKind.SYMLINK, st.st_size, st.st_mtime_ns, link_target=target)
            )

        elif stat.S_ISDIR(st.st_mode):
            if is_excluded(relative_path, True, excludes):
                log.debug("Pruning excluded directory %s", relative_path)
                continue
            scan.entries.append(Entry(relative_path, EntryKind.DIRECTORY, None, st.st_mtime_ns))
            scan.subdirs.append((relative_path, Path(dir_entry.path)))

        elif stat.S_ISREG(st.st_mode):
            if is_excluded(relative_path, False, excludes):
                continue
            scan.entries.append(Entry(relative_path, EntryKind.FILE, st.st_size, st.st_mtime_ns))

        else:
            log.debug("Ignoring special file %s", relative_path)

    return scan


def scan_tree(
    root: Path, excludes: Sequence[str], max_workers: int, abort: threading.Event | None = None
) -> DirScan:
    """
    Walk every directory under `root` on a bounded thread pool.

    Each task lists one directory and returns its own DirScan. Only this
    coordinating loop merges results, so tasks never share state.
    """
    if max_workers <= 0:
        raise ValueError("max_workers must be > 0")

    merged: DirScan = DirScan()

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="treecmp-walk") as executor:
        pending: set[Future[DirScan]] = {executor.submit(discover_dir_entries, root, "", excludes)}

        try:
            while pending:
                if abort is not None and abort.is_set():
                    raise CancelledError()

                done, pending = wait(pending, return_when=FIRST_COMPLETED)

                for future in done:
                    scan: DirScan = future.result()
                    merged.entries.extend(scan.entries)
                    merged.errors.extend(scan.errors)

                    for relative_path, subdir in scan.subdirs:
                        pending.add(executor.submit(discover_dir_entries, subdir, relative_path, excludes))
        except BaseException:
            executor.shutdown(wait=False, cancel_futures=True)
            raise

    return merged


def calculate_sha256(path: Path, chunk_size: int) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def hash_files_parallel_bounded(
    paths: Iterable[tuple[str, Path]], max_workers: int, max_in_flight: int, chunk_size: int
) -> Iterator[tuple[str, str | OSError]]:
    """
    Hash files concurrently, keeping at most `max_in_flight` jobs queued.

    Yields `(key, hexdigest)` per file in completion order, or
    `(key, error)` when the file could not be read.
    """
    if max_in_flight <= 0:
        raise ValueError("max_in_flight must be > 0")
    if max_workers <= 0:
        raise ValueError("max_workers must be > 0")

    def collect(future: Future[str]) -> str | OSError:
        try:
            return future.result()
        except OSError as e:
            return e

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="treecmp-hash") as executor:
        in_flight: dict[Future[str], str] = {}

        def submit(key: str, path: Path) -> None:
            future: Future[str] = executor.submit(calculate_sha256, path, chunk_size)
            in_flight[future] = key

        try:
            for key, path in paths:
                # Apply backpressure
                while len(in_flight) >= max_in_flight:
                    done: Future[str] = next(as_completed(in_flight))
                    yield in_flight.pop(done), collect(done)

                submit(key, path)

            # Drain remaining futures
            for future in as_completed(in_flight):
                yield in_flight[future], collect(future)
        except BaseException:
            executor.shutdown(wait=False, cancel_futures=True)
            raise


def add_checksums(
    root: Path, entries: list[Entry], *, max_workers: int, max_inflight: int, chunk_size: int,
    abort: threading.Event | None = None,
) -> tuple[list[Entry], list[TraversalError]]:
    by_path: dict[str, Entry] = {entry.relative_path: entry for entry in entries}
    errors: list[TraversalError] = []

    files: list[tuple[str, Path]] = [
        (entry.relative_path, root / entry.relative_path) for entry in entries if entry.kind is EntryKind.FILE
    ]

    for relative_path, outcome in hash_files_parallel_bounded(
        paths=files,
        max_workers=max_workers,
        max_in_flight=max_inflight,
        chunk_size=chunk_size,
    ):
        if abort is not None and abort.is_set():
            raise CancelledError()

        if isinstance(outcome, OSError):
            errors.append(TraversalError(relative_path, outcome))
            del by_path[relative_path]
        else:
            by_path[relative_path] = replace(by_path[relative_path], checksum=outcome)

    return list(by_path.values()), errors


def check_root(root: Path) -> Path:
    resolved_root: Path = root.resolve()

    if not resolved_root.is_dir():
        raise NotADirectory(root)

    try:
        with os.scandir(resolved_root):
            pass
    except OSError as e:
        raise ConfigurationError(f"Cannot read {root}: {e.strerror or e}")

    return resolved_root


def walk(
    root: Path,
    *,
    excludes: Sequence[str] = (),
    checksum: bool = False,
    max_workers: int | None = None,
    max_inflight: int = DEFAULT_MAX_INFLIGHT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    abort: threading.Event | None = None,
) -> TreeListing:
    """
    Build the TreeListing for everything below `root`.

    The root itself is never part of the listing; nested directories
    are, so empty directories show up. Per-entry failures are logged and
    reported through `TreeListing.skipped` instead of being raised.
    Setting `abort` stops the walk with CancelledError.

    Raises
    ------
    NotADirectory
        If `root` does not exist or is not a directory.
    ConfigurationError
        If `root` cannot be listed at all.
    """
    workers: int = max_workers if max_workers is not None else default_max_workers()
    resolved_root: Path = check_root(root)
    started: float = time.perf_counter()

    scan: DirScan = scan_tree(resolved_root, excludes, workers, abort)
    entries: list[Entry] = scan.entries
    errors: list[TraversalError] = scan.errors

    if checksum:
        entries, hash_errors = add_checksums(
            resolved_root,
            entries,
            max_workers=workers,
            max_inflight=max_inflight,
            chunk_size=chunk_size,
            abort=abort,
        )
        errors.extend(hash_errors)

    for error in errors:
        log.info("Skipped %s", error)

    if errors:
        log.warning("%d entries under %s could not be read and were skipped", len(errors), root)

    log.info("Walked %s: %d entries in %.2fs", root, len(entries), time.perf_counter() - started)

    return TreeListing.from_entries(resolved_root, entries, skipped=(error.relative_path for error in errors))


def walk_pair(
    root_a: Path,
    root_b: Path,
    *,
    excludes: Sequence[str] = (),
    checksum: bool = False,
    max_workers: int | None = None,
    max_inflight: int = DEFAULT_MAX_INFLIGHT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> tuple[TreeListing, TreeListing]:
    """Walk both trees concurrently and return once both listings are complete."""
    abort: threading.Event = threading.Event()
    options = dict(
        excludes=excludes,
        checksum=checksum,
        max_workers=max_workers,
        max_inflight=max_inflight,
        chunk_size=chunk_size,
        abort=abort,
    )

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="treecmp-tree") as executor:
        future_a: Future[TreeListing] = executor.submit(walk, root_a, **options)
        future_b: Future[TreeListing] = executor.submit(walk, root_b, **options)

        try:
            return future_a.result(), future_b.result()
        except BaseException:
            # Stop the other walk instead of waiting for it on exit
            abort.set()
            raise
