import csv
import logging
from enum import IntEnum
from pathlib import Path

import typer

from .errors import OutputError
from .models import ClassificationResult, Entry, EntryKind, Status, TreeListing, display_path

log = logging.getLogger(__name__)

CSV_HEADER: tuple[str, ...] = ("status", "path", "size_in_A", "size_in_B")
EXPORTED_STATUSES: tuple[Status, ...] = (Status.ONLY_A, Status.ONLY_B, Status.DIFFER)


class ExitStatus(IntEnum):
    EQUIVALENT = 0
    DIFFERENCES = 1
    USAGE = 2
    OUTPUT_ERROR = 3
    INTERRUPTED = 130


SECTION_TITLES: dict[Status, str] = {
    Status.ONLY_A: "Only in A",
    Status.ONLY_B: "Only in B",
    Status.DIFFER: "Differ",
    Status.SAME: "Same",
}


def exit_status(result: ClassificationResult) -> ExitStatus:
    return ExitStatus.DIFFERENCES if result.has_differences else ExitStatus.EQUIVALENT


def _describe(result: ClassificationResult, relative_path: str) -> str:
    mismatch: tuple[EntryKind, EntryKind] | None = result.kind_mismatch(relative_path)
    if mismatch is None:
        return display_path(relative_path)
    return f"{display_path(relative_path)}  [{mismatch[0].value} -> {mismatch[1].value}]"


def render_section(result: ClassificationResult, status: Status) -> list[str]:
    members: list[str] = sorted(result.members(status))
    lines: list[str] = [f"==== {SECTION_TITLES[status]} ({len(members)}) ===="]

    if members:
        lines.extend(_describe(result, path) for path in members)
    else:
        lines.append("(empty)")

    lines.append("")
    return lines


def render_console(result: ClassificationResult, *, show_same: bool = False) -> None:
    statuses: list[Status] = list(EXPORTED_STATUSES)
    if show_same:
        statuses.append(Status.SAME)

    typer.echo(f"A: {display_path(result.listing_a.root)}")
    typer.echo(f"B: {display_path(result.listing_b.root)}")
    typer.echo("")

    for status in statuses:
        for line in render_section(result, status):
            typer.echo(line)

    typer.echo(
        f"Summary: {len(result.only_a)} only in A, {len(result.only_b)} only in B, "
        f"{len(result.differ)} differ, {len(result.same)} same ({result.mode.value} comparison)"
    )

    for label, listing in (("A", result.listing_a), ("B", result.listing_b)):
        if listing.skipped:
            typer.echo(f"Skipped in {label}: {len(listing.skipped)} unreadable entries (use -v to list them)")


def _size_field(listing: TreeListing, relative_path: str) -> str:
    entry: Entry | None = listing.get(relative_path)
    if entry is None or entry.kind is EntryKind.DIRECTORY or entry.size is None:
        return ""
    return str(entry.size)


def csv_rows(result: ClassificationResult) -> list[tuple[str, str, str, str]]:
    """One row per difference, grouped by status and sorted by path. SAME is never exported."""
    rows: list[tuple[str, str, str, str]] = []

    for status in EXPORTED_STATUSES:
        for relative_path in sorted(result.members(status)):
            rows.append(
                (
                    status.value,
                    display_path(relative_path),
                    _size_field(result.listing_a, relative_path),
                    _size_field(result.listing_b, relative_path),
                )
            )

    return rows


def write_csv(result: ClassificationResult, path: Path) -> int:
    """
    Export the differences to `path` and return the number of data rows.

    Raises
    ------
    OutputError
        If the file cannot be created or written.
    """
    rows: list[tuple[str, str, str, str]] = csv_rows(result)

    try:
        with path.open("w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f, lineterminator="\n")
            writer.writerow(CSV_HEADER)
            writer.writerows(rows)
    except OSError as e:
        raise OutputError(path, e)

    log.info("Wrote %d rows to %s", len(rows), path)
    return len(rows)


def report(
    result: ClassificationResult,
    *,
    console: bool = True,
    csv_path: Path | None = None,
    show_same: bool = False,
) -> ExitStatus:
    """
    Print and/or export a classification and return the process exit status.

    A CSV failure is reported after the console output and turns the
    status into OUTPUT_ERROR regardless of the comparison outcome.
    """
    if console:
        render_console(result, show_same=show_same)

    if csv_path is not None:
        try:
            write_csv(result, csv_path)
        except OutputError as e:
            typer.echo(f"Error: {e}", err=True)
            return ExitStatus.OUTPUT_ERROR

        if console:
            typer.echo(f"CSV written: {display_path(csv_path)}")

    return exit_status(result)
