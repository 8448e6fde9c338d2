import logging
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Annotated

import typer

from .classifier import classify
from .config import CONFIG_FILENAME, AppConfig, default_max_workers, parse_chunk_size
from .errors import ConfigurationError
from .models import ClassificationResult, EqualityMode, SizedEntry, TreeListing, display_path
from .report import ExitStatus, report
from .search import bytes_to_human, find_files, largest_entry
from .walker import walk_pair


def installed_version() -> str:
    try:
        return version(distribution_name="treecmp")
    except PackageNotFoundError:
        return "unknown (package not installed)"


treecmp_version: str = installed_version()
app: typer.Typer = typer.Typer(
    help=f"treecmp — compare directory trees\n\nVersion: {treecmp_version}",
)


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def print_version(is_version: bool) -> None:
    """
    Callback for the global --version / -V option.

    Typer passes a boolean to this callback indicating whether the user
    supplied the --version flag. If the option is not provided, the value
    is False and the callback returns immediately so normal command
    execution can continue. Otherwise the installed version is printed
    and the program ends through `typer.Exit()`.
    """
    if not is_version:
        return

    typer.echo(installed_version())
    raise typer.Exit()


def fail(message: str, status: ExitStatus = ExitStatus.USAGE) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=int(status))


def load_config(path: Path | None) -> AppConfig:
    """Read an explicitly given config file, or the default one when it exists."""
    try:
        if path is None:
            return AppConfig.load_or_default(CONFIG_FILENAME)
        return AppConfig.load(path)
    except ConfigurationError as e:
        raise fail(str(e))


@app.command()
def compare(
    dir_a: Annotated[Path, typer.Argument(help="First tree (A).")],
    dir_b: Annotated[Path, typer.Argument(help="Second tree (B).")],
    checksum: Annotated[
        bool, typer.Option("--checksum", "-c", help="Compare file contents by SHA-256 (slower).")
    ] = False,
    csv_path: Annotated[
        Path | None, typer.Option("--csv", "-o", help="Also export the differences to this CSV file.")
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", "-x", help="Exclude glob, repeatable. E.g. -x 'node_modules/' -x '*.tmp'"),
    ] = None,
    show_same: Annotated[bool, typer.Option("--show-same", "-s", help="Also list identical entries.")] = False,
    max_workers: Annotated[int | None, typer.Option(min=1)] = None,
    chunk_size: Annotated[
        str | None, typer.Option(help="Read size for hashing, in bytes or with suffix K/M/G (e.g. 32K, 4M)")
    ] = None,
    config: Annotated[
        Path | None, typer.Option(help=f"Config file to read defaults from. [default: {CONFIG_FILENAME} if present]")
    ] = None,
) -> None:
    """
    Compare two directory trees without modifying them.

    Entries are grouped into those only in A, only in B, and those
    present in both but differing. Exits 0 when the trees are
    equivalent, 1 when they differ, 2 on invalid arguments and 3 when
    the CSV export cannot be written.
    """
    cfg: AppConfig = load_config(config)

    if max_workers is not None:
        cfg.max_workers = max_workers

    if chunk_size is not None:
        try:
            cfg.chunk_size = parse_chunk_size(chunk_size)
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="--chunk-size")

    excludes: list[str] = [*cfg.excludes, *(exclude or [])]
    mode: EqualityMode = EqualityMode.CHECKSUM if checksum else EqualityMode.METADATA

    try:
        listings: tuple[TreeListing, TreeListing] = walk_pair(
            dir_a,
            dir_b,
            excludes=excludes,
            checksum=checksum,
            max_workers=cfg.max_workers,
            max_inflight=cfg.max_inflight,
            chunk_size=cfg.chunk_size,
        )
    except ConfigurationError as e:
        raise fail(str(e))
    except KeyboardInterrupt:
        raise fail("Interrupted", ExitStatus.INTERRUPTED)

    result: ClassificationResult = classify(*listings, mode=mode)
    status: ExitStatus = report(result, csv_path=csv_path, show_same=show_same)

    raise typer.Exit(code=int(status))


@app.command()
def find(
    query: Annotated[str, typer.Argument(help="Name or glob pattern, matched case-insensitively.")],
    start: Annotated[Path, typer.Option("--path", "-p", help="Directory to start from.")] = Path("."),
    exact: Annotated[bool, typer.Option("--exact", "-w", help="Match the whole name; no implicit wildcards.")] = False,
) -> None:
    """Find files by name and print their sizes."""
    found: int = 0

    try:
        for hit in find_files(start, query, exact=exact):
            size: str = str(hit.size) if hit.size is not None else "?"
            typer.echo(f"Size: {size} bytes\tLocation: {display_path(hit.path)}")
            found += 1
    except ConfigurationError as e:
        raise fail(str(e))

    if found == 0:
        typer.echo(f"No files matching {query!r} found in {start}")
        typer.echo("Tips:")
        typer.echo(f"  • Search from the filesystem root: sudo treecmp find -p / {query!r}")
        typer.echo(f"  • Use wildcards explicitly: '*{query}*'")


@app.command()
def biggest(
    base: Annotated[Path, typer.Argument(help="Directory whose entries are measured.")],
    dirs_only: Annotated[bool, typer.Option("--dirs-only", "-d", help="Only consider subdirectories.")] = False,
) -> None:
    """Show the largest file or subdirectory directly inside a directory."""
    try:
        largest: SizedEntry | None = largest_entry(base, dirs_only=dirs_only)
    except ConfigurationError as e:
        raise fail(str(e))

    if largest is None:
        if dirs_only:
            typer.echo(f"No subdirectories in: {base}")
        else:
            typer.echo(f"No entries in: {base}")
        return

    typer.echo(f"Largest in '{display_path(base)}':")
    typer.echo(f"• Path: {display_path(largest.path)}")
    typer.echo(f"• Size: {bytes_to_human(largest.size)}")


@app.command()
def init(
    exclude: Annotated[list[str] | None, typer.Option("--exclude", "-x")] = None,
    max_workers: Annotated[int, typer.Option(min=0)] = 0,
    max_inflight: Annotated[int, typer.Option(min=1)] = 200,
    chunk_size: Annotated[str, typer.Option(help="Size in bytes, or with suffix K/M/G")] = "1M",
    force: Annotated[bool, typer.Option()] = False,
    config: Annotated[Path, typer.Option(help="Where to write the config file.")] = CONFIG_FILENAME,
) -> None:
    """
    Write a config file with default comparison settings.

    The file holds exclude patterns and worker limits that every
    `treecmp compare` run in this directory starts from.
    """
    if config.exists() and not force:
        typer.echo("Config file already exists. Use --force to overwrite.")
        raise typer.Exit(code=1)

    try:
        normalized_chunk_size: int = parse_chunk_size(chunk_size)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--chunk-size")

    cfg: AppConfig = AppConfig(
        excludes=list(exclude or []),
        max_workers=max_workers if max_workers != 0 else default_max_workers(),
        max_inflight=max_inflight,
        chunk_size=normalized_chunk_size,
    )

    cfg.save(config)
    typer.echo(f"Config written to {config}")


@app.command(name="version")
def version_cmd() -> None:
    """Print the installed version of treecmp."""
    print_version(True)


@app.callback()
def main(
    _version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=print_version,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[int, typer.Option("--verbose", "-v", count=True, help="-v info, -vv debug")] = 0,
) -> None:
    """
    Global options for treecmp. All subcommands run after this callback
    unless --version is used.
    """
    _setup_logging(verbose)


if __name__ == "__main__":
    app()
