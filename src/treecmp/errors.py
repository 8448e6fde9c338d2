from pathlib import Path

from .models import display_path


class TreecmpError(Exception):
    """Base class for every error raised by treecmp."""


class ConfigurationError(TreecmpError):
    """Bad arguments, a bad config file or an unusable root directory."""


class NotADirectory(ConfigurationError):
    def __init__(self, path: Path) -> None:
        self.path: Path = path
        if path.exists():
            super().__init__(f"{display_path(path)} is not a directory")
        else:
            super().__init__(f"{display_path(path)} does not exist")


class TraversalError(TreecmpError):
    """
    A single entry could not be inspected during a walk.

    These never escape the walker: the entry is skipped, the error is
    logged and traversal continues.
    """

    def __init__(self, relative_path: str, cause: OSError) -> None:
        self.relative_path: str = relative_path
        self.cause: OSError = cause
        reason: str = cause.strerror or str(cause)
        super().__init__(f"{display_path(relative_path)}: {reason}")


class OutputError(TreecmpError):
    def __init__(self, path: Path, cause: OSError) -> None:
        self.path: Path = path
        self.cause: OSError = cause
        reason: str = cause.strerror or str(cause)
        super().__init__(f"Cannot write {display_path(path)}: {reason}")
