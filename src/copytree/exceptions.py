from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CopyTreeError(Exception):
    """Base exception for errors in the copytree package."""


@dataclass(frozen=True)
class NoWorkspaceError(CopyTreeError):
    """Raised when an export is requested without an open workspace root."""

    root: Path | None = None
    message: str = "No workspace folder is open."


@dataclass(frozen=True)
class ConfigurationError(CopyTreeError):
    """Raised when a required option is absent or unusable."""

    option: str
    message: str = "Missing or invalid configuration option."


@dataclass(frozen=True)
class NodeNotFoundError(CopyTreeError):
    """Raised when a path is not part of the listed workspace tree."""

    path: Path
    message: str = "Path is not inside any workspace folder."


@dataclass(frozen=True)
class FileOperationError(CopyTreeError):
    """Raised when a filesystem command cannot be carried out."""

    path: Path
    message: str = "Filesystem operation failed."
