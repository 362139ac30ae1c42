from __future__ import annotations

import shutil
import stat
from pathlib import Path
from typing import TYPE_CHECKING

from copytree.config import (
    BINARY_SNIFF_BYTES,
    BINARY_SUFFIXES,
    DEFAULT_MAX_TEXT_BYTES,
    ExportEntry,
    FileKind,
    NonTextReason,
)
from copytree.exceptions import FileOperationError
from copytree.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return str(path.relative_to(root)).replace("\\", "/")
    except ValueError:
        return str(path)


def export_name(path: Path, root: Path, extra_roots: Sequence[Path] = ()) -> str:
    """Name a selected entry in export output.

    Paths under ``root`` are reported relative to it. Paths under one of the
    other workspace roots are reported as ``<root name>/<relative path>``.
    Anything else keeps its full path.
    """
    if path.is_relative_to(root):
        return relpath(path, root)
    for other in extra_roots:
        if path.is_relative_to(other):
            return f"{other.name}/{relpath(path, other)}"
    return str(path)


def looks_binary(path: Path, head: bytes) -> bool:
    """Heuristic text/binary check on a file's suffix and first bytes.

    A file is binary when its suffix is a known binary format, when the sniffed
    head contains a NUL byte, or when the head is not valid UTF-8. A multi-byte
    sequence cut at the end of the head is tolerated.

    Args:
        path (Path): the file path, used for its suffix
        head (bytes): the first bytes of the file

    Returns:
        bool: True if the content should be treated as opaque binary
    """
    if path.suffix.lower() in BINARY_SUFFIXES:
        return True
    if b"\x00" in head:
        return True
    try:
        head.decode("utf-8")
    except UnicodeDecodeError as e:
        # a truncated trailing sequence is not evidence of binary content
        return e.start < len(head) - 3
    return False


def classify_path(
    path: Path,
    root: Path,
    *,
    max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES,
    extra_roots: Sequence[Path] = (),
) -> ExportEntry | None:
    """Classify a selected path for export and read its content when it is text.

    Args:
        path (Path): absolute path of the selected entry
        root (Path): the workspace root used for the relative path
        max_text_bytes (int): size ceiling above which files are exported by path only
        extra_roots (Sequence[Path]): the other workspace roots

    Returns:
        ExportEntry | None: the classified entry, or None when the path no longer
            exists (stale selection)
    """
    rel = export_name(path, root, extra_roots)
    try:
        st = path.stat()
    except FileNotFoundError:
        logger.debug("export.stale_path", path=str(path))
        return None
    except OSError as e:
        logger.warning("export.stat_failed", path=str(path), error=str(e))
        return ExportEntry(path=path, rel=rel, kind=FileKind.NON_TEXT, reason=NonTextReason.UNREADABLE)

    if stat.S_ISDIR(st.st_mode):
        return ExportEntry(path=path, rel=rel, kind=FileKind.NON_TEXT, reason=NonTextReason.DIRECTORY)
    if st.st_size > max_text_bytes:
        return ExportEntry(path=path, rel=rel, kind=FileKind.NON_TEXT, reason=NonTextReason.TOO_BIG)

    try:
        data = path.read_bytes()
        if looks_binary(path, data[:BINARY_SNIFF_BYTES]):
            return ExportEntry(path=path, rel=rel, kind=FileKind.NON_TEXT, reason=NonTextReason.BINARY)
        content = data.decode("utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("export.read_failed", path=str(path), error=str(e))
        return ExportEntry(path=path, rel=rel, kind=FileKind.NON_TEXT, reason=NonTextReason.UNREADABLE)
    return ExportEntry(path=path, rel=rel, kind=FileKind.TEXT, content=content)


def classify_paths(
    paths: Iterable[str | Path],
    root: Path,
    *,
    max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES,
    extra_roots: Sequence[Path] = (),
) -> tuple[list[ExportEntry], list[ExportEntry]]:
    """Partition selected paths into sorted non-text and text entries.

    Both lists are sorted by relative path so repeated exports of the same
    selection are identical. Stale paths are dropped.

    Args:
        paths (Iterable[str | Path]): the selected paths
        root (Path): the workspace root
        max_text_bytes (int): size ceiling for text content
        extra_roots (Sequence[Path]): the other workspace roots

    Returns:
        tuple[list[ExportEntry], list[ExportEntry]]: (non_text, text)
    """
    non_text: list[ExportEntry] = []
    text: list[ExportEntry] = []
    for raw in dict.fromkeys(str(p) for p in paths):
        entry = classify_path(Path(raw), root, max_text_bytes=max_text_bytes, extra_roots=extra_roots)
        if entry is None:
            continue
        (text if entry.is_text else non_text).append(entry)
    non_text.sort(key=lambda e: e.rel)
    text.sort(key=lambda e: e.rel)
    return non_text, text


def create_file(path: Path) -> Path:
    """Create an empty file, creating missing parent directories.

    Raises:
        FileOperationError: if something already exists at ``path``.
    """
    if path.exists():
        raise FileOperationError(path=path, message="A file or folder with this name already exists.")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch()
    logger.info("fs.create_file", path=str(path))
    return path


def create_folder(path: Path) -> Path:
    """Create a directory, creating missing parents.

    Raises:
        FileOperationError: if something already exists at ``path``.
    """
    if path.exists():
        raise FileOperationError(path=path, message="A file or folder with this name already exists.")
    path.mkdir(parents=True)
    logger.info("fs.create_folder", path=str(path))
    return path


def rename_path(path: Path, new_name: str) -> Path:
    """Rename an entry within its directory.

    Raises:
        FileOperationError: if the source is missing, the name is not a plain
            name, or the target already exists.
    """
    if not path.exists():
        raise FileOperationError(path=path, message="Nothing to rename at this path.")
    if not new_name or Path(new_name).name != new_name:
        raise FileOperationError(path=path, message=f"Invalid new name: {new_name!r}.")
    target = path.with_name(new_name)
    if target.exists():
        raise FileOperationError(path=target, message="A file or folder with this name already exists.")
    path.rename(target)
    logger.info("fs.rename", path=str(path), target=str(target))
    return target


def delete_path(path: Path) -> None:
    """Delete a file, or a directory with everything below it.

    Raises:
        FileOperationError: if nothing exists at ``path``.
    """
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()
    else:
        raise FileOperationError(path=path, message="Nothing to delete at this path.")
    logger.info("fs.delete", path=str(path))
