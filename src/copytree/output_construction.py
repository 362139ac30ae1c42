from __future__ import annotations

import html
import io
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, computed_field

from copytree.config import (
    CONTENT_PLACEHOLDER,
    COPY_FOOTER,
    COPY_HEADER,
    DEFAULT_FOOTER_FORMAT,
    DEFAULT_HEADER_FORMAT,
    DEFAULT_MAX_TEXT_BYTES,
    ExportEntry,
    ExportTemplate,
    HeaderPolicy,
)
from copytree.exceptions import ConfigurationError, NoWorkspaceError
from copytree.file_manipulation import classify_paths
from copytree.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence


class ExportSegment(BaseModel):
    """One bounded chunk of packed export text.

    Attributes:
        index: Position of the segment in the export, from 0.
        lines: Body lines, without line terminators.
        prefix: Template text placed before the body.
        suffix: Template text placed after the body.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="Segment position")
    lines: tuple[str, ...] = Field(default=(), description="Body lines")
    prefix: str = Field(default="", description="Leading template text")
    suffix: str = Field(default="", description="Trailing template text")

    @computed_field
    @property
    def body(self) -> str:
        return "".join(f"{line}\n" for line in self.lines)

    @computed_field
    @property
    def text(self) -> str:
        return f"{self.prefix}{self.body}{self.suffix}"

    @computed_field
    @property
    def character_count(self) -> int:
        """Characters in the segment, template text included."""
        return len(self.text)


def require_workspace(root: Path | str | None) -> Path:
    """Return the workspace root as a path, or fail when there is none.

    Raises:
        NoWorkspaceError: if ``root`` is None or not an existing directory.
    """
    if root is None:
        raise NoWorkspaceError
    path = Path(root)
    if not path.is_dir():
        raise NoWorkspaceError(root=path, message=f"Workspace folder does not exist: {path}")
    return path


def require_character_limit(character_limit: int | None) -> int:
    """Validate the configured character limit.

    Raises:
        ConfigurationError: if the limit is missing or below 1.
    """
    if character_limit is None:
        raise ConfigurationError(option="character_limit", message="character_limit must be configured.")
    if character_limit < 1:
        raise ConfigurationError(option="character_limit", message="character_limit must be a positive integer.")
    return character_limit


def iter_export_lines(
    non_text: Sequence[ExportEntry],
    text: Sequence[ExportEntry],
    *,
    header_format: str = DEFAULT_HEADER_FORMAT,
    footer_format: str = DEFAULT_FOOTER_FORMAT,
    header_policy: HeaderPolicy = HeaderPolicy.KEEP_WITH_CONTENT,
) -> Iterator[tuple[str, bool]]:
    """Yield the export lines in order, with a flag gluing a line to the next one.

    Non-text entries come first as a bare relative path each; text entries
    follow as header, content lines and footer. Content is split on "\n" only,
    so other line-break characters stay inside their line.

    Args:
        non_text (Sequence[ExportEntry]): entries exported by path only
        text (Sequence[ExportEntry]): entries exported with content
        header_format (str): format of the per-file header, ``{path}`` is the relative path
        footer_format (str): format of the per-file footer; empty means no footer
        header_policy (HeaderPolicy): whether headers stick to their first line

    Yields:
        Iterator[tuple[str, bool]]: (line, keep_with_next)
    """
    for entry in non_text:
        yield entry.rel, False
    for entry in text:
        body = entry.content.split("\n")
        if body[-1] == "":
            body.pop()
        footer = footer_format.format(path=entry.rel) if footer_format else None
        glue = header_policy == HeaderPolicy.KEEP_WITH_CONTENT and (bool(body) or footer is not None)
        yield header_format.format(path=entry.rel), glue
        for line in body:
            yield line, False
        if footer is not None:
            yield footer, False


class _SegmentBuilder:
    """Accumulates lines into segments under a per-segment character budget."""

    def __init__(self, character_limit: int, template: ExportTemplate) -> None:
        self.character_limit = character_limit
        self.template = template
        self.closed: list[list[str]] = []
        self.current: list[str] = []
        self.count = 0

    def budget(self, *, first: bool) -> int:
        start = len(self.template.start) if first else 0
        return self.character_limit - start - self.template.trailer_reserve

    def _current_budget(self) -> int:
        return self.budget(first=not self.closed)

    def close(self) -> None:
        if self.current:
            self.closed.append(self.current)
        self.current = []
        self.count = 0

    def make_room(self, cost: int) -> None:
        """Close the current segment if ``cost`` fits an empty segment but not this one."""
        if self.current and self.count + cost > self._current_budget() and cost <= self.budget(first=False):
            self.close()

    def add(self, line: str) -> None:
        cost = len(line) + 1
        if self.current and self.count + cost > self._current_budget():
            self.close()
        self.current.append(line)
        self.count += cost

    def segments(self) -> list[ExportSegment]:
        self.close()
        last = len(self.closed) - 1
        return [
            ExportSegment(
                index=i,
                lines=tuple(lines),
                prefix=self.template.start if i == 0 else "",
                suffix=self.template.end if i == last else self.template.continuation,
            )
            for i, lines in enumerate(self.closed)
        ]


def pack_lines(
    lines: Iterable[tuple[str, bool]],
    character_limit: int,
    template: ExportTemplate | None = None,
) -> list[ExportSegment]:
    """Pack glued lines into segments of at most ``character_limit`` characters.

    Each line costs its length plus one for the newline. Template text counts
    against the limit: the first segment reserves room for ``template.start``
    and every segment reserves room for the longer of the continuation and end
    markers. A single line longer than the budget gets a segment of its own.

    Raises:
        ConfigurationError: if the templates leave no room for content.
    """
    template = template or ExportTemplate()
    builder = _SegmentBuilder(require_character_limit(character_limit), template)
    if builder.budget(first=True) < 1:
        raise ConfigurationError(
            option="export templates",
            message="Export templates leave no room for content within character_limit.",
        )

    items = list(lines)
    for i, (line, keep_with_next) in enumerate(items):
        if keep_with_next and i + 1 < len(items):
            builder.make_room(len(line) + 1 + len(items[i + 1][0]) + 1)
        builder.add(line)
    return builder.segments()


def pack(
    selected_paths: Iterable[str | Path],
    root: Path | str | None,
    character_limit: int | None,
    template: ExportTemplate | None = None,
    *,
    max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES,
    header_policy: HeaderPolicy = HeaderPolicy.KEEP_WITH_CONTENT,
    header_format: str = DEFAULT_HEADER_FORMAT,
    footer_format: str = DEFAULT_FOOTER_FORMAT,
    extra_roots: Sequence[Path] = (),
) -> list[ExportSegment]:
    """Pack the selected paths into ordered, size-bounded export segments.

    Selected paths are split into non-text entries (directories, files over
    ``max_text_bytes``, binary or unreadable files), listed by relative path,
    and text entries, written as header, content and footer. Both groups are
    sorted by relative path, so the same selection and contents always give the
    same segments. Paths that no longer exist are skipped.

    Args:
        selected_paths (Iterable[str | Path]): absolute paths of the selection
        root (Path | str | None): the workspace root paths are reported against
        character_limit (int | None): maximum characters per segment
        template (ExportTemplate | None): start / continuation / end text
        max_text_bytes (int): size ceiling for text content
        header_policy (HeaderPolicy): header placement at segment boundaries
        header_format (str): per-file header, ``{path}`` is the relative path
        footer_format (str): per-file footer, empty for none
        extra_roots (Sequence[Path]): further workspace roots; their paths are
            reported as ``<root name>/<relative path>``

    Raises:
        NoWorkspaceError: if there is no workspace root.
        ConfigurationError: if the character limit is missing or unusable.

    Returns:
        list[ExportSegment]: the segments; empty when nothing is selected
    """
    workspace = require_workspace(root)
    limit = require_character_limit(character_limit)
    non_text, text = classify_paths(
        list(selected_paths),
        workspace,
        max_text_bytes=max_text_bytes,
        extra_roots=extra_roots,
    )
    lines = iter_export_lines(
        non_text,
        text,
        header_format=header_format,
        footer_format=footer_format,
        header_policy=header_policy,
    )
    segments = pack_lines(lines, limit, template)
    logger.info(
        "export.packed",
        root=str(workspace),
        non_text=len(non_text),
        text=len(text),
        segments=len(segments),
    )
    return segments


def render_html(segments: Sequence[ExportSegment]) -> str:
    """Render segments as an HTML page with one copyable text block each.

    Args:
        segments (Sequence[ExportSegment]): the packed segments

    Returns:
        str: the HTML document
    """
    out = io.StringIO()
    out.write("<!DOCTYPE html>\n<html>\n<head><meta charset=\"utf-8\"><title>copytree export</title></head>\n<body>\n")
    for seg in segments:
        area_id = f"segment-{seg.index}"
        out.write(f'<textarea id="{area_id}" style="width: 100%; height: 300px;" readonly>')
        out.write(html.escape(seg.text, quote=False))
        out.write("</textarea>\n")
        out.write(f"<div>{seg.character_count} characters</div>\n")
        out.write(
            "<button onclick=\"navigator.clipboard.writeText("
            f"document.getElementById('{area_id}').value)\">Copy</button>\n",
        )
    out.write("</body>\n</html>\n")
    return out.getvalue()


def build_copy_text(
    selected_paths: Iterable[str | Path],
    root: Path | str | None,
    *,
    max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES,
    extra_roots: Sequence[Path] = (),
) -> str:
    """Concatenate the selected text files with path delimiters.

    Each text file is written between ``------- <rel> -----`` and
    ``------- end of <rel> -----`` lines, in relative path order. Non-text
    entries are left out.

    Raises:
        NoWorkspaceError: if there is no workspace root.
    """
    workspace = require_workspace(root)
    _non_text, text = classify_paths(
        list(selected_paths),
        workspace,
        max_text_bytes=max_text_bytes,
        extra_roots=extra_roots,
    )
    out = io.StringIO()
    for entry in text:
        out.write(COPY_HEADER.format(path=entry.rel) + "\n")
        out.write(entry.content)
        if entry.content and not entry.content.endswith("\n"):
            out.write("\n")
        out.write(COPY_FOOTER.format(path=entry.rel) + "\n")
    return out.getvalue()


def apply_copy_template(template: str, content: str) -> str:
    """Wrap copy text in a user template.

    ``%content%`` in the template is replaced by the content; a template without
    the placeholder is put in front of the content. Nothing is produced for
    empty content.
    """
    if not content:
        return ""
    if not template:
        return content
    if CONTENT_PLACEHOLDER in template:
        return template.replace(CONTENT_PLACEHOLDER, content)
    return f"{template}\n{content}"
