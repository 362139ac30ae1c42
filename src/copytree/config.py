from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field

_ = Path()

SELECTED_ITEMS_KEY = "selectedItems"
"""Key under which the selection set is stored in the workspace state."""

DEFAULT_MAX_TEXT_BYTES = 10 * 1024 * 1024
"""Files above this size are exported by path only."""

BINARY_SNIFF_BYTES = 8192

CONTENT_PLACEHOLDER = "%content%"

COPY_HEADER = "------- {path} -----"
COPY_FOOTER = "------- end of {path} -----"

DEFAULT_HEADER_FORMAT = "{path}"
DEFAULT_FOOTER_FORMAT = "end of {path}"

SELECTED_MARK = "✅"
UNSELECTED_MARK = "☑️"

BINARY_SUFFIXES = frozenset({
    ".7z",
    ".a",
    ".avi",
    ".bin",
    ".bmp",
    ".class",
    ".dll",
    ".dylib",
    ".eot",
    ".exe",
    ".gif",
    ".gz",
    ".ico",
    ".jar",
    ".jpeg",
    ".jpg",
    ".mov",
    ".mp3",
    ".mp4",
    ".o",
    ".otf",
    ".pdf",
    ".png",
    ".pyc",
    ".so",
    ".sqlite",
    ".sqlite3",
    ".tar",
    ".tgz",
    ".ttf",
    ".wasm",
    ".wav",
    ".webp",
    ".woff",
    ".woff2",
    ".xz",
    ".zip",
})


class FileKind(StrEnum):
    """Export class of a selected path."""

    TEXT = auto()
    NON_TEXT = auto()


class NonTextReason(StrEnum):
    """Why a selected path is exported by path only."""

    NONE = ""
    DIRECTORY = auto()
    TOO_BIG = auto()
    BINARY = auto()
    UNREADABLE = auto()


class HeaderPolicy(StrEnum):
    """Whether a file's header line may end up alone at the end of a segment.

    ``keep_with_content`` moves the header to the next segment together with the
    first line of the file when both do not fit in what is left of the current
    one. ``allow_split`` packs line by line with no look-ahead.
    """

    KEEP_WITH_CONTENT = auto()
    ALLOW_SPLIT = auto()


class ExportTemplate(BaseModel):
    """Wrapper text attached to export segments.

    Attributes:
        start: Prepended to the first segment.
        continuation: Appended to every segment but the last.
        end: Appended to the last segment.
    """

    model_config = ConfigDict(frozen=True)

    start: str = Field(default="", description="Text before the first segment.")
    continuation: str = Field(default="", description="Text after each non-final segment.")
    end: str = Field(default="", description="Text after the last segment.")

    @computed_field
    @property
    def trailer_reserve(self) -> int:
        """Characters to keep free in every segment for whichever trailer ends it."""
        return max(len(self.continuation), len(self.end))


class ExportEntry(BaseModel):
    """One selected path, classified for export.

    Attributes:
        path: Absolute path on disk.
        rel: Path relative to the workspace root, POSIX separators.
        kind: Whether content is included or only the path.
        content: Decoded text content (text entries only).
        reason: Why a non-text entry was demoted.
    """

    model_config = ConfigDict(frozen=True)

    path: Path = Field(..., description="Absolute path")
    rel: str = Field(..., description="Path relative to the workspace root")
    kind: FileKind = Field(..., description="Export class")
    content: str = Field(default="", description="Text content for text entries")
    reason: NonTextReason = Field(default=NonTextReason.NONE, description="Non-text reason")

    @computed_field
    @property
    def is_text(self) -> bool:
        """Whether the entry contributes its content to the export."""
        return self.kind is FileKind.TEXT
