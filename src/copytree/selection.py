"""Persisted selection set over the workspace tree."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, ConfigDict, Field

from copytree.config import SELECTED_ITEMS_KEY, SELECTED_MARK, UNSELECTED_MARK
from copytree.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from copytree.tree_model import FileNode, FileTree

    RefreshCallback = Callable[[Sequence[FileNode] | None], None]

TOGGLE_SELECT_COMMAND = "toggleSelect"


class SelectionPersistence(Protocol):
    """Storage for the selection set."""

    def load(self) -> list[str]: ...

    def save(self, paths: list[str]) -> None: ...


class MemoryPersistence:
    """In-process persistence, mostly useful for embedding and tests."""

    def __init__(self, paths: Iterable[str] = ()) -> None:
        self.paths: list[str] = list(paths)
        self.saves = 0

    def load(self) -> list[str]:
        return list(self.paths)

    def save(self, paths: list[str]) -> None:
        self.paths = list(paths)
        self.saves += 1


class JsonStatePersistence:
    """Workspace state kept as a JSON object on disk.

    The selection lives under one key of the object; other keys are left
    untouched. Every save rewrites the file through a temporary file and an
    atomic replace before returning.
    """

    def __init__(self, path: Path | str, key: str = SELECTED_ITEMS_KEY) -> None:
        self.path = Path(path)
        self.key = key

    def _read_state(self) -> dict[str, object]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("state.corrupt", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> list[str]:
        value = self._read_state().get(self.key)
        if not isinstance(value, list):
            return []
        return [str(v) for v in value]

    def save(self, paths: list[str]) -> None:
        state = self._read_state()
        state[self.key] = list(paths)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            Path(tmp).replace(self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class SelectionStore:
    """Selection set of node paths, persisted after every mutation.

    On construction the persisted paths are loaded and any path that no longer
    exists is dropped; the pruned set is saved straight away.

    Mutations notify ``on_refresh`` with the mutated node followed by its
    ancestors, nearest first, so aggregate counts can be redisplayed; a full
    tree refresh is signalled with ``None``.
    """

    def __init__(
        self,
        persistence: SelectionPersistence,
        tree: FileTree,
        on_refresh: RefreshCallback | None = None,
    ) -> None:
        self.persistence = persistence
        self.tree = tree
        self.on_refresh = on_refresh
        self._selected: dict[str, None] = dict.fromkeys(persistence.load())
        self.prune()

    def __len__(self) -> int:
        return len(self._selected)

    def __contains__(self, path: object) -> bool:
        return str(path) in self._selected

    def selected_paths(self) -> list[str]:
        return list(self._selected)

    def is_selected(self, node: FileNode) -> bool:
        return str(node.path) in self._selected

    def select(self, node: FileNode) -> None:
        key = str(node.path)
        if key not in self._selected:
            self._selected[key] = None
            logger.info("selection.select", path=key)
        self._persist()
        self._refresh_upwards(node)

    def deselect(self, node: FileNode) -> None:
        key = str(node.path)
        if key in self._selected:
            del self._selected[key]
            logger.info("selection.deselect", path=key)
        self._persist()
        self._refresh_upwards(node)

    def toggle_select(self, node: FileNode) -> bool:
        """Flip the selection of a file node; directories are left alone.

        Returns:
            bool: whether the node is selected afterwards.
        """
        if node.is_directory:
            return self.is_selected(node)
        if self.is_selected(node):
            self.deselect(node)
        else:
            self.select(node)
        return self.is_selected(node)

    def selected_count(self, node: FileNode) -> int:
        """Count selected files below a directory node.

        Only materialized descendants are counted, so a path selected outside
        the listed tree, or one that went stale, never contributes.
        """
        if not node.is_directory:
            return 0
        count = 0
        for child_path in node.children:
            child = self.tree.get(child_path)
            if child is None:
                continue
            if child.is_directory:
                count += self.selected_count(child)
            elif self.is_selected(child):
                count += 1
        return count

    def clear_all(self, *, confirmed: bool) -> bool:
        """Empty the selection once the caller has confirmed.

        Returns:
            bool: True if the selection was cleared.
        """
        if not confirmed:
            logger.info("selection.clear_cancelled")
            return False
        self._selected.clear()
        self._persist()
        logger.info("selection.cleared")
        self._emit(None)
        return True

    def prune(self) -> list[str]:
        """Drop selected paths that no longer exist on disk.

        Returns:
            list[str]: the removed paths.
        """
        stale = [p for p in self._selected if not os.path.lexists(p)]
        if stale:
            for p in stale:
                del self._selected[p]
            logger.debug("selection.pruned", paths=stale)
            self._persist()
        return stale

    def _persist(self) -> None:
        self.persistence.save(list(self._selected))

    def _refresh_upwards(self, node: FileNode) -> None:
        self._emit([node, *self.tree.ancestors(node)])

    def _emit(self, nodes: Sequence[FileNode] | None) -> None:
        if self.on_refresh is not None:
            self.on_refresh(nodes)


class TreeItem(BaseModel):
    """What a tree host needs to display one node."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., description="Displayed name")
    collapsible: bool = Field(default=False, description="Directories can expand")
    icon: str = Field(default="file", description="'folder' or 'file'")
    description: str = Field(default="", description="Selection mark or aggregate count")
    command: str | None = Field(default=None, description="Activation command")


def tree_item(store: SelectionStore, node: FileNode) -> TreeItem:
    if node.is_directory:
        count = store.selected_count(node)
        return TreeItem(
            label=node.name,
            collapsible=True,
            icon="folder",
            description=f"({count}) selected" if count > 0 else "",
        )
    return TreeItem(
        label=node.name,
        icon="file",
        description=SELECTED_MARK if store.is_selected(node) else UNSELECTED_MARK,
        command=TOGGLE_SELECT_COMMAND,
    )


def render_tree(store: SelectionStore, roots: Sequence[FileNode] | None = None) -> list[str]:
    """Render the workspace tree with selection marks as text lines.

    Children are shown directories first, then files, each alphabetically.

    Args:
        store (SelectionStore): the selection to display
        roots (Sequence[FileNode] | None): root nodes to render; listed from the
            store's tree when omitted

    Returns:
        list[str]: one line per node, suitable for printing
    """
    tree = store.tree
    if roots is None:
        roots = tree.list_children()
    lines: list[str] = []

    def label(node: FileNode) -> str:
        item = tree_item(store, node)
        text = item.label + ("/" if item.collapsible else "")
        return f"{text} {item.description}" if item.description else text

    def walk(node: FileNode, prefix: str) -> None:
        kids = [k for k in (tree.get(p) for p in node.children) if k is not None]
        kids.sort(key=lambda n: (not n.is_directory, n.name.lower()))
        for idx, child in enumerate(kids):
            last = idx == len(kids) - 1
            branch = "└── " if last else "├── "
            lines.append(prefix + branch + label(child))
            if child.is_directory:
                walk(child, prefix + ("    " if last else "│   "))

    for root in roots:
        lines.append(label(root))
        walk(root, "")
    return lines
