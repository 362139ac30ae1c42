"""Lazily listed workspace tree with nodes stored in a path-indexed arena."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from copytree.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class FileNode(BaseModel):
    """A file or directory entry of the workspace tree.

    Nodes reference their parent and children by path; the owning ``FileTree``
    resolves those paths, so a node never holds another node.

    Attributes:
        path: Absolute path, the identity of the node.
        name: Display name.
        is_directory: Whether the entry is a directory.
        parent: Path of the parent node, None for workspace roots.
        children: Paths of the children in filesystem order (directories only).
    """

    model_config = ConfigDict(frozen=True)

    path: Path = Field(..., description="Absolute path")
    name: str = Field(..., description="Display name")
    is_directory: bool = Field(default=False, description="Directory flag")
    parent: Path | None = Field(default=None, description="Parent path, None for roots")
    children: tuple[Path, ...] = Field(default=(), description="Child paths")

    @property
    def is_root(self) -> bool:
        return self.parent is None


class FileTree:
    """Workspace tree over one or more root folders.

    Listing rebuilds nodes from the filesystem on every request and stores them
    in an arena keyed by path; upward walks are arena lookups.
    """

    def __init__(self, roots: Sequence[Path | str] = ()) -> None:
        self.roots: list[Path] = [Path(r).resolve() for r in roots]
        self._nodes: dict[Path, FileNode] = {}

    def __contains__(self, path: object) -> bool:
        return isinstance(path, (str, Path)) and Path(path) in self._nodes

    def list_children(self, node: FileNode | None = None) -> list[FileNode]:
        """List the children of ``node``, or the workspace roots when ``node`` is None.

        Subdirectories are materialized eagerly, so a listed node's whole
        subtree is available for aggregate counts. An unreadable directory
        yields an empty list.

        Args:
            node (FileNode | None): the directory to list, or None for the roots

        Returns:
            list[FileNode]: the child nodes in filesystem order
        """
        if node is None:
            return [self._build_root(root) for root in self.roots]
        if not node.is_directory:
            return []
        previous = self._nodes.get(node.path)
        if previous is not None:
            for stale in list(self.iter_descendants(previous)):
                self._nodes.pop(stale.path, None)
        children = self._scan(node.path, parent=node.parent, name=node.name, ancestry=frozenset())
        return [self._nodes[p] for p in children]

    def refresh(self) -> list[FileNode]:
        """Drop every materialized node and list the roots again."""
        self._nodes.clear()
        return self.list_children()

    def get(self, path: Path | str) -> FileNode | None:
        return self._nodes.get(Path(path))

    def parent_of(self, node: FileNode) -> FileNode | None:
        if node.parent is None:
            return None
        return self._nodes.get(node.parent)

    def ancestors(self, node: FileNode) -> list[FileNode]:
        """Return the parent chain of ``node``, nearest first, ending at its root."""
        chain: list[FileNode] = []
        current = self.parent_of(node)
        while current is not None:
            chain.append(current)
            current = self.parent_of(current)
        return chain

    def iter_descendants(self, node: FileNode) -> Iterator[FileNode]:
        for child_path in node.children:
            child = self._nodes.get(child_path)
            if child is None:
                continue
            yield child
            if child.is_directory:
                yield from self.iter_descendants(child)

    def descendant_files(self, node: FileNode) -> list[FileNode]:
        return [n for n in self.iter_descendants(node) if not n.is_directory]

    def find_root(self, path: Path | str) -> Path | None:
        """Return the workspace root containing ``path``, if any."""
        p = Path(path)
        for root in self.roots:
            if p == root or p.is_relative_to(root):
                return root
        return None

    @staticmethod
    def exists(node: FileNode) -> bool:
        """Whether the entry behind ``node`` is still on disk."""
        return os.path.lexists(node.path)

    def _build_root(self, root: Path) -> FileNode:
        self._scan(root, parent=None, name=root.name or str(root), ancestry=frozenset())
        return self._nodes[root]

    def _scan(
        self,
        directory: Path,
        *,
        parent: Path | None,
        name: str,
        ancestry: frozenset[str],
    ) -> list[Path]:
        """Materialize ``directory`` and its subtree into the arena.

        Returns the child paths of ``directory``.
        """
        real = os.path.realpath(directory)
        children: list[Path] = []
        if real in ancestry:
            logger.warning("tree.symlink_cycle", path=str(directory))
        else:
            try:
                with os.scandir(directory) as entries:
                    listed = list(entries)
            except OSError as e:
                logger.warning("tree.list_failed", path=str(directory), error=str(e))
                listed = []

            inner = ancestry | {real}
            for entry in listed:
                child_path = Path(entry.path)
                try:
                    is_dir = entry.is_dir()
                    entry.stat()
                except OSError as e:
                    logger.warning("tree.stat_failed", path=str(child_path), error=str(e))
                    continue
                if is_dir:
                    self._scan(child_path, parent=directory, name=entry.name, ancestry=inner)
                else:
                    self._nodes[child_path] = FileNode(path=child_path, name=entry.name, parent=directory)
                children.append(child_path)

        self._nodes[directory] = FileNode(
            path=directory,
            name=name,
            is_directory=True,
            parent=parent,
            children=tuple(children),
        )
        return children
