"""copytree: select files in a workspace and export them for an LLM.

The selection is kept in a JSON state file (``.copytree/state.json`` under the
first workspace root by default) and survives between runs. Exports are split
into segments of at most ``--character-limit`` characters and written as an
HTML page with one copy button per segment; ``copy`` writes the plain text.

Usage
-----
    copytree --root . select src/app.py src/util.py
    copytree --root . tree
    copytree --root . --character-limit 24000 export --output export.html
    copytree --root . copy --template $'Review this code:\\n%content%'
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from copytree import __version__
from copytree.config import HeaderPolicy
from copytree.exceptions import CopyTreeError, NodeNotFoundError, NoWorkspaceError
from copytree.file_manipulation import create_file, create_folder, delete_path, relpath, rename_path
from copytree.logging import logger, setup_logging
from copytree.output_construction import apply_copy_template, build_copy_text, pack, render_html
from copytree.selection import JsonStatePersistence, SelectionStore, render_tree
from copytree.settings import Settings, load_settings
from copytree.tree_model import FileNode, FileTree

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser.

    Returns:
        argparse.ArgumentParser: parser with one subcommand per operation
    """
    p = argparse.ArgumentParser(
        prog="copytree",
        description="Select files in a workspace and export them as size-bounded text segments.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument(
        "--root",
        dest="roots",
        action="append",
        default=None,
        help="Workspace root folder (repeatable).",
    )
    p.add_argument("--config", type=Path, default=None, help="YAML option file.")
    p.add_argument("--state-file", type=Path, default=None, help="Selection state file.")
    p.add_argument("--character-limit", type=int, default=None, help="Maximum characters per segment.")
    p.add_argument("--start-template", dest="export_start_template", default=None, help="Text before the export.")
    p.add_argument(
        "--continuation-template",
        dest="export_continuation_template",
        default=None,
        help="Text after each non-final segment.",
    )
    p.add_argument("--end-template", dest="export_end_template", default=None, help="Text after the export.")
    p.add_argument("--max-text-bytes", type=int, default=None, help="Files above are exported by path only.")
    p.add_argument(
        "--header-policy",
        choices=[h.value for h in HeaderPolicy],
        default=None,
        help="Keep file headers with their first line, or allow splitting.",
    )
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")

    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("tree", help="Show the workspace tree with selection marks.")
    sub.add_parser("status", help="List the selected paths.")
    sub.add_parser("refresh", help="Drop stale selections and show the tree.")
    for name, help_text in (
        ("select", "Add paths to the selection."),
        ("deselect", "Remove paths from the selection."),
        ("toggle", "Toggle the selection of files."),
    ):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("paths", nargs="+", help="Paths inside a workspace root.")

    clear = sub.add_parser("clear", help="Clear the whole selection.")
    clear.add_argument("--yes", action="store_true", help="Do not ask for confirmation.")

    export = sub.add_parser("export", help="Write the selection as an HTML page of segments.")
    export.add_argument("--output", type=Path, required=True, help="Output HTML file.")

    copy = sub.add_parser("copy", help="Write the selected files as delimited text.")
    copy.add_argument("--template", default=None, help="Wrapper text; %%content%% is replaced.")
    copy.add_argument("--output", type=Path, default=None, help="Output file (stdout by default).")

    for name, help_text in (("create-file", "Create an empty file."), ("create-folder", "Create a folder.")):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("path", type=Path)

    rename = sub.add_parser("rename", help="Rename a file or folder.")
    rename.add_argument("path", type=Path)
    rename.add_argument("new_name")

    delete = sub.add_parser("delete", help="Delete a file or folder.")
    delete.add_argument("path", type=Path)
    delete.add_argument("--yes", action="store_true", help="Do not ask for confirmation.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> tuple[argparse.Namespace, Settings]:
    """Parse CLI arguments into the namespace and the merged settings."""
    args = build_parser().parse_args(argv)
    overrides = {
        "roots": args.roots,
        "state_file": args.state_file,
        "character_limit": args.character_limit,
        "export_start_template": args.export_start_template,
        "export_continuation_template": args.export_continuation_template,
        "export_end_template": args.export_end_template,
        "max_text_bytes": args.max_text_bytes,
        "header_policy": args.header_policy,
        "log_file": args.log_file,
    }
    return args, load_settings(args.config, overrides)


def confirm(question: str) -> bool:
    """Ask a yes/no question on stdin; anything but yes is no."""
    try:
        answer = input(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def open_workspace(settings: Settings) -> tuple[FileTree, SelectionStore]:
    """List the workspace tree and hydrate the selection from its state file.

    Raises:
        NoWorkspaceError: if no workspace root is configured.
    """
    state_file = settings.resolved_state_file()
    if not settings.roots or state_file is None:
        raise NoWorkspaceError
    tree = FileTree(settings.roots)
    tree.list_children()

    def on_refresh(nodes: Sequence[FileNode] | None) -> None:
        if nodes is None:
            logger.debug("tree.refresh_all")
        else:
            logger.debug("tree.refresh", paths=[str(n.path) for n in nodes])

    store = SelectionStore(JsonStatePersistence(state_file, key=settings.state_key), tree, on_refresh)
    return tree, store


def resolve_node(tree: FileTree, raw: str | Path) -> FileNode:
    """Find the tree node for a command line path.

    Raises:
        NodeNotFoundError: if the path is not a listed node.
    """
    path = Path(raw).absolute()
    node = tree.get(path) or tree.get(path.resolve())
    if node is None:
        raise NodeNotFoundError(path=path, message=f"Not inside any workspace folder: {raw}")
    return node


def write_output(content: str, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(content)
    else:
        output.write_text(content, encoding="utf-8")


def cmd_mutate(args: argparse.Namespace, settings: Settings) -> int:
    tree, store = open_workspace(settings)
    nodes = [resolve_node(tree, raw) for raw in args.paths]
    action: Callable[[FileNode], object] = {
        "select": store.select,
        "deselect": store.deselect,
        "toggle": store.toggle_select,
    }[args.command]
    for node in nodes:
        action(node)
    print(f"{len(store)} selected")
    return 0


def cmd_tree(args: argparse.Namespace, settings: Settings) -> int:
    tree, store = open_workspace(settings)
    if args.command == "refresh":
        removed = store.prune()
        roots = tree.refresh()
        if removed:
            print(f"Dropped {len(removed)} stale selection(s)")
    else:
        roots = tree.list_children()
    print("\n".join(render_tree(store, roots)))
    return 0


def cmd_status(_args: argparse.Namespace, settings: Settings) -> int:
    tree, store = open_workspace(settings)
    paths = store.selected_paths()
    print(f"{len(paths)} selected")
    for raw in sorted(paths):
        root = tree.find_root(raw) or settings.workspace_root
        print(relpath(Path(raw), root) if root else raw)
    return 0


def cmd_clear(args: argparse.Namespace, settings: Settings) -> int:
    _tree, store = open_workspace(settings)
    if store.clear_all(confirmed=args.yes or confirm("Clear all selected items?")):
        print("Selection cleared")
    return 0


def cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    tree, store = open_workspace(settings)
    store.prune()
    segments = pack(
        store.selected_paths(),
        settings.workspace_root,
        settings.character_limit,
        settings.template,
        max_text_bytes=settings.max_text_bytes,
        header_policy=settings.header_policy,
        header_format=settings.header_format,
        footer_format=settings.footer_format,
        extra_roots=tree.roots[1:],
    )
    write_output(render_html(segments), args.output)
    print(f"Wrote {args.output} segments={len(segments)}")
    return 0


def cmd_copy(args: argparse.Namespace, settings: Settings) -> int:
    tree, store = open_workspace(settings)
    store.prune()
    content = build_copy_text(
        store.selected_paths(),
        settings.workspace_root,
        max_text_bytes=settings.max_text_bytes,
        extra_roots=tree.roots[1:],
    )
    template = settings.copy_template if args.template is None else args.template
    write_output(apply_copy_template(template, content), args.output)
    return 0


def cmd_filesystem(args: argparse.Namespace, settings: Settings) -> int:
    _tree, store = open_workspace(settings)
    path = Path(args.path).absolute()
    if args.command == "create-file":
        create_file(path)
    elif args.command == "create-folder":
        create_folder(path)
    elif args.command == "rename":
        rename_path(path, args.new_name)
    elif args.yes or confirm(f"Delete {path}?"):
        delete_path(path)
    # entries that went away must not linger in the selection
    store.prune()
    return 0


COMMANDS: dict[str, Callable[[argparse.Namespace, Settings], int]] = {
    "tree": cmd_tree,
    "refresh": cmd_tree,
    "status": cmd_status,
    "select": cmd_mutate,
    "deselect": cmd_mutate,
    "toggle": cmd_mutate,
    "clear": cmd_clear,
    "export": cmd_export,
    "copy": cmd_copy,
    "create-file": cmd_filesystem,
    "create-folder": cmd_filesystem,
    "rename": cmd_filesystem,
    "delete": cmd_filesystem,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Run one copytree command.

    Args:
        argv (Sequence[str] | None): Optional CLI arguments.

    Returns:
        int: Process exit code, 2 when the command failed.
    """
    try:
        args, settings = parse_args(argv)
        if settings.log_file:
            setup_logging(settings.log_file)
        return COMMANDS[args.command](args, settings)
    except CopyTreeError as e:
        message = getattr(e, "message", "") or type(e).__name__
        logger.error("command.failed", error=type(e).__name__, message=message)
        sys.stderr.write(f"error: {message}\n")
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
