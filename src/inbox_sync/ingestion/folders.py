"""Flatten an account's folder tree into selectable folder paths."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from ..core.models import FolderNode, MailboxFolder

DEFAULT_DELIMITER = "/"


def resolve_folders(
    nodes: Iterable[FolderNode], *, include_parents: bool = False
) -> list[MailboxFolder]:
    """Return sync targets in depth-first, pre-order sequence.

    Each child is joined to its parent's path with the child's own reported
    delimiter; servers are free to report a different delimiter per node.
    Only leaves are returned unless ``include_parents`` is set, in which case
    every selectable node is.
    """
    folders: list[MailboxFolder] = []
    for path, node in _walk(nodes, parent_path=None):
        if not node.selectable:
            continue
        if node.is_leaf or include_parents:
            folders.append(MailboxFolder(path=path, is_leaf=node.is_leaf))
    return folders


def resolve_folder_paths(
    nodes: Iterable[FolderNode], *, include_parents: bool = False
) -> list[str]:
    """Return only the paths produced by :func:`resolve_folders`."""
    return [
        folder.path
        for folder in resolve_folders(nodes, include_parents=include_parents)
    ]


def _walk(
    nodes: Iterable[FolderNode], parent_path: str | None
) -> Iterator[tuple[str, FolderNode]]:
    for node in nodes:
        if parent_path is None:
            path = node.name
        else:
            path = f"{parent_path}{node.delimiter or DEFAULT_DELIMITER}{node.name}"
        yield path, node
        yield from _walk(node.children, parent_path=path)


__all__ = ["resolve_folder_paths", "resolve_folders"]
