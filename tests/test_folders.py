"""Tests for folder tree flattening."""

from __future__ import annotations

from fakes import folder

from inbox_sync.core.models import FolderNode
from inbox_sync.ingestion import resolve_folder_paths, resolve_folders


def test_leaves_are_returned_depth_first_in_pre_order() -> None:
    tree = [
        folder("INBOX", folder("Clients", folder("Acme"), folder("Globex")), folder("Sent")),
        folder("Drafts"),
    ]

    assert resolve_folder_paths(tree) == [
        "INBOX/Clients/Acme",
        "INBOX/Clients/Globex",
        "INBOX/Sent",
        "Drafts",
    ]


def test_each_node_uses_its_own_delimiter() -> None:
    tree = [
        folder(
            "Root",
            folder("Dotted", folder("Leaf", delimiter="."), delimiter="."),
            folder("Plain", delimiter=None),
        )
    ]

    assert resolve_folder_paths(tree) == ["Root.Dotted.Leaf", "Root/Plain"]


def test_include_parents_returns_every_selectable_node() -> None:
    tree = [
        folder("INBOX", folder("Sent")),
        FolderNode(name="[Gmail]", delimiter="/", selectable=False, children=[folder("Spam")]),
    ]

    folders = resolve_folders(tree, include_parents=True)

    assert [(item.path, item.is_leaf) for item in folders] == [
        ("INBOX", False),
        ("INBOX/Sent", True),
        ("[Gmail]/Spam", True),
    ]


def test_empty_tree_resolves_to_nothing() -> None:
    assert resolve_folder_paths([]) == []
