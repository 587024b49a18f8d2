"""Projection of a flat note key set into a browsable path tree.

Traversals use explicit stacks, so path depth is not bounded by the
interpreter's recursion limit.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from .paths import ROOT_ID, SEPARATOR, key_from_node_id, split_key


@dataclass(frozen=True)
class TreeNode:
    """One path segment of the tree.

    ``children`` is ``None`` rather than an empty tuple for nodes without
    children, so serialized leaves carry no ``children`` field.
    """

    id: str
    name: str
    is_leaf: bool = False
    children: tuple[TreeNode, ...] | None = None

    def _fields(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "isLeaf": self.is_leaf}

    def to_dict(self) -> dict[str, Any]:
        data = self._fields()
        stack = [(self, data)]
        while stack:
            node, node_data = stack.pop()
            if node.children:
                child_data = [child._fields() for child in node.children]
                node_data["children"] = child_data
                stack.extend(zip(node.children, child_data))
        return data

    def walk(self) -> Iterator[TreeNode]:
        """Yield this node and its descendants depth first, in child order."""

        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            if node.children:
                stack.extend(reversed(node.children))


class _Draft:
    __slots__ = ("children", "is_leaf")

    def __init__(self) -> None:
        self.children: dict[str, _Draft] = {}
        self.is_leaf = False


def _freeze(root: _Draft) -> TreeNode:
    # Post-order: a draft is frozen once all of its children are.
    frozen: dict[int, TreeNode] = {}
    stack: list[tuple[_Draft, str, str, bool]] = [(root, ROOT_ID, ROOT_ID, False)]
    while stack:
        draft, name, node_id, expanded = stack.pop()
        if not expanded:
            stack.append((draft, name, node_id, True))
            for segment, child in draft.children.items():
                stack.append((child, segment, f"{node_id}{SEPARATOR}{segment}", False))
            continue

        children = tuple(
            frozen.pop(id(draft.children[segment])) for segment in sorted(draft.children)
        )
        frozen[id(draft)] = TreeNode(
            id=node_id,
            name=name,
            is_leaf=draft.is_leaf,
            children=children or None,
        )
    return frozen[id(root)]


def build_tree(keys: Iterable[str]) -> TreeNode:
    """Build the path tree for *keys* under a synthetic ``root`` node.

    Children are ordered by segment name. A key that is also the prefix of
    another key gives a node that is both a leaf and has children.
    """

    root = _Draft()
    for key in keys:
        node = root
        for segment in split_key(key):
            node = node.children.setdefault(segment, _Draft())
        node.is_leaf = True
    return _freeze(root)


def leaves(root: TreeNode) -> set[str]:
    """Return the corpus keys represented by the leaves below *root*."""

    return {key_from_node_id(node.id) for node in root.walk() if node.is_leaf}


def fingerprint(root: TreeNode) -> str:
    """Hash the tree one node at a time in pre-order.

    Each record carries the child count, which fixes the tree shape.
    """

    digest = hashlib.sha256()
    for node in root.walk():
        record = [node.id, node.name, node.is_leaf, len(node.children or ())]
        digest.update(json.dumps(record, separators=(",", ":")).encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()


@dataclass(frozen=True)
class PathTree:
    """Immutable tree snapshot; two trees are equal when their fingerprints are."""

    root: TreeNode = field(compare=False)
    fingerprint: str

    @classmethod
    def rebuild(cls, keys: Iterable[str]) -> PathTree:
        root = build_tree(keys)
        return cls(root=root, fingerprint=fingerprint(root))

    def to_data(self) -> list[dict[str, Any]]:
        """Return the tree in the list-of-roots shape tree widgets expect."""

        return [self.root.to_dict()]

    def leaves(self) -> set[str]:
        return leaves(self.root)

    def find(self, node_id: str) -> TreeNode | None:
        for node in self.root.walk():
            if node.id == node_id:
                return node
        return None
