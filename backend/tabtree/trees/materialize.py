"""Lazy nested view of a tree, detached from the live engine state."""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from tabtree.models import Node


@dataclass(frozen=True)
class TreeItem:
    node: Node
    children: "TreeIterable"


class TreeIterable:
    """Finite, restartable sequence of TreeItems.

    Items are built on iteration, one level at a time, from a node mapping
    copied when the engine handed this out.
    """

    def __init__(self, root_ids: tuple[str, ...], nodes: Mapping[str, Node]) -> None:
        self._root_ids = root_ids
        self._nodes = nodes

    def __iter__(self) -> Iterator[TreeItem]:
        for node_id in self._root_ids:
            node = self._nodes[node_id]
            yield TreeItem(node=node, children=TreeIterable(tuple(node.children), self._nodes))

    def __len__(self) -> int:
        return len(self._root_ids)

    def to_dicts(self) -> list[dict[str, Any]]:
        """Nested plain dicts, for JSON responses."""
        return [
            {**item.node.model_dump(exclude={"children"}), "children": item.children.to_dicts()}
            for item in self
        ]
