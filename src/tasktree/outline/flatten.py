"""Depth-first mapping between an outline tree and its text lines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .node import Node

INDENT_WIDTH = 2


@dataclass(frozen=True, slots=True)
class FlatEntry:
    """One rendered line: the node and how deep it sits below the root."""

    node: Node
    depth: int


def flatten(root: Node) -> list[FlatEntry]:
    """Return the nodes below ``root`` in depth-first pre-order.

    ``root`` itself is excluded; its direct children have depth 0. This is
    the order in which lines appear in the text, so ``entries[i]`` is line
    ``i + 1``.
    """

    entries: list[FlatEntry] = []
    stack = [(child, 0) for child in reversed(root.children)]
    while stack:
        node, depth = stack.pop()
        entries.append(FlatEntry(node, depth))
        stack.extend((child, depth + 1) for child in reversed(node.children))
    return entries


def renumber(root: Node) -> None:
    """Assign contiguous 1-based line numbers in flatten order."""

    for number, entry in enumerate(flatten(root), start=1):
        entry.node.line = number


def render_lines(root: Node) -> list[str]:
    return [" " * (entry.depth * INDENT_WIDTH) + str(entry.node) for entry in flatten(root)]


def node_to_string(root: Node) -> str:
    return "\n".join(render_lines(root))


__all__ = ["FlatEntry", "INDENT_WIDTH", "flatten", "node_to_string", "render_lines", "renumber"]
