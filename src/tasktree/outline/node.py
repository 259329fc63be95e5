"""Copy-on-write outline tree.

Every structural operation (``append``, ``replace``, ``filter``) works on a
deep clone and returns the new root; the receiver is never modified. Nodes
own their children top-down, while ``parent`` is a weak back-reference that
is rebuilt whenever a subtree is cloned.
"""

from __future__ import annotations

import logging
import weakref
from collections import deque
from dataclasses import dataclass, replace as dataclass_replace
from enum import Enum
from typing import Callable, Iterator, Union
from uuid import uuid4

from ..tracking.task import Task
from .flatten import flatten, renumber

logger = logging.getLogger(__name__)


class NodeType(str, Enum):
    """Variants of outline nodes."""

    OTHER = "OTHER"
    HEADING = "HEADING"
    TASK = "TASK"
    ROOT = "ROOT"


@dataclass(slots=True)
class Heading:
    """Payload of a HEADING node."""

    text: str
    level: int = 1

    def __str__(self) -> str:
        return "#" * self.level + " " + self.text


NodeData = Union[Task, Heading, str, None]
Predicate = Callable[["Node"], bool]

_PAYLOAD_TYPES: dict[NodeType, type | tuple[type, ...]] = {
    NodeType.TASK: Task,
    NodeType.HEADING: Heading,
    NodeType.OTHER: str,
    NodeType.ROOT: type(None),
}


@dataclass(frozen=True, slots=True)
class PredicateResult:
    """Outcome of calling a predicate on one node."""

    matched: bool
    error: Exception | None = None


def evaluate(predicate: Predicate, node: Node) -> PredicateResult:
    """Call ``predicate`` on ``node``, converting a raised error into a miss.

    Tree searches keep going when a predicate fails on a node;
    the failure is logged and reported through ``PredicateResult.error``.
    """

    try:
        return PredicateResult(bool(predicate(node)))
    except Exception as exc:
        logger.warning(
            "Predicate failed; treating node as unmatched",
            extra={"node_id": node.id, "line": node.line, "error": repr(exc)},
        )
        return PredicateResult(False, exc)


def _clone_data(data: NodeData) -> NodeData:
    if isinstance(data, Task):
        return data.clone()
    if isinstance(data, Heading):
        return dataclass_replace(data)
    return data


class Node:
    """A line of the outline: its variant, payload, line number and children."""

    def __init__(
        self,
        type: NodeType,
        line: int = 0,
        data: NodeData = None,
        *,
        children: list[Node] | None = None,
        parent: Node | None = None,
        id: str | None = None,
    ) -> None:
        if not isinstance(data, _PAYLOAD_TYPES[type]):
            raise TypeError(f"{type.value} node cannot hold {data.__class__.__name__} data")
        self.id = id or uuid4().hex
        self.type = type
        self.line = line
        self.data = data
        self.children: list[Node] = list(children or [])
        self._parent: weakref.ReferenceType[Node] | None = None
        self.parent = parent

    @classmethod
    def new_root(cls) -> Node:
        return cls(NodeType.ROOT)

    @classmethod
    def for_task(cls, task: Task, line: int = 0) -> Node:
        return cls(NodeType.TASK, line, task)

    @classmethod
    def for_heading(cls, text: str, level: int = 1, line: int = 0) -> Node:
        return cls(NodeType.HEADING, line, Heading(text, level))

    @classmethod
    def for_text(cls, text: str, line: int = 0) -> Node:
        return cls(NodeType.OTHER, line, text)

    @property
    def parent(self) -> Node | None:
        return self._parent() if self._parent is not None else None

    @parent.setter
    def parent(self, node: Node | None) -> None:
        self._parent = weakref.ref(node) if node is not None else None

    @property
    def task(self) -> Task | None:
        return self.data if isinstance(self.data, Task) else None

    def is_complete(self) -> bool:
        return self.type is NodeType.TASK and self.data.is_complete()

    def walk_breadth_first(self) -> Iterator[Node]:
        queue: deque[Node] = deque([self])
        while queue:
            node = queue.popleft()
            yield node
            queue.extend(node.children)

    def clone(self) -> Node:
        """Deep-copy this subtree; the copy's top has no parent."""

        return self._clone_under(None)

    def _clone_under(self, parent: Node | None) -> Node:
        copy = Node(self.type, self.line, _clone_data(self.data), id=self.id)
        copy.parent = parent
        copy.children = [child._clone_under(copy) for child in self.children]
        return copy

    def find(self, predicate: Predicate) -> Node | None:
        """Return the first node, in breadth-first order, matching ``predicate``."""

        for node in self.walk_breadth_first():
            if evaluate(predicate, node).matched:
                return node
        return None

    def filter(self, predicate: Predicate) -> Node:
        """Prune childless nodes that fail ``predicate``, deepest first.

        Ancestors of any surviving node are kept even when they fail the
        predicate themselves. Line numbers of the result are recomputed.
        """

        cloned = self.clone()
        for node in reversed(list(cloned.walk_breadth_first())):
            if node is cloned or node.children:
                continue
            if evaluate(predicate, node).matched:
                continue
            parent = node.parent
            parent.children = [child for child in parent.children if child is not node]
        renumber(cloned)
        return cloned

    def append(self, node: Node) -> Node:
        """Return a clone with ``node`` added as its last child.

        ``node`` gets the line after this subtree's last line; no other
        line numbers change.
        """

        cloned = self.clone()
        node.line = len(flatten(self)) + 1
        node.parent = cloned
        cloned.children.append(node)
        return cloned

    def replace(self, node: Node, predicate: Predicate) -> Node:
        """Return a clone where the first node matching ``predicate`` is ``node``.

        ``node`` takes over the matched node's id, line, parent and children.
        Without a match, or when the match is the top of the tree, the clone
        is returned unchanged.
        """

        cloned = self.clone()
        target = cloned.find(predicate)
        if target is None:
            return cloned
        parent = target.parent
        if parent is None:
            return cloned

        node.id = target.id
        node.line = target.line
        node.parent = parent
        node.children = target.children
        for child in node.children:
            child.parent = node
        parent.children = [node if child.id == node.id else child for child in parent.children]
        return cloned

    def __str__(self) -> str:
        if self.type is NodeType.ROOT:
            return ""
        return str(self.data)

    def __repr__(self) -> str:
        return f"Node(type={self.type.value}, line={self.line}, id={self.id[:8]!r}, data={str(self)!r})"


__all__ = ["Heading", "Node", "NodeData", "NodeType", "Predicate", "PredicateResult", "evaluate"]
