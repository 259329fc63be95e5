"""Build an outline tree from indented text."""

from __future__ import annotations

import re

from ..tracking.task import Task
from .flatten import INDENT_WIDTH
from .node import Node

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.*)$")


def parse_line(content: str, line: int, depth: int = 0) -> Node:
    """Classify one line with its indentation already removed."""

    heading = HEADING_PATTERN.match(content)
    if heading:
        return Node.for_heading(heading.group(2), len(heading.group(1)), line)
    if Task.is_task_line(content):
        return Node.for_task(Task.parse(content, indent=depth), line)
    return Node.for_text(content, line)


def parse_outline(text: str) -> Node:
    """Parse ``text`` into a tree whose nesting follows indentation.

    Each line becomes one node numbered by its position. A line's parent is
    the closest preceding line one level shallower; deeper jumps are clamped
    to one level below the previous line.
    """

    root = Node.new_root()
    if not text:
        return root

    stack = [root]
    for number, raw in enumerate(text.split("\n"), start=1):
        expanded = raw.rstrip("\r").expandtabs(INDENT_WIDTH)
        content = expanded.lstrip(" ")
        indent = len(expanded) - len(content)
        depth = min(indent // INDENT_WIDTH, len(stack) - 1)

        node = parse_line(content, number, depth)
        parent = stack[depth]
        node.parent = parent
        parent.children.append(node)
        del stack[depth + 1 :]
        stack.append(node)
    return root


__all__ = ["HEADING_PATTERN", "parse_line", "parse_outline"]
