"""Outline tree, flattening and text parsing."""

from .flatten import INDENT_WIDTH, FlatEntry, flatten, node_to_string, render_lines, renumber
from .node import Heading, Node, NodeType, PredicateResult, evaluate
from .parser import parse_line, parse_outline

__all__ = [
    "FlatEntry",
    "Heading",
    "INDENT_WIDTH",
    "Node",
    "NodeType",
    "PredicateResult",
    "evaluate",
    "flatten",
    "node_to_string",
    "parse_line",
    "parse_outline",
    "render_lines",
    "renumber",
]
