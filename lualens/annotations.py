"""
Per-node analysis facts, kept outside the tree.

luaparser nodes are left untouched; everything the analyzer learns about a
node lives in a NodeInfo record of the AnnotationTable, keyed by id(node).
The table also holds a reference to each annotated node so ids stay valid
for as long as the annotations do.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from luaparser.astnodes import Node

from lualens.values import value_fingerprint


@dataclass
class NodeInfo:
    # scope facts
    binding: Optional[Node] = None
    function_level: int = 0
    is_parameter: bool = False
    is_mutated: bool = False
    is_used: bool = False
    is_global: bool = False
    is_field: bool = False
    previous: Optional[Node] = None
    masks: Optional[Node] = None
    masked_by: Optional[Node] = None
    # identity
    structural_id: Optional[int] = None
    resolved_name: Optional[str] = None
    # values
    value: Any = None
    callee_value: Any = None
    see_value: Optional[Node] = None
    pinned: bool = False
    is_dead: bool = False
    defined_global: bool = False
    note: Optional[str] = None


class AnnotationTable:
    """NodeInfo records by node identity."""

    def __init__(self):
        self._infos: Dict[int, NodeInfo] = {}
        self._nodes: Dict[int, Node] = {}

    def get(self, node) -> Optional[NodeInfo]:
        if node is None:
            return None
        return self._infos.get(id(node))

    def info(self, node) -> NodeInfo:
        """The record for node, created on first access."""
        info = self._infos.get(id(node))
        if info is None:
            info = NodeInfo()
            self._infos[id(node)] = info
            self._nodes[id(node)] = node
        return info

    def value(self, node):
        info = self._infos.get(id(node))
        return None if info is None else info.value

    def items(self) -> Iterator[Tuple[Node, NodeInfo]]:
        for key, info in self._infos.items():
            yield self._nodes[key], info

    def clear(self):
        self._infos.clear()
        self._nodes.clear()

    def __len__(self):
        return len(self._infos)

    def fingerprint(self) -> List[Tuple[int, Any]]:
        """Full rendering of every record's value, used to detect a fixpoint."""
        return [(key, value_fingerprint(info.value)) for key, info in self._infos.items()]
