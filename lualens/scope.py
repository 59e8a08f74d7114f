"""
Lexical scope analysis.

ScopeBuilder walks the tree with a stack of scopes and records binding facts
on identifier nodes: which definition a name refers to, at which function
nesting level it occurs, whether a local is a parameter, is ever read or
assigned, and whether it masks another local. Field names (``a.b``,
``a["b"]``, ``a:b()``, ``function a:b()``) are flagged with their owner
expression. Global names are collected with set/used flags.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from luaparser.astnodes import Name, Node, String

from lualens.annotations import AnnotationTable
from lualens.tree import SourceMap, is_positional_field, iter_children, kind_of

logger = logging.getLogger(__name__)


@dataclass
class GlobalUsage:
    set: bool = False
    used: bool = False


@dataclass
class LocalRegion:
    """Character range in which a local definition is visible."""
    name: str
    definition: Node
    start: int
    stop: int


@dataclass
class ScopeFacts:
    globals: Dict[str, GlobalUsage] = field(default_factory=dict)
    regions: List[LocalRegion] = field(default_factory=list)
    # method node id -> its implicit self definition
    implicit_self: Dict[int, Node] = field(default_factory=dict)

    def variables_in_scope(self, offset: int) -> Dict[str, Node]:
        """Locals visible at a character offset, innermost last wins."""
        visible: Dict[str, Node] = {}
        for region in self.regions:
            if region.start <= offset <= region.stop:
                visible[region.name] = region.definition
        return visible


class ScopeBuilder:
    """Computes binding facts for one tree."""

    def __init__(self, source_map: SourceMap, annotations: AnnotationTable):
        self.source_map = source_map
        self.annotations = annotations
        self.facts = ScopeFacts()
        self.scopes: List[Dict[str, Node]] = []
        self.region_ends: List[int] = []
        self.level = 0

    def build(self) -> ScopeFacts:
        chunk = self.source_map.chunk
        self.level = 1
        # the file-level block reaches the end of the source
        self._push(len(self.source_map.source))
        self._visit_all(chunk.body.body)
        self._pop()
        logger.debug("scope: %d locals, %d globals", len(self.facts.regions), len(self.facts.globals))
        return self.facts

    # ---- scope stack ----

    def _push(self, region_end: int):
        self.scopes.append({})
        self.region_ends.append(region_end)

    def _pop(self):
        self.scopes.pop()
        self.region_ends.pop()

    def _end_of(self, node) -> int:
        span = self.source_map.span(node)
        if span is not None:
            return span[1]
        return self.region_ends[-1] if self.region_ends else len(self.source_map.source)

    def _start_of(self, node) -> int:
        span = self.source_map.span(node)
        return span[0] if span is not None else 0

    def _lookup(self, name: str) -> Optional[Node]:
        for scope in reversed(self.scopes):
            if name in scope:
                return scope[name]
        return None

    def _declare(self, name_node, visible_from: int, is_parameter: bool = False):
        name = name_node.id
        info = self.annotations.info(name_node)
        info.binding = name_node
        info.function_level = self.level
        info.is_parameter = is_parameter
        masked = self._lookup(name)
        if masked is not None:
            info.masks = masked
            self.annotations.info(masked).masked_by = name_node
        self.scopes[-1][name] = name_node
        self.facts.regions.append(LocalRegion(name, name_node, visible_from, self.region_ends[-1]))

    def _field(self, node, owner):
        info = self.annotations.info(node)
        info.is_field = True
        # a field of a field is owned by the inner field name
        if kind_of(owner) in ('Index', 'Invoke'):
            inner = owner.idx if kind_of(owner) == 'Index' else owner.func
            inner_info = self.annotations.get(inner)
            if inner_info is not None and inner_info.is_field:
                owner = inner
        info.previous = owner

    # ---- traversal ----

    def _visit(self, node):
        if node is None:
            return
        visitor = getattr(self, f'_visit_{kind_of(node)}', None)
        if visitor is not None:
            visitor(node)
        else:
            self._visit_children(node)

    def _visit_children(self, node):
        for child in iter_children(node):
            self._visit(child)

    def _visit_all(self, nodes):
        for node in nodes or []:
            self._visit(node)

    def _visit_Block(self, node):
        self._push(self._end_of(node))
        self._visit_all(node.body)
        self._pop()

    def _visit_Name(self, node):
        info = self.annotations.info(node)
        info.function_level = self.level
        definition = self._lookup(node.id)
        if definition is not None:
            info.binding = definition
            self.annotations.info(definition).is_used = True
        else:
            info.is_global = True
            self.facts.globals.setdefault(node.id, GlobalUsage()).used = True

    def _assign_name(self, node):
        info = self.annotations.info(node)
        info.function_level = self.level
        definition = self._lookup(node.id)
        if definition is not None:
            info.binding = definition
            self.annotations.info(definition).is_mutated = True
        else:
            info.is_global = True
            self.facts.globals.setdefault(node.id, GlobalUsage()).set = True

    def _visit_Index(self, node):
        self._visit(node.value)
        idx = node.idx
        if self.source_map.is_dot_index(node) and isinstance(idx, Name):
            self._field(idx, node.value)
        elif isinstance(idx, String):
            self._field(idx, node.value)
        else:
            self._visit(idx)

    def _visit_Invoke(self, node):
        self._visit(node.source)
        self._field(node.func, node.source)
        self._visit_all(node.args)

    def _visit_Table(self, node):
        for item in node.fields:
            key = item.key
            keyed_by_name = isinstance(key, Name) and not getattr(item, 'between_brackets', False)
            if key is not None and not keyed_by_name and not is_positional_field(item):
                self._visit(key)
            self._visit(item.value)

    def _visit_LocalAssign(self, node):
        self._visit_all(node.values)
        visible_from = self._end_of(node)
        for target in node.targets:
            if isinstance(target, Name):
                self._declare(target, visible_from)

    def _visit_Assign(self, node):
        self._visit_all(node.values)
        for target in node.targets:
            if isinstance(target, Name):
                self._assign_name(target)
            else:
                self._visit(target)

    def _visit_LocalFunction(self, node):
        self._declare(node.name, self._start_of(node))
        self._visit_function(node)

    def _visit_Function(self, node):
        if isinstance(node.name, Name):
            self._assign_name(node.name)
        else:
            self._visit(node.name)
        self._visit_function(node)

    def _visit_Method(self, node):
        self._visit(node.source)
        self._field(node.name, node.source)
        self._visit_function(node, implicit_self=True)

    def _visit_AnonymousFunction(self, node):
        self._visit_function(node)

    def _visit_function(self, node, implicit_self: bool = False):
        self.level += 1
        self._push(self._end_of(node))
        start = self._start_of(node)
        if implicit_self:
            self_node = Name('self')
            self.facts.implicit_self[id(node)] = self_node
            self._declare(self_node, start, is_parameter=True)
        for arg in node.args or []:
            if isinstance(arg, Name):
                self._declare(arg, start, is_parameter=True)
        self._visit(node.body)
        self._pop()
        self.level -= 1

    def _visit_Fornum(self, node):
        self._visit(node.start)
        self._visit(node.stop)
        self._visit(node.step)
        self._push(self._end_of(node))
        self._declare(node.target, self._start_of(node))
        self._visit(node.body)
        self._pop()

    def _visit_Forin(self, node):
        self._visit_all(node.iter if isinstance(node.iter, list) else [node.iter])
        self._push(self._end_of(node))
        for target in node.targets:
            self._declare(target, self._start_of(node))
        self._visit(node.body)
        self._pop()

    def _visit_Repeat(self, node):
        # the until expression sees the body's locals
        self._push(self._end_of(node))
        self._visit_all(node.body.body)
        self._visit(node.test)
        self._pop()

    def _visit_Goto(self, node):
        pass

    def _visit_Label(self, node):
        pass
