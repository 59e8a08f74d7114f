"""
Grouping of related keywords (if/elseif/else/end, while/do/break/end, ...).

Each structural keyword token is owned by the statement that consumed it.
Keywords belong to one group when they delimit the same construct: an if
chain, a loop together with its breaks, or a function together with its
returns.
"""

from typing import Dict, Iterator, List, Optional

from lualens.tree import FUNCTION_KINDS, LOOP_KINDS, SourceMap, iter_children, kind_of


class KeywordGrouper:
    def __init__(self, source_map: SourceMap):
        self.source_map = source_map

    def _enclosing(self, node, kinds, stop_kinds=frozenset()) -> Optional[object]:
        for ancestor in self.source_map.ancestors(node):
            kind = kind_of(ancestor)
            if kind in kinds:
                return ancestor
            if kind in stop_kinds:
                return None
        return None

    def group_root(self, node):
        """The statement whose keywords a keyword of node belongs with."""
        kind = kind_of(node)
        if kind == 'Return':
            return self._enclosing(node, FUNCTION_KINDS) or node
        if kind == 'Break':
            return self._enclosing(node, LOOP_KINDS, FUNCTION_KINDS) or node
        if kind == 'ElseIf':
            current = node
            while kind_of(current) == 'ElseIf':
                parent = self.source_map.parent(current)
                if parent is None:
                    break
                current = parent
            return current
        return node

    def _nested(self, node, target: str, barrier) -> Iterator[object]:
        """Descendants of kind target, not looking inside barrier kinds."""
        stack = list(iter_children(node))
        while stack:
            current = stack.pop()
            kind = kind_of(current)
            if kind == target:
                yield current
            elif kind in barrier:
                continue
            stack.extend(iter_children(current))

    def members(self, root) -> List[object]:
        kind = kind_of(root)
        nodes = [root]
        if kind == 'If':
            orelse = root.orelse
            while orelse is not None and kind_of(orelse) == 'ElseIf':
                nodes.append(orelse)
                orelse = orelse.orelse
        elif kind in FUNCTION_KINDS:
            nodes.extend(self._nested(root.body, 'Return', FUNCTION_KINDS))
        elif kind in LOOP_KINDS:
            nodes.extend(self._nested(root.body, 'Break', FUNCTION_KINDS | LOOP_KINDS))
        return nodes

    def related_keywords(self, token_index: int) -> List[int]:
        """Indexes of the keyword tokens grouped with the given one, sorted."""
        owner = self.source_map.keyword_owner.get(token_index)
        if owner is None:
            return []
        indexes = []
        for node in self.members(self.group_root(owner)):
            indexes.extend(self.source_map.keywords_of(node))
        return sorted(indexes)

    def mark_related_keywords(self) -> Dict[int, int]:
        """Token index -> group id for every structural keyword."""
        groups: Dict[int, int] = {}
        next_id = 0
        for token_index in sorted(self.source_map.keyword_owner):
            if token_index in groups:
                continue
            next_id += 1
            for member in self.related_keywords(token_index):
                groups[member] = next_id
        return groups
