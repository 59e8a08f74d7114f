"""
Structural identifiers for names and fields.

Two identifier nodes get the same structural id when they refer to the same
variable: a local and all its uses share the id of the definition, globals
share an id per name, and fields share an id per (owner id, key). Fields also
get a resolved dotted name (``string.format``) when their owner has one.
"""

import logging
from typing import Dict, Optional, Tuple

from luaparser.astnodes import Name

from lualens.annotations import AnnotationTable, NodeInfo
from lualens.tree import SourceMap, string_value

logger = logging.getLogger(__name__)


def escape_key(key: str) -> str:
    """Escape a field key for joining with '.'."""
    return key.replace('%', '%%').replace('.', '%d')


def unescape_key(key: str) -> str:
    return key.replace('%d', '.').replace('%%', '%')


def field_key(node) -> Optional[str]:
    if isinstance(node, Name):
        return node.id
    if hasattr(node, 's'):
        return string_value(node)
    return None


class IdentifierResolver:
    """Assigns structural ids and resolved names, in source order."""

    def __init__(self, source_map: SourceMap, annotations: AnnotationTable):
        self.source_map = source_map
        self.annotations = annotations
        self._next_id = 0
        self._by_key: Dict[Tuple, int] = {}

    def _fresh(self) -> int:
        self._next_id += 1
        return self._next_id

    def _id_for(self, key: Tuple) -> int:
        ident = self._by_key.get(key)
        if ident is None:
            ident = self._fresh()
            self._by_key[key] = ident
        return ident

    def _local_id(self, definition) -> int:
        info = self.annotations.info(definition)
        if info.structural_id is None:
            info.structural_id = self._fresh()
        return info.structural_id

    def _owner_id(self, owner) -> Tuple[int, Optional[str]]:
        info = self.annotations.get(owner)
        if info is None:
            return self._fresh(), None
        if info.structural_id is None:
            self._resolve(owner, info)
        if info.structural_id is None:
            info.structural_id = self._fresh()
        return info.structural_id, info.resolved_name

    def _resolve(self, node, info: NodeInfo):
        if info.structural_id is not None:
            return
        if info.binding is not None:
            info.structural_id = self._local_id(info.binding)
        elif info.is_global and isinstance(node, Name):
            info.structural_id = self._id_for(('global', node.id))
            info.resolved_name = escape_key(node.id)
        elif info.is_field:
            key = field_key(node)
            if key is None:
                return
            owner_id, owner_name = self._owner_id(info.previous)
            info.structural_id = self._id_for(('field', owner_id, escape_key(key)))
            if owner_name is not None:
                info.resolved_name = f"{owner_name}.{escape_key(key)}"

    def assign_identifiers(self) -> int:
        """Label every identifier node; returns the number of ids used."""
        for node in self.source_map.nodes:
            info = self.annotations.get(node)
            if info is not None:
                self._resolve(node, info)
        logger.debug("resolver: %d structural ids", self._next_id)
        return self._next_id


def assign_identifiers(source_map: SourceMap, annotations: AnnotationTable) -> int:
    return IdentifierResolver(source_map, annotations).assign_identifiers()
