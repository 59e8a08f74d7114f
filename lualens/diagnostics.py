"""
Read-only queries over an inspected file: warnings, node descriptions,
definition locations and completion names.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from luaparser.astnodes import Name

from lualens.interpreter import function_record
from lualens.models import Finding
from lualens.runtime import RUNTIME, STRING_LIBRARY
from lualens.tree import kind_of, string_value
from lualens.values import NIL, STRING, Builtin, LuaTable, describe_value, is_known

# longest call text quoted in an arity warning
MAX_CALL_TEXT = 60

_SIGNATURE_RE = re.compile(r'^[\w.:]+\s*\(')


@dataclass
class Location:
    path: str
    line: int
    column: Optional[int] = None

    def __str__(self):
        if self.column is None:
            return f"{self.path}:{self.line}"
        return f"{self.path}:{self.line}:{self.column}"


def _value_node(inspection, node):
    info = inspection.annotations.get(node)
    if info is not None and info.see_value is not None:
        return info.see_value
    return node


def is_known_value(inspection, node) -> bool:
    """True when the value shown for an identifier is known in some way."""
    annotations = inspection.annotations
    vnode = _value_node(inspection, node)
    for candidate in (node, vnode):
        info = annotations.get(candidate)
        if info is not None and info.defined_global:
            return True
    value = annotations.value(vnode)
    return is_known(value) and value is not NIL


def _call_of(inspection, node):
    """The call or invoke whose callee is node (through its value node)."""
    vnode = _value_node(inspection, node)
    parent = inspection.source_map.parent(vnode)
    if parent is None:
        return None
    kind = kind_of(parent)
    if kind == 'Call' and parent.func is vnode:
        return parent
    if kind == 'Invoke' and parent.func is vnode:
        return parent
    return None


def _shorten(text: str) -> str:
    text = ' '.join(text.split())
    if len(text) > MAX_CALL_TEXT:
        return text[:MAX_CALL_TEXT - 3] + '...'
    return text


def _source_line(lines: List[str], line: int) -> str:
    return lines[line - 1] if 0 < line <= len(lines) else ''


def list_warnings(inspection) -> List[Finding]:
    """Warnings of an inspected file ordered by position."""
    source_map = inspection.source_map
    annotations = inspection.annotations
    found: List[Tuple[int, int, str, str, str, Dict[str, Any]]] = []
    lines = inspection.source_lines

    def warn(node, code, message, severity='warning', **details):
        position = source_map.position(node)
        if position is None:
            return
        found.append((position[0], position[1], code, message, severity, details))

    seen_calls = set()
    for node in source_map.nodes:
        info = annotations.get(node)
        if info is None:
            continue
        if isinstance(node, Name):
            if info.masks is not None:
                masked_at = source_map.position(info.masks)
                where = f" on line {masked_at[0]}" if masked_at else ''
                warn(node, 'masking', f"local {node.id} masks another local{where}", name=node.id,
                     masked_line=masked_at[0] if masked_at else None)
            if info.binding is node and not info.is_used:
                warn(node, 'unused-local', f"unused local {node.id}", name=node.id)
        if info.is_field:
            key = node.id if isinstance(node, Name) else string_value(node)
            if not is_known_value(inspection, node):
                warn(node, 'unknown-field', f"unknown field {key}", name=key)
        elif isinstance(node, Name) and info.is_global and not info.defined_global:
            warn(node, 'unknown-global', f"unknown global {node.id}", name=node.id)

        call = _call_of(inspection, node) if (info.is_field or isinstance(node, Name)) else None
        if call is not None and id(call) not in seen_calls:
            note = annotations.info(call).note
            if note:
                seen_calls.add(id(call))
                call_text = _shorten(source_map.text(call))
                name = node.id if isinstance(node, Name) else string_value(node)
                warn(node, 'call-arity', f"{note} for {call_text}", name=name, call=call_text)

        if info.note and kind_of(node) not in ('Call', 'Invoke'):
            warn(node, 'value-conflict', info.note)

        if inspection.options.detect_dead_code and info.is_dead:
            parent = source_map.parent(node)
            parent_info = annotations.get(parent)
            if parent_info is None or not parent_info.is_dead:
                warn(node, 'dead-code', "unreachable code", severity='info')

    for message in inspection.messages:
        if message.level in ('warning', 'error'):
            found.append((message.line, message.column, message.code or 'module', message.text,
                          message.level, {}))

    found.sort(key=lambda item: (item[0], item[1]))
    return [
        Finding(pattern_name=code, severity=severity, line_num=line, column=column, message=message,
                details=details, source_line=_source_line(lines, line))
        for line, column, code, message, severity, details in found
    ]


def signature_of_value(value) -> Optional[str]:
    """Parameter list of an analysed function, or the help text of a builtin."""
    record = function_record(value)
    if record is not None:
        signature = record.signature
        if record.returns is not None:
            if not record.returns:
                signature += " no returns"
            else:
                signature += " returns " + ', '.join(describe_value(v) for v in record.returns)
        return signature
    if isinstance(value, Builtin):
        return value.signature
    return None


def definition_location(inspection, node) -> Optional[Location]:
    """Where the variable or value under node was defined."""
    info = inspection.annotations.get(node)
    if info is not None and info.binding is not None:
        position = inspection.source_map.position(info.binding)
        if position is not None:
            return Location(inspection.name, position[0], position[1])
    value = inspection.annotations.value(_value_node(inspection, node))
    record = function_record(value)
    if record is not None and record.position is not None:
        return Location(record.source, record.position[0], record.position[1])
    return None


def describe_node(inspection, node) -> str:
    """Multi-line description of an identifier: binding, value, signature."""
    if node is None:
        return '?'
    annotations = inspection.annotations
    source_map = inspection.source_map
    info = annotations.get(node)
    vnode = _value_node(inspection, node)
    words = []
    if info is not None and info.binding is not None:
        definition = annotations.info(info.binding)
        if not definition.is_used:
            words.append('unused')
        if definition.is_mutated:
            words.append('mutable')
        if definition.function_level < info.function_level:
            words.append('upvalue')
        elif definition.is_parameter:
            words.append('function parameter')
        else:
            words.append('local')
        if info.masks is not None:
            words.append('masking')
            position = source_map.position(info.masks)
            if position is not None:
                words.append(f"definition at line {position[0]}")
        if info.masked_by is not None:
            words.append('masked')
    elif info is not None and info.is_field:
        words.append('known field' if is_known_value(inspection, node) else 'unknown field')
    elif info is not None and info.is_global:
        words.append('known global' if is_known_value(inspection, node) else 'unknown global')
    else:
        words.append('?')

    value = annotations.value(vnode)
    lines = [' '.join(words), f"value: {describe_value(value)}"]
    signature = signature_of_value(value) if is_known(value) else None
    if signature:
        kind = 'signature' if _SIGNATURE_RE.match(signature) else 'description'
        lines.append(f"{kind}: {signature}")
    location = definition_location(inspection, node)
    if location is not None:
        lines.append(f"location defined: {location}")
    call = _call_of(inspection, node)
    if call is not None and annotations.info(call).note:
        lines.append(f"WARNING: {annotations.info(call).note}")
    return '\n'.join(lines)


def node_at_position(inspection, line: int, column: int):
    """The identifier or field node covering a 1-based position."""
    offset = inspection.source_map.lines.offset(line, column)
    for index, node in inspection.source_map.token_nodes.items():
        token = inspection.tokens[index]
        if token.start <= offset < token.stop and inspection.annotations.get(node) is not None:
            return node
    return None


def _resolve_id(inspection, name: str, offset: int):
    definition = inspection.scope.variables_in_scope(offset).get(name)
    if definition is not None:
        return inspection.annotations.value(definition)
    if name in inspection.value_globals:
        return inspection.value_globals[name]
    return RUNTIME.get(name)


def names_in_scope(inspection, prefix_chain: Sequence[str] = (), position: Optional[Tuple[int, int]] = None
                   ) -> List[str]:
    """
    Completion candidates at a position.

    With an empty prefix chain: visible locals, globals assigned in the file
    and the runtime globals. With a chain like ('string',) or ('t', 'sub'):
    the string keys of the table the chain resolves to.
    """
    if position is None:
        offset = len(inspection.source)
    else:
        offset = inspection.source_map.lines.offset(*position)
    names = set()
    if not prefix_chain:
        names.update(inspection.scope.variables_in_scope(offset))
        names.update(inspection.value_globals)
        names.update(key for key in RUNTIME.keys() if isinstance(key, str))
        return sorted(names)
    value = _resolve_id(inspection, prefix_chain[0], offset)
    for key in prefix_chain[1:]:
        if isinstance(value, str) or value is STRING:
            value = STRING_LIBRARY
        if not isinstance(value, LuaTable):
            return []
        value = value.get(key)
    if isinstance(value, str) or value is STRING:
        value = STRING_LIBRARY
    if isinstance(value, LuaTable):
        names.update(key for key in value.keys() if isinstance(key, str))
    return sorted(names)
