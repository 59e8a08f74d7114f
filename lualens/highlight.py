"""
Identifier classification for editor highlighting.

Each identifier token gets one highlight group name. Editors read one line per
token: ``kind<TAB>line<TAB>first column<TAB>last column``. The variable under
the cursor and every other occurrence of it get luaInspectSelectedVariable.
"""

import logging
from typing import Iterator, List, Optional, Tuple

from luaparser.astnodes import Name

from lualens.diagnostics import is_known_value, node_at_position
from lualens.errors import LuaSyntaxError

logger = logging.getLogger(__name__)

SELECTED = 'luaInspectSelectedVariable'

Highlight = Tuple[str, int, int, int]


def classify(inspection, node, selected_id: Optional[int] = None) -> Optional[str]:
    """Highlight group of one identifier node, None for anything else."""
    info = inspection.annotations.get(node)
    if info is None:
        return None
    if selected_id is not None and info.structural_id == selected_id:
        return SELECTED
    if isinstance(node, Name) and not info.is_field:
        if info.binding is None:
            return 'luaInspectGlobalDefined' if info.defined_global else 'luaInspectGlobalUndefined'
        definition = inspection.annotations.info(info.binding)
        if not definition.is_used:
            return 'luaInspectLocalUnused'
        if definition.function_level < info.function_level:
            return 'luaInspectUpValue'
        if definition.is_mutated:
            return 'luaInspectLocalMutated'
        if definition.is_parameter:
            return 'luaInspectParam'
        return 'luaInspectLocal'
    if info.is_field:
        return 'luaInspectFieldDefined' if is_known_value(inspection, node) else 'luaInspectFieldUndefined'
    return None


def highlight_tokens(inspection, line: int = 0, column: int = 0) -> Iterator[Highlight]:
    """(kind, line, first column, last column) for every single-line identifier."""
    selected_id = None
    if line:
        current = node_at_position(inspection, line, column)
        info = inspection.annotations.get(current)
        if info is not None:
            selected_id = info.structural_id
    source_map = inspection.source_map
    for index in sorted(source_map.token_nodes):
        node = source_map.token_nodes[index]
        kind = classify(inspection, node, selected_id)
        if kind is None:
            continue
        token = inspection.tokens[index]
        last_line, last_column = source_map.lines.line_col(token.stop - 1)
        if last_line == token.line:
            yield kind, token.line, token.column, last_column


def format_highlights(highlights) -> List[str]:
    return ['\t'.join(str(part) for part in highlight) for highlight in highlights]


def highlight_request(text: str, inspector) -> List[str]:
    """
    Answer an editor request: the cursor line, the cursor column and the
    buffer source, separated by newlines. A buffer that does not parse gets
    no highlights.
    """
    line_text, column_text, source = (text.split('\n', 2) + ['', ''])[:3]
    line = int(line_text) if line_text.strip().isdigit() else 0
    column = int(column_text) if column_text.strip().isdigit() else 0
    try:
        inspection = inspector.inspect_source(source, 'noname.lua')
    except LuaSyntaxError as e:
        logger.debug("highlight: %s", e)
        return []
    return format_highlights(highlight_tokens(inspection, line, column))
