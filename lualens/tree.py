"""
Parsing and source mapping on top of https://pypi.org/project/luaparser/

luaparser builds the tree. The SourceMap walks it in source order next to the
token list from lualens.lexer and aligns leaves and statement keywords with
tokens, which yields:
  - a character span for every node
  - the node -> parent index (luaparser nodes carry no parent link)
  - the statement owning each structural keyword token
  - a post-order node list used by the interpreter

luaparser nodes compare structurally and are unhashable, so every index here
is keyed by id(node).
"""

import io
import re
import sys
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from luaparser import ast
from luaparser.astnodes import Chunk, Node, Number

from lualens.errors import LuaSyntaxError
from lualens.lexer import LITERAL_KEYWORDS, OPERATOR_KEYWORDS, LineIndex, Token

Span = Tuple[int, int]

# attributes holding child nodes, in source order
CHILD_FIELDS = {
    'Chunk': ('body',),
    'Block': ('body',),
    'LocalAssign': ('targets', 'values'),
    'Assign': ('targets', 'values'),
    'While': ('test', 'body'),
    'Do': ('body',),
    'Repeat': ('body', 'test'),
    'If': ('test', 'body', 'orelse'),
    'ElseIf': ('test', 'body', 'orelse'),
    'Fornum': ('target', 'start', 'stop', 'step', 'body'),
    'Forin': ('targets', 'iter', 'body'),
    'Function': ('name', 'args', 'body'),
    'LocalFunction': ('name', 'args', 'body'),
    'Method': ('source', 'name', 'args', 'body'),
    'AnonymousFunction': ('args', 'body'),
    'Call': ('func', 'args'),
    'Invoke': ('source', 'func', 'args'),
    'Index': ('value', 'idx'),
    'Return': ('values',),
    'Table': ('fields',),
    'Field': ('key', 'value'),
    'Name': (),
    'String': (),
    'Number': (),
    'Nil': (),
    'TrueExpr': (),
    'FalseExpr': (),
    'Varargs': (),
    'Break': (),
    'Goto': (),
    'Label': (),
    'SemiColon': (),
    'Comment': (),
}

FUNCTION_KINDS = frozenset({'Function', 'LocalFunction', 'Method', 'AnonymousFunction'})
LOOP_KINDS = frozenset({'While', 'Repeat', 'Fornum', 'Forin'})

_SKIPPED_ATTRIBUTES = frozenset({'comments', 'first_token', 'last_token', 'wrapped'})
_TOKEN_RE = re.compile(r"\[@\d+,(\d+):(\d+)='")


def kind_of(node) -> str:
    return type(node).__name__


def _child_fields(node) -> Tuple[str, ...]:
    fields = CHILD_FIELDS.get(kind_of(node))
    if fields is not None:
        return fields
    if hasattr(node, 'left') and hasattr(node, 'right'):
        return ('left', 'right')
    if hasattr(node, 'operand'):
        return ('operand',)
    return tuple(key for key in vars(node)
                 if not key.startswith('_') and key not in _SKIPPED_ATTRIBUTES)


def iter_children(node) -> Iterator[Node]:
    """Direct child nodes in source order."""
    for name in _child_fields(node):
        value = getattr(node, name, None)
        if isinstance(value, Node):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, Node):
                    yield item


def walk(node) -> Iterator[Node]:
    """Pre-order traversal of a subtree."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(list(iter_children(current))))


def is_positional_field(field) -> bool:
    """True for list items of a table constructor, whose key is implicit."""
    key = field.key
    if key is None:
        return True
    if getattr(field, 'between_brackets', False):
        return False
    return isinstance(key, Number)


def string_value(node) -> str:
    value = node.s
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return value


def _error_position(message: str) -> Tuple[int, int, Optional[int]]:
    positions = [(int(a), int(b)) for a, b in re.findall(r'\((\d+),\s*(\d+)\)', message)]
    if not positions:
        positions = [(int(a), int(b)) for a, b in re.findall(r'line (\d+):(\d+)', message)]
    if not positions:
        positions = [(int(a), 0) for a in re.findall(r'line (\d+)', message)]
    if not positions:
        return 0, 0, None
    line, column = positions[-1]
    end_line = positions[0][0] if len(positions) > 1 and positions[0][0] != line else None
    return line, column, end_line


def parse_source(source: str) -> Chunk:
    """Parse Lua source, raising LuaSyntaxError on failure."""
    # silence ANTLR's stderr output
    old_stderr = sys.stderr
    sys.stderr = io.StringIO()
    try:
        tree = ast.parse(source)
    except Exception as e:
        message = str(e) or type(e).__name__
        line, column, end_line = _error_position(message)
        raise LuaSyntaxError(message, line, column, end_line) from e
    finally:
        sys.stderr = old_stderr
    if tree is None:
        raise LuaSyntaxError("parser returned no tree")
    return tree


def _luaparser_span(node) -> Optional[Span]:
    """Span from luaparser's own token references, when present."""
    first = _TOKEN_RE.match(str(getattr(node, 'first_token', None)))
    last = _TOKEN_RE.match(str(getattr(node, 'last_token', None)))
    if not first:
        return None
    stop = int(last.group(2)) + 1 if last else int(first.group(2)) + 1
    return int(first.group(1)), max(stop, int(first.group(1)))


class SourceMap:
    """Spans, parents and keyword ownership for one parsed file."""

    def __init__(self, chunk: Chunk, tokens: List[Token], source: str):
        self.chunk = chunk
        self.tokens = tokens
        self.source = source
        self.lines = LineIndex(source)
        self.spans: Dict[int, Span] = {}
        self.parents: Dict[int, Optional[Node]] = {}
        self.nodes: List[Node] = []
        self.postorder: List[Node] = []
        self.keyword_owner: Dict[int, Node] = {}
        self.owned_keywords: Dict[int, List[int]] = {}
        self.token_nodes: Dict[int, Node] = {}
        self._own: Dict[int, List[int]] = {}
        self._synthetic: Set[int] = set()
        self._dot_indexes: Set[int] = set()
        self._pos = 0

        self._visit(chunk, None)
        self.spans[id(chunk)] = (0, len(source))

    # ---- queries ----

    def span(self, node) -> Optional[Span]:
        return self.spans.get(id(node))

    def parent(self, node) -> Optional[Node]:
        return self.parents.get(id(node))

    def ancestors(self, node) -> Iterator[Node]:
        current = self.parent(node)
        while current is not None:
            yield current
            current = self.parent(current)

    def position(self, node) -> Optional[Tuple[int, int]]:
        """1-based (line, column) of the node's first character."""
        span = self.span(node)
        if span is None:
            return None
        return self.lines.line_col(span[0])

    def end_position(self, node) -> Optional[Tuple[int, int]]:
        """1-based (line, column) of the node's last character."""
        span = self.span(node)
        if span is None:
            return None
        return self.lines.line_col(max(span[1] - 1, span[0]))

    def text(self, node) -> str:
        span = self.span(node)
        return self.source[span[0]:span[1]] if span else ''

    def is_synthetic(self, node) -> bool:
        return id(node) in self._synthetic

    def is_dot_index(self, node) -> bool:
        """True for ``a.b`` as opposed to ``a[b]``."""
        if id(node) in self._dot_indexes:
            return True
        if id(node) in self._own or self.span(node) is not None:
            return False
        notation = getattr(node, 'notation', None)
        return notation is not None and str(getattr(notation, 'name', notation)).upper().endswith('DOT')

    def keywords_of(self, node) -> List[int]:
        return self.owned_keywords.get(id(node), [])

    def smallest_containing(self, start: int, stop: int) -> Node:
        """Smallest node whose span covers [start, stop); deepest on ties."""
        best, best_size = self.chunk, None
        for node in self.nodes:
            span = self.spans.get(id(node))
            if span is None or span[0] > start or span[1] < stop:
                continue
            size = span[1] - span[0]
            if best_size is None or size <= best_size:
                best, best_size = node, size
        return best

    # ---- alignment ----

    def _visit(self, node, parent):
        self.parents[id(node)] = parent
        self.nodes.append(node)
        if id(node) in self._synthetic:
            for child in iter_children(node):
                self._synthetic.add(id(child))
                self._visit(child, node)
        else:
            handler = getattr(self, f'_align_{kind_of(node)}', None)
            if handler is not None:
                handler(node)
            else:
                self._visit_children(node)
        self.postorder.append(node)
        self._finish(node)

    def _visit_children(self, node):
        for child in iter_children(node):
            self._visit(child, node)

    def _visit_field(self, node, name):
        value = getattr(node, name, None)
        if isinstance(value, Node):
            self._visit(value, node)
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, Node):
                    self._visit(item, node)

    def _finish(self, node):
        own = self._own.get(id(node))
        lo, hi = (own[0], own[1]) if own else (None, None)
        for child in iter_children(node):
            span = self.spans.get(id(child))
            if span is None:
                continue
            lo = span[0] if lo is None else min(lo, span[0])
            hi = span[1] if hi is None else max(hi, span[1])
        if lo is None and id(node) not in self._synthetic:
            fallback = _luaparser_span(node)
            if fallback is not None:
                lo, hi = fallback
        if lo is not None:
            self.spans[id(node)] = (lo, hi)

    def _claim(self, node, token: Token):
        own = self._own.get(id(node))
        if own is None:
            self._own[id(node)] = [token.start, token.stop]
        else:
            own[0] = min(own[0], token.start)
            own[1] = max(own[1], token.stop)

    def _skip_comments(self, i: int) -> int:
        while i < len(self.tokens) and self.tokens[i].kind == 'comment':
            i += 1
        return i

    def _peek(self) -> Optional[Token]:
        i = self._skip_comments(self._pos)
        return self.tokens[i] if i < len(self.tokens) else None

    def _take_keyword(self, node, word: str) -> Optional[Token]:
        i = self._pos
        while i < len(self.tokens):
            token = self.tokens[i]
            if token.kind == 'keyword' and token.text == word:
                self._pos = i + 1
                self._claim(node, token)
                self.keyword_owner[i] = node
                self.owned_keywords.setdefault(id(node), []).append(i)
                return token
            if token.kind in ('comment', 'op') or token.text in OPERATOR_KEYWORDS:
                i += 1
                continue
            return None
        return None

    def _take_op(self, node, text: str) -> Optional[Token]:
        i = self._pos
        while i < len(self.tokens):
            token = self.tokens[i]
            if token.kind == 'op' and token.text == text:
                self._pos = i + 1
                self._claim(node, token)
                return token
            if token.kind in ('comment', 'op'):
                i += 1
                continue
            return None
        return None

    def _take_leaf(self, node, matches: Callable[[Token], bool], lookahead: int = 0) -> Optional[Token]:
        i = self._pos
        skipped = 0
        while i < len(self.tokens):
            token = self.tokens[i]
            if token.kind in ('comment', 'op') or (token.kind == 'keyword' and token.text not in LITERAL_KEYWORDS):
                i += 1
                continue
            if matches(token):
                self._pos = i + 1
                self._claim(node, token)
                self.token_nodes[i] = node
                return token
            skipped += 1
            if skipped > lookahead:
                return None
            i += 1
        return None

    def _take_open_paren(self, node) -> bool:
        i = self._skip_comments(self._pos)
        while i < len(self.tokens) and self.tokens[i].text == ')':
            i = self._skip_comments(i + 1)
        if i < len(self.tokens) and self.tokens[i].kind == 'op' and self.tokens[i].text == '(':
            self._pos = i + 1
            self._claim(node, self.tokens[i])
            return True
        return False

    # leaves

    def _align_Name(self, node):
        self._take_leaf(node, lambda t: t.kind == 'name' and t.text == node.id, lookahead=3)

    def _align_String(self, node):
        self._take_leaf(node, lambda t: t.kind == 'string')

    def _align_Number(self, node):
        self._take_leaf(node, lambda t: t.kind == 'number')

    def _align_Nil(self, node):
        self._take_leaf(node, lambda t: t.text == 'nil')

    def _align_TrueExpr(self, node):
        self._take_leaf(node, lambda t: t.text == 'true')

    def _align_FalseExpr(self, node):
        self._take_leaf(node, lambda t: t.text == 'false')

    def _align_Varargs(self, node):
        self._take_op(node, '...')

    # expressions

    def _align_Index(self, node):
        self._visit(node.value, node)
        i = self._skip_comments(self._pos)
        while i < len(self.tokens) and self.tokens[i].text == ')':
            i = self._skip_comments(i + 1)
        bracket = False
        if i < len(self.tokens) and self.tokens[i].kind == 'op':
            if self.tokens[i].text == '.':
                self._dot_indexes.add(id(node))
            bracket = self.tokens[i].text == '['
        self._visit(node.idx, node)
        if bracket:
            self._take_op(node, ']')

    def _align_Call(self, node):
        self._visit(node.func, node)
        opened = self._take_open_paren(node)
        self._visit_field(node, 'args')
        if opened:
            self._take_op(node, ')')

    def _align_Invoke(self, node):
        self._visit(node.source, node)
        self._visit(node.func, node)
        opened = self._take_open_paren(node)
        self._visit_field(node, 'args')
        if opened:
            self._take_op(node, ')')

    def _align_Table(self, node):
        self._take_op(node, '{')
        for field in node.fields:
            if is_positional_field(field) and field.key is not None:
                self._synthetic.add(id(field.key))
            self._visit(field, node)
        self._take_op(node, '}')

    def _align_UMinusOp(self, node):
        self._take_op(node, '-')
        self._visit_children(node)

    def _align_ULengthOP(self, node):
        self._take_op(node, '#')
        self._visit_children(node)

    def _align_UBNotOp(self, node):
        self._take_op(node, '~')
        self._visit_children(node)

    def _align_ULNotOp(self, node):
        self._take_keyword(node, 'not')
        self._visit_children(node)

    def _align_AnonymousFunction(self, node):
        self._take_keyword(node, 'function')
        self._visit_field(node, 'args')
        self._visit_field(node, 'body')
        self._take_keyword(node, 'end')

    # statements

    def _align_LocalAssign(self, node):
        self._take_keyword(node, 'local')
        self._visit_field(node, 'targets')
        self._visit_field(node, 'values')

    def _align_LocalFunction(self, node):
        self._take_keyword(node, 'local')
        self._take_keyword(node, 'function')
        self._visit_field(node, 'name')
        self._visit_field(node, 'args')
        self._visit_field(node, 'body')
        self._take_keyword(node, 'end')

    def _align_Function(self, node):
        self._take_keyword(node, 'function')
        self._visit_field(node, 'name')
        self._visit_field(node, 'args')
        self._visit_field(node, 'body')
        self._take_keyword(node, 'end')

    def _align_Method(self, node):
        self._take_keyword(node, 'function')
        self._visit_field(node, 'source')
        self._visit_field(node, 'name')
        self._visit_field(node, 'args')
        self._visit_field(node, 'body')
        self._take_keyword(node, 'end')

    def _align_Return(self, node):
        self._take_keyword(node, 'return')
        self._visit_field(node, 'values')

    def _align_Break(self, node):
        self._take_keyword(node, 'break')

    def _align_Goto(self, node):
        self._take_keyword(node, 'goto')
        self._take_leaf(node, lambda t: t.kind == 'name')

    def _align_Label(self, node):
        self._take_op(node, '::')
        self._take_leaf(node, lambda t: t.kind == 'name')
        self._take_op(node, '::')

    def _align_Do(self, node):
        self._take_keyword(node, 'do')
        self._visit_field(node, 'body')
        self._take_keyword(node, 'end')

    def _align_While(self, node):
        self._take_keyword(node, 'while')
        self._visit_field(node, 'test')
        self._take_keyword(node, 'do')
        self._visit_field(node, 'body')
        self._take_keyword(node, 'end')

    def _align_Repeat(self, node):
        self._take_keyword(node, 'repeat')
        self._visit_field(node, 'body')
        self._take_keyword(node, 'until')
        self._visit_field(node, 'test')

    def _align_If(self, node):
        self._take_keyword(node, 'if')
        self._visit_field(node, 'test')
        self._take_keyword(node, 'then')
        self._visit_field(node, 'body')
        self._align_orelse(node)
        self._take_keyword(node, 'end')

    def _align_ElseIf(self, node):
        self._take_keyword(node, 'elseif')
        self._visit_field(node, 'test')
        self._take_keyword(node, 'then')
        self._visit_field(node, 'body')
        self._align_orelse(node)

    def _align_orelse(self, node):
        orelse = node.orelse
        if orelse is None:
            return
        if kind_of(orelse) != 'ElseIf':
            self._take_keyword(node, 'else')
        self._visit(orelse, node)

    def _align_Fornum(self, node):
        self._take_keyword(node, 'for')
        self._visit_field(node, 'target')
        self._visit_field(node, 'start')
        self._visit_field(node, 'stop')
        step = node.step
        if step is not None:
            following = self._peek()
            if following is None or following.text != ',':
                self._synthetic.add(id(step))
            self._visit(step, node)
        self._take_keyword(node, 'do')
        self._visit_field(node, 'body')
        self._take_keyword(node, 'end')

    def _align_Forin(self, node):
        self._take_keyword(node, 'for')
        self._visit_field(node, 'targets')
        self._take_keyword(node, 'in')
        self._visit_field(node, 'iter')
        self._take_keyword(node, 'do')
        self._visit_field(node, 'body')
        self._take_keyword(node, 'end')
