"""
Regex tokenizer for Lua source.

luaparser does not expose a flat token stream with comments, so positions,
keyword grouping and comment directives all work from this list instead.
Offsets are 0-based character offsets into the source; lines and columns are
1-based.
"""

import bisect
import re
from dataclasses import dataclass
from typing import List, Tuple

KEYWORDS = frozenset({
    'and', 'break', 'do', 'else', 'elseif', 'end', 'false', 'for', 'function',
    'goto', 'if', 'in', 'local', 'nil', 'not', 'or', 'repeat', 'return', 'then',
    'true', 'until', 'while',
})

# keywords that stand for a value rather than structure
LITERAL_KEYWORDS = frozenset({'nil', 'true', 'false'})
OPERATOR_KEYWORDS = frozenset({'and', 'or', 'not'})

_WHITESPACE = re.compile(r'\s+')
_LONG_OPEN = re.compile(r'\[(=*)\[')
_NAME = re.compile(r'[A-Za-z_][A-Za-z_0-9]*')
_NUMBER = re.compile(
    r'0[xX](?:[0-9a-fA-F]*\.?[0-9a-fA-F]*)(?:[pP][-+]?\d+)?'
    r'|(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?')
_SHORT_STRING = {
    '"': re.compile(r'"(?:\\z\s*|\\\r?\n|\\.|[^"\\\n])*("?)', re.DOTALL),
    "'": re.compile(r"'(?:\\z\s*|\\\r?\n|\\.|[^'\\\n])*('?)", re.DOTALL),
}
_OPERATOR = re.compile(r'\.\.\.|\.\.|==|~=|<=|>=|<<|>>|//|::|[-+*/%^#&~|<>=(){}\[\];:,.]')


@dataclass
class Token:
    kind: str  # keyword, name, number, string, op, comment
    text: str
    start: int
    stop: int
    line: int
    column: int
    index: int = 0

    @property
    def comment_body(self) -> str:
        """Comment text without the leading dashes and long brackets."""
        if self.kind != 'comment':
            return ''
        body = self.text[2:]
        match = _LONG_OPEN.match(body)
        if match:
            closing = ']' + match.group(1) + ']'
            body = body[match.end():]
            if body.endswith(closing):
                body = body[:-len(closing)]
        return body

    def __str__(self):
        return f"{self.kind}:{self.text!r}@{self.line}:{self.column}"


class LineIndex:
    """Maps character offsets to (line, column) and back."""

    def __init__(self, source: str):
        self.starts = [0]
        for match in re.finditer('\n', source):
            self.starts.append(match.end())
        self.length = len(source)

    def line_col(self, offset: int) -> Tuple[int, int]:
        line = bisect.bisect_right(self.starts, offset)
        return line, offset - self.starts[line - 1] + 1

    def offset(self, line: int, column: int) -> int:
        line = max(1, min(line, len(self.starts)))
        return min(self.starts[line - 1] + max(column, 1) - 1, self.length)


def remove_shebang(source: str) -> str:
    """Turn a leading '#!' line into a comment of the same length."""
    if source.startswith('#'):
        return '--' + source[2:] if len(source) > 1 else '-'
    return source


def _long_bracket_end(source: str, pos: int, level: str) -> int:
    closing = ']' + level + ']'
    end = source.find(closing, pos)
    return len(source) if end < 0 else end + len(closing)


def tokenize(source: str) -> List[Token]:
    """Split source into tokens. Never raises; unknown characters become ops."""
    tokens: List[Token] = []
    lines = LineIndex(source)
    pos = 0
    length = len(source)

    def emit(kind, start, stop):
        line, column = lines.line_col(start)
        tokens.append(Token(kind, source[start:stop], start, stop, line, column, len(tokens)))

    while pos < length:
        match = _WHITESPACE.match(source, pos)
        if match:
            pos = match.end()
            continue
        ch = source[pos]

        if source.startswith('--', pos):
            long_open = _LONG_OPEN.match(source, pos + 2)
            if long_open:
                stop = _long_bracket_end(source, long_open.end(), long_open.group(1))
            else:
                stop = source.find('\n', pos)
                stop = length if stop < 0 else stop
            emit('comment', pos, stop)
            pos = stop
            continue

        if ch == '[':
            long_open = _LONG_OPEN.match(source, pos)
            if long_open:
                stop = _long_bracket_end(source, long_open.end(), long_open.group(1))
                emit('string', pos, stop)
                pos = stop
                continue

        if ch in _SHORT_STRING:
            match = _SHORT_STRING[ch].match(source, pos)
            emit('string', pos, match.end())
            pos = match.end()
            continue

        if ch.isdigit() or (ch == '.' and pos + 1 < length and source[pos + 1].isdigit()):
            match = _NUMBER.match(source, pos)
            emit('number', pos, match.end())
            pos = match.end()
            continue

        match = _NAME.match(source, pos)
        if match:
            kind = 'keyword' if match.group() in KEYWORDS else 'name'
            emit(kind, pos, match.end())
            pos = match.end()
            continue

        match = _OPERATOR.match(source, pos)
        stop = match.end() if match else pos + 1
        emit('op', pos, stop)
        pos = stop

    return tokens
