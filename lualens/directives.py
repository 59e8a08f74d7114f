"""
Inline analysis directives carried in comments.

A comment starting with the directive marker (``--!`` or ``--[[! ... ]]``)
holds one or more statements separated by ';':

    --! pin("^count$", number)
    --[[! apply_value("^cfg", universal); pin("name", "default") ]]

Both statements give every identifier whose name matches the pattern (a
regular expression, searched) inside the smallest node enclosing the comment
the given value, and pin it so inference does not overwrite it. Values are
type names (number, string, boolean, universal), nil/true/false, number or
string literals, or error("message").
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from luaparser.astnodes import Name

from lualens.annotations import AnnotationTable
from lualens.errors import DirectiveError
from lualens.lexer import Token
from lualens.tree import SourceMap, walk
from lualens.values import BOOLEAN, NIL, NUMBER, STRING, UNIVERSAL, ErrorValue, str_to_number

logger = logging.getLogger(__name__)

COMMANDS = ('pin', 'apply_value')

NAMED_VALUES = {
    'number': NUMBER,
    'string': STRING,
    'boolean': BOOLEAN,
    'universal': UNIVERSAL,
    'nil': NIL,
    'true': True,
    'false': False,
}

_LEXEME = re.compile(r"""
    \s*(?:
        (?P<number>-?(?:0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?))
      | (?P<string>"(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')
      | (?P<name>[A-Za-z_]\w*)
      | (?P<punct>[(),;])
      | (?P<bad>\S)
    )""", re.VERBOSE)

_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '\\': '\\', '"': '"', "'": "'", '0': '\0'}


@dataclass
class Directive:
    command: str
    pattern: str
    value: Any


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r'\\(.)', lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def _lex(text: str) -> List[Tuple[str, str]]:
    lexemes = []
    pos = 0
    while pos < len(text):
        if not text[pos:].strip():
            break
        match = _LEXEME.match(text, pos)
        kind = match.lastgroup
        if kind == 'bad':
            raise DirectiveError(f"unexpected character {match.group(kind)!r}")
        lexemes.append((kind, match.group(kind)))
        pos = match.end()
    return lexemes


class _Parser:
    def __init__(self, text: str):
        self.lexemes = _lex(text)
        self.pos = 0

    def _next(self) -> Tuple[str, str]:
        if self.pos >= len(self.lexemes):
            raise DirectiveError("unexpected end of directive")
        lexeme = self.lexemes[self.pos]
        self.pos += 1
        return lexeme

    def _expect(self, text: str):
        kind, value = self._next()
        if value != text:
            raise DirectiveError(f"expected '{text}' but found '{value}'")

    def parse(self) -> List[Directive]:
        directives = []
        while self.pos < len(self.lexemes):
            if self.lexemes[self.pos] == ('punct', ';'):
                self.pos += 1
                continue
            directives.append(self._statement())
            if self.pos < len(self.lexemes):
                self._expect(';')
        return directives

    def _statement(self) -> Directive:
        kind, command = self._next()
        if kind != 'name' or command not in COMMANDS:
            raise DirectiveError(f"unknown directive '{command}'")
        self._expect('(')
        kind, pattern = self._next()
        if kind != 'string':
            raise DirectiveError(f"{command} expects a string pattern")
        self._expect(',')
        value = self._value()
        self._expect(')')
        return Directive(command, _unquote(pattern), value)

    def _value(self):
        kind, text = self._next()
        if kind == 'number':
            n = str_to_number(text)
            if n is None:
                raise DirectiveError(f"malformed number {text}")
            return n
        if kind == 'string':
            return _unquote(text)
        if kind == 'name' and text == 'error':
            self._expect('(')
            kind, message = self._next()
            if kind != 'string':
                raise DirectiveError("error expects a string message")
            self._expect(')')
            return ErrorValue(_unquote(message))
        if kind == 'name' and text in NAMED_VALUES:
            return NAMED_VALUES[text]
        raise DirectiveError(f"unknown value '{text}'")


def parse_directives(text: str) -> List[Directive]:
    """Parse the body of a directive comment."""
    return _Parser(text).parse()


class DirectiveEvaluator:
    """Applies the directives found in one file's comments."""

    def __init__(self, source_map: SourceMap, annotations: AnnotationTable, marker: str = '!',
                 report: Optional[Callable[..., None]] = None):
        self.source_map = source_map
        self.annotations = annotations
        self.marker = marker
        self.report = report

    def directive_comments(self) -> List[Token]:
        return [token for token in self.source_map.tokens
                if token.kind == 'comment' and token.comment_body.startswith(self.marker)]

    def evaluate(self) -> int:
        """Apply every directive; returns how many identifiers were pinned."""
        pinned = 0
        for token in self.directive_comments():
            body = token.comment_body[len(self.marker):]
            context = self.source_map.smallest_containing(token.start, token.stop)
            try:
                for directive in parse_directives(body):
                    pinned += self.apply(directive, context)
            except DirectiveError as e:
                message = f"invalid directive: {e}"
                logger.warning("line %d: %s", token.line, message)
                if self.report is not None:
                    self.report('warning', message, line=token.line, column=token.column, code='directive')
        return pinned

    def apply(self, directive: Directive, context) -> int:
        try:
            pattern = re.compile(directive.pattern)
        except re.error as e:
            raise DirectiveError(f"bad pattern {directive.pattern!r}: {e}") from e
        count = 0
        for node in walk(context):
            if not isinstance(node, Name):
                continue
            info = self.annotations.get(node)
            if info is None or info.is_field or not (info.binding is not None or info.is_global):
                continue
            if pattern.search(node.id):
                info.value = directive.value
                info.pinned = True
                count += 1
        return count
