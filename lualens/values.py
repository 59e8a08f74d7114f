"""
Abstract values attached to expression nodes.

A value is one of:
  - a TypeTag: only the coarse type is known (NUMBER, STRING, BOOLEAN), or
    nothing is known (UNIVERSAL), or there is no value at all (NONE)
  - an ErrorValue: evaluating the expression would raise, carries the message
  - a concrete scalar: int, float, str, bool or NIL
  - a LuaTable, LuaFunction or Builtin

None means "never assigned" and is treated like UNIVERSAL by every predicate.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from lualens.errors import InferenceError


@dataclass(frozen=True)
class TypeTag:
    name: str

    def __repr__(self):
        return self.name

    __str__ = __repr__


NUMBER = TypeTag('number')
STRING = TypeTag('string')
BOOLEAN = TypeTag('boolean')
UNIVERSAL = TypeTag('universal')
NONE = TypeTag('none')

COARSE_TAGS = {'number': NUMBER, 'string': STRING, 'boolean': BOOLEAN}


@dataclass(frozen=True)
class ErrorValue:
    message: str

    def __str__(self):
        return f"error: {self.message}"


class _Nil:
    """Lua nil. A singleton, falsy."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return 'nil'

    def __bool__(self):
        return False

    def __reduce__(self):
        return (_Nil, ())


NIL = _Nil()


class LuaTable:
    """A Lua table: ordered entries keyed with Lua key semantics.

    ``1`` and ``1.0`` are the same key, ``true`` and ``1`` are not. Tables,
    functions and builtins are keys by identity. Read-only tables model the
    host runtime and the exports of required modules, and silently refuse
    writes.
    """

    def __init__(self, entries: Optional[Dict[Any, Any]] = None, name: Optional[str] = None,
                 readonly: bool = False):
        self._entries: Dict[Tuple[str, Any], Tuple[Any, Any]] = {}
        self.name = name
        self.readonly = False
        for key, value in (entries or {}).items():
            self.rawset(key, value)
        self.readonly = readonly

    @staticmethod
    def _slot(key) -> Tuple[str, Any]:
        if isinstance(key, bool):
            return ('boolean', key)
        if isinstance(key, float) and key.is_integer():
            return ('number', int(key))
        if isinstance(key, (int, float)):
            return ('number', key)
        if isinstance(key, str):
            return ('string', key)
        return ('object', id(key))

    def get(self, key):
        if key is NIL or key is None:
            return NIL
        entry = self._entries.get(self._slot(key))
        return NIL if entry is None else entry[1]

    def rawset(self, key, value):
        if key is NIL or key is None:
            raise InferenceError("table index is nil")
        if isinstance(key, float) and math.isnan(key):
            raise InferenceError("table index is NaN")
        if self.readonly:
            return
        slot = self._slot(key)
        if value is NIL:
            self._entries.pop(slot, None)
        else:
            self._entries[slot] = (key, value)

    def __contains__(self, key):
        return self.get(key) is not NIL

    def __len__(self):
        return len(self._entries)

    def keys(self) -> Iterator[Any]:
        return (key for key, _ in self._entries.values())

    def items(self) -> Iterator[Tuple[Any, Any]]:
        return iter(list(self._entries.values()))

    def border(self) -> int:
        """Length operator: the first n with t[n] ~= nil and t[n+1] == nil."""
        n = 0
        while ('number', n + 1) in self._entries:
            n += 1
        return n

    def __repr__(self):
        label = self.name or hex(id(self))
        return f"<LuaTable {label} ({len(self)} entries)>"


@dataclass(eq=False)
class LuaFunction:
    """A function defined in analysed source. Details live in a DebugTable."""
    ident: int
    name: Optional[str] = None
    debug: Any = field(default=None, repr=False, compare=False)

    def record(self):
        if self.debug is None:
            return None
        return self.debug.record(self)


@dataclass(eq=False)
class Builtin:
    """A host runtime function.

    ``safe`` builtins have no side effects and may be evaluated on concrete
    arguments. ``returns`` is the value assumed when they cannot be.
    """
    name: str
    impl: Optional[Callable] = field(default=None, repr=False)
    safe: bool = False
    returns: Any = UNIVERSAL
    nargs: Optional[Tuple[int, Optional[int]]] = None
    signature: Optional[str] = None


def is_unknown(value) -> bool:
    return value is None or isinstance(value, (TypeTag, ErrorValue))


def is_known(value) -> bool:
    return not is_unknown(value)


def lua_type(value) -> Optional[str]:
    """Lua type name of a value, the coarse name of a type tag, or None."""
    if value is NIL:
        return 'nil'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, LuaTable):
        return 'table'
    if isinstance(value, (LuaFunction, Builtin)):
        return 'function'
    if isinstance(value, TypeTag) and value.name in COARSE_TAGS:
        return value.name
    return None


def boolean_cast(value) -> Optional[bool]:
    """Lua truthiness, or None when it cannot be decided."""
    if value is NIL or value is False:
        return False
    if value is NUMBER or value is STRING:
        return True
    if is_unknown(value):
        return None
    return True


def lua_equal(a, b) -> bool:
    """Raw equality of two concrete values."""
    if isinstance(a, bool) or isinstance(b, bool):
        return a is b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return a is b


def same_value(a, b) -> bool:
    if isinstance(a, TypeTag) or isinstance(b, TypeTag):
        return a is b
    if isinstance(a, ErrorValue) or isinstance(b, ErrorValue):
        return a == b
    if a is None or b is None:
        return a is b
    return lua_equal(a, b) and type(a) is type(b)


def superset(a, b):
    """Least value covering both a and b."""
    if same_value(a, b):
        return a
    if isinstance(a, ErrorValue) or isinstance(b, ErrorValue) or a is NONE or b is NONE:
        return UNIVERSAL
    ta, tb = lua_type(a), lua_type(b)
    if ta is not None and ta == tb and ta in COARSE_TAGS:
        return COARSE_TAGS[ta]
    return UNIVERSAL


def meet(a, b):
    """Greatest value covered by both a and b, an ErrorValue when none is."""
    if same_value(a, b):
        return a
    if a is UNIVERSAL or a is None:
        return b
    if b is UNIVERSAL or b is None:
        return a
    if isinstance(a, TypeTag) and a.name == lua_type(b):
        return b
    if isinstance(b, TypeTag) and b.name == lua_type(a):
        return a
    return ErrorValue(f"{describe_value(a)} conflicts with {describe_value(b)}")


_NUMBER_RE = re.compile(
    r'^\s*(?:(?P<hex>[-+]?0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)(?:[pP][-+]?\d+)?)'
    r'|(?P<dec>[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?))\s*$')


def str_to_number(text: str):
    """Lua string to number coercion, None when the string is not numeric."""
    match = _NUMBER_RE.match(text)
    if not match:
        return None
    if match.group('dec'):
        literal = match.group('dec')
        if re.search(r'[.eE]', literal):
            return float(literal)
        return int(literal)
    literal = match.group('hex')
    sign = -1 if literal.startswith('-') else 1
    digits = literal.lstrip('+-')[2:]
    if '.' not in digits and 'p' not in digits.lower():
        return sign * int(digits, 16)
    return sign * float.fromhex('0x' + digits)


def format_number(n) -> str:
    if isinstance(n, int):
        return str(n)
    if math.isinf(n):
        return 'inf' if n > 0 else '-inf'
    if math.isnan(n):
        return 'nan' if math.copysign(1.0, n) > 0 else '-nan'
    text = '%.14g' % n
    if re.match(r'^-?\d+$', text):
        text += '.0'
    return text


def quote_string(text: str) -> str:
    escaped = (text.replace('\\', '\\\\').replace('"', '\\"')
               .replace('\n', '\\n').replace('\r', '\\r').replace('\0', '\\0'))
    return f'"{escaped}"'


def describe_value(value, depth: int = 0) -> str:
    """Readable rendering of a value, tables shortened."""
    if value is None or value is NIL:
        return 'nil'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, str):
        if len(value) > 60:
            return quote_string(value[:57]) + '...'
        return quote_string(value)
    if isinstance(value, (TypeTag, ErrorValue)):
        return str(value)
    if isinstance(value, LuaFunction):
        return f"function: {value.name or '#' + str(value.ident)}"
    if isinstance(value, Builtin):
        return f"function: {value.name}"
    if isinstance(value, LuaTable):
        if depth > 0:
            return 'table'
        parts = []
        for i, (key, item) in enumerate(value.items()):
            if i == 8:
                parts.append('...')
                break
            if isinstance(key, str) and re.match(r'^[A-Za-z_]\w*$', key):
                label = key
            else:
                label = f"[{describe_value(key, depth + 1)}]"
            parts.append(f"{label}={describe_value(item, depth + 1)}")
        return 'table: {' + ', '.join(parts) + '}'
    return repr(value)


def value_fingerprint(value, _path=frozenset()):
    """Comparable rendering of a value with every table entry and full strings."""
    if isinstance(value, str):
        return ('string', value)
    if not isinstance(value, LuaTable):
        return describe_value(value)
    if id(value) in _path:
        return 'table: <cycle>'
    path = _path | {id(value)}
    return ('table', tuple((value_fingerprint(key, path), value_fingerprint(item, path))
                           for key, item in value.items()))


def freeze(value, _seen=None):
    """Make a table and every table reachable from it read-only."""
    if not isinstance(value, LuaTable):
        return value
    seen = set() if _seen is None else _seen
    if id(value) in seen:
        return value
    seen.add(id(value))
    value.readonly = True
    for key, item in value.items():
        freeze(key, seen)
        freeze(item, seen)
    return value
