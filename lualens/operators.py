"""
Lua operators over abstract values.

binop/unop are the entry points used by the interpreter. When every operand
is concrete the operator is evaluated natively with Lua semantics, otherwise
the result is derived from the operand types. Failures raise InferenceError,
which the caller turns into an ErrorValue.
"""

import math

from lualens.errors import InferenceError
from lualens.values import (
    BOOLEAN, NUMBER, STRING, UNIVERSAL, ErrorValue, LuaTable, TypeTag,
    boolean_cast, format_number, lua_equal, lua_type, str_to_number, superset,
)

# luaparser node class -> operator id
BINARY_OPS = {
    'AddOp': 'add', 'SubOp': 'sub', 'MultOp': 'mul', 'FloatDivOp': 'div',
    'FloorDivOp': 'idiv', 'ModOp': 'mod', 'ExpoOp': 'pow', 'Concat': 'concat',
    'EqToOp': 'eq', 'NotEqToOp': 'ne', 'LessThanOp': 'lt', 'LessOrEqThanOp': 'le',
    'GreaterThanOp': 'gt', 'GreaterOrEqThanOp': 'ge', 'AndLoOp': 'and', 'OrLoOp': 'or',
    'BAndOp': 'band', 'BOrOp': 'bor', 'BXorOp': 'bxor',
    'BShiftLOp': 'shl', 'BShiftROp': 'shr',
}

UNARY_OPS = {
    'UMinusOp': 'unm', 'ULNotOp': 'not', 'ULengthOP': 'len', 'UBNotOp': 'bnot',
}

ARITHMETIC = frozenset({'add', 'sub', 'mul', 'div', 'idiv', 'mod', 'pow'})
BITWISE = frozenset({'band', 'bor', 'bxor', 'shl', 'shr'})
ORDER = frozenset({'lt', 'le', 'gt', 'ge'})
EQUALITY = frozenset({'eq', 'ne'})

_MASK64 = (1 << 64) - 1


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_signed(n: int) -> int:
    n &= _MASK64
    return n - (1 << 64) if n >= 1 << 63 else n


def _arith_operand(value):
    if _is_number(value):
        return value
    if isinstance(value, str):
        n = str_to_number(value)
        if n is not None:
            return n
    raise InferenceError(f"attempt to perform arithmetic on a {lua_type(value)} value")


def _bitwise_operand(value) -> int:
    n = value
    if isinstance(value, str):
        n = str_to_number(value)
    if _is_number(n):
        if isinstance(n, float):
            if not n.is_integer():
                raise InferenceError("number has no integer representation")
            n = int(n)
        return n
    raise InferenceError(f"attempt to perform bitwise operation on a {lua_type(value)} value")


def _arith(opid, a, b):
    x, y = _arith_operand(a), _arith_operand(b)
    both_int = isinstance(x, int) and isinstance(y, int)
    if opid == 'add':
        return x + y
    if opid == 'sub':
        return x - y
    if opid == 'mul':
        return x * y
    if opid == 'div':
        x, y = float(x), float(y)
        if y == 0:
            if x == 0 or math.isnan(x):
                return math.nan
            return math.copysign(math.inf, x) * math.copysign(1.0, y)
        return x / y
    if opid == 'idiv':
        if both_int:
            if y == 0:
                raise InferenceError("attempt to perform 'n//0'")
            return x // y
        x, y = float(x), float(y)
        if y == 0:
            return _arith('div', x, y)
        return float(math.floor(x / y))
    if opid == 'mod':
        if both_int:
            if y == 0:
                raise InferenceError("attempt to perform 'n%0'")
            return x % y
        x, y = float(x), float(y)
        if y == 0 or math.isinf(x):
            return math.nan
        if math.isinf(y):
            return x if (x >= 0) == (y > 0) else y
        return x - math.floor(x / y) * y
    if opid == 'pow':
        try:
            return math.pow(float(x), float(y))
        except OverflowError:
            return math.inf
        except ValueError:
            return math.nan
    raise InferenceError(f"unknown operator {opid}")


def _bitwise(opid, a, b):
    x, y = _bitwise_operand(a), _bitwise_operand(b)
    if opid == 'band':
        return _to_signed(x & y)
    if opid == 'bor':
        return _to_signed(x | y)
    if opid == 'bxor':
        return _to_signed(x ^ y)
    if opid == 'shr':
        y = -y
    if y <= -64 or y >= 64:
        return 0
    if y >= 0:
        return _to_signed((x & _MASK64) << y)
    return _to_signed((x & _MASK64) >> -y)


def _concat_operand(value) -> str:
    if isinstance(value, str):
        return value
    if _is_number(value):
        return format_number(value)
    raise InferenceError(f"attempt to concatenate a {lua_type(value)} value")


def _compare(opid, a, b):
    if _is_number(a) and _is_number(b) or isinstance(a, str) and isinstance(b, str):
        if opid == 'lt':
            return a < b
        if opid == 'le':
            return a <= b
        if opid == 'gt':
            return a > b
        return a >= b
    ta, tb = lua_type(a), lua_type(b)
    if ta == tb:
        raise InferenceError(f"attempt to compare two {ta} values")
    raise InferenceError(f"attempt to compare {ta} with {tb}")


def native_binop(opid, a, b):
    """Evaluate a binary operator on concrete values."""
    if opid == 'and':
        return b if boolean_cast(a) else a
    if opid == 'or':
        return a if boolean_cast(a) else b
    if opid == 'eq':
        return lua_equal(a, b)
    if opid == 'ne':
        return not lua_equal(a, b)
    if opid in ORDER:
        return _compare(opid, a, b)
    if opid == 'concat':
        return _concat_operand(a) + _concat_operand(b)
    if opid in BITWISE:
        return _bitwise(opid, a, b)
    return _arith(opid, a, b)


def native_unop(opid, a):
    """Evaluate a unary operator on a concrete value."""
    if opid == 'not':
        return not boolean_cast(a)
    if opid == 'unm':
        return -_arith_operand(a)
    if opid == 'len':
        if isinstance(a, str):
            return len(a.encode('utf-8'))
        if isinstance(a, LuaTable):
            return a.border()
        raise InferenceError(f"attempt to get length of a {lua_type(a)} value")
    if opid == 'bnot':
        try:
            return _to_signed(~_bitwise_operand(a))
        except InferenceError:
            raise InferenceError(f"attempt to perform bitwise operation on a {lua_type(a)} value")
    raise InferenceError(f"unknown operator {opid}")


def _abstract(value) -> bool:
    return value is None or isinstance(value, (TypeTag, ErrorValue))


def binop(opid, a, b):
    """Apply a binary operator to abstract values."""
    if not _abstract(a) and not _abstract(b):
        return native_binop(opid, a, b)
    if isinstance(a, ErrorValue) or isinstance(b, ErrorValue):
        return UNIVERSAL

    if opid in ('and', 'or'):
        truth = boolean_cast(a)
        if truth is not None:
            return native_binop(opid, a, b)
        return superset(a, b)

    ka, kb = lua_type(a), lua_type(b)
    if opid in EQUALITY:
        return BOOLEAN
    if opid == 'concat' and 'string' in (ka, kb):
        if ka in (None, 'string', 'number') and kb in (None, 'string', 'number'):
            return STRING
    if ka is None or kb is None:
        return BOOLEAN if opid in ORDER else UNIVERSAL

    if opid in ORDER:
        if ka == kb and ka in ('number', 'string'):
            return BOOLEAN
        if ka == kb:
            raise InferenceError(f"attempt to compare two {ka} values")
        raise InferenceError(f"attempt to compare {ka} with {kb}")
    if opid == 'concat':
        bad = kb if ka in ('string', 'number') else ka
        if bad not in ('string', 'number'):
            raise InferenceError(f"attempt to concatenate a {bad} value")
        return STRING
    if opid in BITWISE:
        bad = kb if ka in ('number', 'string') else ka
        if bad not in ('number', 'string'):
            raise InferenceError(f"attempt to perform bitwise operation on a {bad} value")
        return NUMBER
    bad = kb if ka in ('number', 'string') else ka
    if bad not in ('number', 'string'):
        raise InferenceError(f"attempt to perform arithmetic on a {bad} value")
    return NUMBER


def unop(opid, a):
    """Apply a unary operator to an abstract value."""
    if not _abstract(a):
        return native_unop(opid, a)
    if isinstance(a, ErrorValue):
        return UNIVERSAL
    if opid == 'not':
        truth = boolean_cast(a)
        return BOOLEAN if truth is None else not truth
    kind = lua_type(a)
    if kind is None:
        return UNIVERSAL
    if opid == 'len':
        if kind == 'string':
            return NUMBER
        raise InferenceError(f"attempt to get length of a {kind} value")
    if kind in ('number', 'string'):
        return NUMBER
    if opid == 'bnot':
        raise InferenceError(f"attempt to perform bitwise operation on a {kind} value")
    raise InferenceError(f"attempt to perform arithmetic on a {kind} value")
