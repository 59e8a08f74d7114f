"""
Read-only model of the Lua standard library.

Every builtin carries the metadata the analyzer needs: whether it can be
evaluated on concrete arguments (safe), the value assumed otherwise, the
accepted argument count and a short signature for describe output.
"""

import math
import re
from typing import Optional, Tuple

from lualens.errors import InferenceError
from lualens.operators import native_unop
from lualens.values import (
    BOOLEAN, NIL, NONE, NUMBER, STRING, UNIVERSAL, Builtin, LuaTable, TypeTag,
    boolean_cast, format_number, lua_equal, lua_type, quote_string, str_to_number,
)

# largest string a safe builtin may produce
MAX_STRING = 1 << 16

_FORMAT_NUMBER_RE = re.compile(r"\d+")


def _arg(args, i, fname, expected):
    value = args[i] if i < len(args) else NIL
    kind = lua_type(value)
    if expected == 'number' and kind == 'string':
        n = str_to_number(value)
        if n is not None:
            return n
    if expected == 'string' and kind == 'number':
        return format_number(value)
    if kind != expected:
        got = 'no value' if i >= len(args) else kind
        raise InferenceError(f"bad argument #{i + 1} to '{fname}' ({expected} expected, got {got})")
    return value


def _opt(args, i, fname, expected, default):
    if i >= len(args) or args[i] is NIL:
        return default
    return _arg(args, i, fname, expected)


def _int(args, i, fname, default=None):
    if default is not None:
        n = _opt(args, i, fname, 'number', default)
    else:
        n = _arg(args, i, fname, 'number')
    if isinstance(n, float):
        if not n.is_integer():
            raise InferenceError(f"bad argument #{i + 1} to '{fname}' (number has no integer representation)")
        n = int(n)
    return n


def tostring(value):
    if value is NIL:
        return 'nil'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, str):
        return value
    # address based output, unknowable statically
    return STRING


def _tostring(*args):
    if not args:
        raise InferenceError("bad argument #1 to 'tostring' (value expected)")
    return tostring(args[0])


def _tonumber(*args):
    value = args[0] if args else NIL
    if len(args) > 1 and args[1] is not NIL:
        base = _int(args, 1, 'tonumber')
        text = _arg(args, 0, 'tonumber', 'string').strip().lower()
        try:
            return int(text, base)
        except ValueError:
            return NIL
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        n = str_to_number(value)
        return NIL if n is None else n
    return NIL


def _type(*args):
    if not args:
        raise InferenceError("bad argument #1 to 'type' (value expected)")
    return lua_type(args[0])


def _assert(*args):
    if not args:
        raise InferenceError("bad argument #1 to 'assert' (value expected)")
    if boolean_cast(args[0]):
        return args[0]
    message = args[1] if len(args) > 1 else 'assertion failed!'
    raise InferenceError(message if isinstance(message, str) else str(tostring(message)))


def _select(*args):
    if args and args[0] == '#':
        return len(args) - 1
    n = _int(args, 0, 'select')
    rest = args[1:]
    if n < 0:
        n = len(rest) + n + 1
        if n < 1:
            raise InferenceError("bad argument #1 to 'select' (index out of range)")
    if n < 1:
        raise InferenceError("bad argument #1 to 'select' (index out of range)")
    return rest[n - 1] if n <= len(rest) else NIL


def _rawequal(*args):
    return lua_equal(args[0] if args else NIL, args[1] if len(args) > 1 else NIL)


def _rawget(*args):
    table = _arg(args, 0, 'rawget', 'table')
    return table.get(args[1] if len(args) > 1 else NIL)


def _rawlen(*args):
    value = args[0] if args else NIL
    if isinstance(value, (str, LuaTable)):
        return native_unop('len', value)
    raise InferenceError("table or string expected")


def _unpack(*args):
    table = _arg(args, 0, 'unpack', 'table')
    i = _int(args, 1, 'unpack', 1)
    j = _int(args, 2, 'unpack', table.border())
    return table.get(i) if i <= j else NIL


def _math1(fname, func):
    def impl(*args):
        x = _arg(args, 0, fname, 'number')
        try:
            return func(x)
        except (ValueError, OverflowError):
            return math.nan
    return impl


def _math_floor(x):
    if isinstance(x, int) or math.isinf(x) or math.isnan(x):
        return x
    return math.floor(x)


def _math_ceil(x):
    if isinstance(x, int) or math.isinf(x) or math.isnan(x):
        return x
    return math.ceil(x)


def _math_log(*args):
    x = _arg(args, 0, 'log', 'number')
    base = _opt(args, 1, 'log', 'number', None)
    try:
        if base is None:
            return math.log(x)
        if base == 2:
            return math.log2(x)
        if base == 10:
            return math.log10(x)
        return math.log(x) / math.log(base)
    except ValueError:
        return -math.inf if x == 0 else math.nan
    except ZeroDivisionError:
        return math.nan


def _math_atan(*args):
    y = _arg(args, 0, 'atan', 'number')
    x = _opt(args, 1, 'atan', 'number', 1.0)
    return math.atan2(y, x)


def _math_fmod(*args):
    a = _arg(args, 0, 'fmod', 'number')
    b = _arg(args, 1, 'fmod', 'number')
    if isinstance(a, int) and isinstance(b, int):
        if b == 0:
            raise InferenceError("bad argument #2 to 'fmod' (zero)")
        return int(math.fmod(a, b))
    try:
        return math.fmod(a, b)
    except ValueError:
        return math.nan


def _math_modf(*args):
    x = _arg(args, 0, 'modf', 'number')
    if math.isinf(x):
        return float(x)
    return float(math.modf(x)[1])


def _math_extreme(fname, pick):
    def impl(*args):
        best = _arg(args, 0, fname, 'number')
        for i in range(1, len(args)):
            value = _arg(args, i, fname, 'number')
            if pick(value, best):
                best = value
        return best
    return impl


def _math_tointeger(*args):
    x = args[0] if args else NIL
    if isinstance(x, int) and not isinstance(x, bool):
        return x
    if isinstance(x, float) and x.is_integer():
        return int(x)
    return NIL


def _math_type(*args):
    if not args:
        raise InferenceError("bad argument #1 to 'type' (value expected)")
    x = args[0]
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        return NIL
    return 'integer' if isinstance(x, int) else 'float'


def _math_ult(*args):
    a = _int(args, 0, 'ult')
    b = _int(args, 1, 'ult')
    return (a & 0xFFFFFFFFFFFFFFFF) < (b & 0xFFFFFFFFFFFFFFFF)


def _math_pow(*args):
    x = _arg(args, 0, 'pow', 'number')
    y = _arg(args, 1, 'pow', 'number')
    try:
        return math.pow(x, y)
    except OverflowError:
        return math.inf
    except ValueError:
        return math.nan


def _str_index(i, length):
    if i > 0:
        return i
    if i == 0:
        return 1
    return max(length + i + 1, 1)


def _string_len(*args):
    return len(_arg(args, 0, 'len', 'string').encode('utf-8'))


def _string_sub(*args):
    s = _arg(args, 0, 'sub', 'string')
    start = _str_index(_int(args, 1, 'sub', 1), len(s))
    end = _int(args, 2, 'sub', -1)
    end = len(s) + end + 1 if end < 0 else min(end, len(s))
    return s[start - 1:end] if start <= end else ''


def _string_case(fname, upper):
    def impl(*args):
        s = _arg(args, 0, fname, 'string')
        return s.upper() if upper else s.lower()
    return impl


def _string_rep(*args):
    s = _arg(args, 0, 'rep', 'string')
    n = _int(args, 1, 'rep')
    sep = _opt(args, 2, 'rep', 'string', '')
    if n <= 0:
        return ''
    if (len(s) + len(sep)) * n > MAX_STRING:
        return STRING
    return sep.join([s] * n)


def _string_reverse(*args):
    return _arg(args, 0, 'reverse', 'string')[::-1]


def _string_byte(*args):
    s = _arg(args, 0, 'byte', 'string')
    i = _str_index(_int(args, 1, 'byte', 1), len(s))
    data = s.encode('utf-8')
    return data[i - 1] if i <= len(data) else NIL


def _string_char(*args):
    chars = []
    for i in range(len(args)):
        code = _int(args, i, 'char')
        if not 0 <= code <= 255:
            raise InferenceError(f"bad argument #{i + 1} to 'char' (value out of range)")
        chars.append(chr(code))
    return ''.join(chars)


def _string_format(*args):
    fmt = _arg(args, 0, 'format', 'string')
    out = []
    argi = 1
    i = 0
    while i < len(fmt):
        ch = fmt[i]
        if ch != '%':
            out.append(ch)
            i += 1
            continue
        j = i + 1
        while j < len(fmt) and fmt[j] in '-+ #0123456789.':
            j += 1
        if j >= len(fmt):
            raise InferenceError("invalid conversion '%' to 'format'")
        spec, conv = fmt[i:j], fmt[j]
        i = j + 1
        if conv == '%':
            out.append('%')
            continue
        # width or precision too large to build
        if any(int(n) > MAX_STRING for n in _FORMAT_NUMBER_RE.findall(spec)):
            return STRING
        if conv in 'di':
            out.append((spec + 'd') % _int(args, argi, 'format'))
        elif conv in 'xXoc':
            n = _int(args, argi, 'format')
            out.append(chr(n) if conv == 'c' else (spec + conv) % n)
        elif conv in 'eEfFgGaA':
            x = float(_arg(args, argi, 'format', 'number'))
            out.append(x.hex() if conv in 'aA' else (spec + conv) % x)
        elif conv == 's':
            value = args[argi] if argi < len(args) else NIL
            text = tostring(value)
            if isinstance(text, TypeTag):
                return STRING
            out.append((spec + 's') % text)
        elif conv == 'q':
            out.append(quote_string(_arg(args, argi, 'format', 'string')))
        else:
            raise InferenceError(f"invalid conversion '%{conv}' to 'format'")
        argi += 1
    text = ''.join(out)
    return STRING if len(text) > MAX_STRING else text


def _table_concat(*args):
    table = _arg(args, 0, 'concat', 'table')
    sep = _opt(args, 1, 'concat', 'string', '')
    i = _int(args, 2, 'concat', 1)
    j = _int(args, 3, 'concat', table.border())
    parts = []
    for n in range(i, j + 1):
        item = table.get(n)
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            raise InferenceError(f"invalid value (at index {n}) in table for 'concat'")
        parts.append(item if isinstance(item, str) else format_number(item))
    return sep.join(parts)


def _utf8_char(*args):
    return ''.join(chr(_int(args, i, 'char')) for i in range(len(args)))


def _fn(name: str, impl=None, returns=UNIVERSAL, nargs: Optional[Tuple[int, Optional[int]]] = None,
        signature: Optional[str] = None) -> Builtin:
    return Builtin(name=name, impl=impl, safe=impl is not None, returns=returns,
                   nargs=nargs, signature=signature)


REQUIRE = _fn('require', returns=UNIVERSAL, nargs=(1, 1),
              signature='require(modname) - loads the given module')


def _library(name, builtins, constants=None):
    entries = {}
    for builtin in builtins:
        entries[builtin.name.split('.')[-1]] = builtin
    entries.update(constants or {})
    return LuaTable(entries, name=name, readonly=True)


def build_runtime() -> LuaTable:
    """Build the global environment table."""
    math_lib = _library('math', [
        _fn('math.abs', _math1('abs', abs), NUMBER, (1, 1), 'math.abs(x)'),
        _fn('math.ceil', _math1('ceil', _math_ceil), NUMBER, (1, 1), 'math.ceil(x)'),
        _fn('math.floor', _math1('floor', _math_floor), NUMBER, (1, 1), 'math.floor(x)'),
        _fn('math.sqrt', _math1('sqrt', math.sqrt), NUMBER, (1, 1), 'math.sqrt(x)'),
        _fn('math.sin', _math1('sin', math.sin), NUMBER, (1, 1), 'math.sin(x)'),
        _fn('math.cos', _math1('cos', math.cos), NUMBER, (1, 1), 'math.cos(x)'),
        _fn('math.tan', _math1('tan', math.tan), NUMBER, (1, 1), 'math.tan(x)'),
        _fn('math.asin', _math1('asin', math.asin), NUMBER, (1, 1), 'math.asin(x)'),
        _fn('math.acos', _math1('acos', math.acos), NUMBER, (1, 1), 'math.acos(x)'),
        _fn('math.atan', _math_atan, NUMBER, (1, 2), 'math.atan(y [, x])'),
        _fn('math.exp', _math1('exp', math.exp), NUMBER, (1, 1), 'math.exp(x)'),
        _fn('math.log', _math_log, NUMBER, (1, 2), 'math.log(x [, base])'),
        _fn('math.deg', _math1('deg', math.degrees), NUMBER, (1, 1), 'math.deg(x)'),
        _fn('math.rad', _math1('rad', math.radians), NUMBER, (1, 1), 'math.rad(x)'),
        _fn('math.fmod', _math_fmod, NUMBER, (2, 2), 'math.fmod(x, y)'),
        _fn('math.modf', _math_modf, NUMBER, (1, 1), 'math.modf(x)'),
        _fn('math.max', _math_extreme('max', lambda a, b: a > b), NUMBER, (1, None), 'math.max(x, ...)'),
        _fn('math.min', _math_extreme('min', lambda a, b: a < b), NUMBER, (1, None), 'math.min(x, ...)'),
        _fn('math.pow', _math_pow, NUMBER, (2, 2), 'math.pow(x, y)'),
        _fn('math.tointeger', _math_tointeger, UNIVERSAL, (1, 1), 'math.tointeger(x)'),
        _fn('math.type', _math_type, UNIVERSAL, (1, 1), 'math.type(x)'),
        _fn('math.ult', _math_ult, BOOLEAN, (2, 2), 'math.ult(m, n)'),
        _fn('math.random', None, NUMBER, (0, 2), 'math.random([m [, n]])'),
        _fn('math.randomseed', None, NIL, (0, 2), 'math.randomseed([x [, y]])'),
    ], {'pi': math.pi, 'huge': math.inf, 'maxinteger': 2 ** 63 - 1, 'mininteger': -2 ** 63})

    string_lib = _library('string', [
        _fn('string.len', _string_len, NUMBER, (1, 1), 'string.len(s)'),
        _fn('string.sub', _string_sub, STRING, (2, 3), 'string.sub(s, i [, j])'),
        _fn('string.upper', _string_case('upper', True), STRING, (1, 1), 'string.upper(s)'),
        _fn('string.lower', _string_case('lower', False), STRING, (1, 1), 'string.lower(s)'),
        _fn('string.rep', _string_rep, STRING, (2, 3), 'string.rep(s, n [, sep])'),
        _fn('string.reverse', _string_reverse, STRING, (1, 1), 'string.reverse(s)'),
        _fn('string.byte', _string_byte, UNIVERSAL, (1, 3), 'string.byte(s [, i [, j]])'),
        _fn('string.char', _string_char, STRING, (0, None), 'string.char(...)'),
        _fn('string.format', _string_format, STRING, (1, None), 'string.format(formatstring, ...)'),
        _fn('string.find', None, UNIVERSAL, (2, 4), 'string.find(s, pattern [, init [, plain]])'),
        _fn('string.match', None, UNIVERSAL, (2, 3), 'string.match(s, pattern [, init])'),
        _fn('string.gmatch', None, UNIVERSAL, (2, 2), 'string.gmatch(s, pattern)'),
        _fn('string.gsub', None, STRING, (3, 4), 'string.gsub(s, pattern, repl [, n])'),
        _fn('string.dump', None, STRING, (1, 2), 'string.dump(function [, strip])'),
    ])

    table_lib = _library('table', [
        _fn('table.concat', _table_concat, STRING, (1, 4), 'table.concat(list [, sep [, i [, j]]])'),
        _fn('table.unpack', _unpack, UNIVERSAL, (1, 3), 'table.unpack(list [, i [, j]])'),
        _fn('table.insert', None, NONE, (2, 3), 'table.insert(list, [pos,] value)'),
        _fn('table.remove', None, UNIVERSAL, (1, 2), 'table.remove(list [, pos])'),
        _fn('table.sort', None, NONE, (1, 2), 'table.sort(list [, comp])'),
        _fn('table.pack', None, UNIVERSAL, (0, None), 'table.pack(...)'),
        _fn('table.move', None, UNIVERSAL, (4, 5), 'table.move(a1, f, e, t [, a2])'),
        _fn('table.getn', None, NUMBER, (1, 1), 'table.getn(list)'),
    ])

    os_lib = _library('os', [
        _fn('os.time', None, NUMBER, (0, 1), 'os.time([table])'),
        _fn('os.clock', None, NUMBER, (0, 0), 'os.clock()'),
        _fn('os.date', None, UNIVERSAL, (0, 2), 'os.date([format [, time]])'),
        _fn('os.difftime', None, NUMBER, (1, 2), 'os.difftime(t2, t1)'),
        _fn('os.getenv', None, UNIVERSAL, (1, 1), 'os.getenv(varname)'),
        _fn('os.execute', None, UNIVERSAL, (0, 1), 'os.execute([command])'),
        _fn('os.exit', None, NONE, (0, 2), 'os.exit([code [, close]])'),
        _fn('os.remove', None, UNIVERSAL, (1, 1), 'os.remove(filename)'),
        _fn('os.rename', None, UNIVERSAL, (2, 2), 'os.rename(oldname, newname)'),
        _fn('os.tmpname', None, STRING, (0, 0), 'os.tmpname()'),
    ])

    io_lib = _library('io', [
        _fn('io.open', None, UNIVERSAL, (1, 2), 'io.open(filename [, mode])'),
        _fn('io.read', None, UNIVERSAL, (0, None), 'io.read(...)'),
        _fn('io.write', None, UNIVERSAL, (0, None), 'io.write(...)'),
        _fn('io.lines', None, UNIVERSAL, (0, None), 'io.lines([filename, ...])'),
        _fn('io.close', None, UNIVERSAL, (0, 1), 'io.close([file])'),
        _fn('io.input', None, UNIVERSAL, (0, 1), 'io.input([file])'),
        _fn('io.output', None, UNIVERSAL, (0, 1), 'io.output([file])'),
        _fn('io.popen', None, UNIVERSAL, (1, 2), 'io.popen(prog [, mode])'),
        _fn('io.type', None, UNIVERSAL, (1, 1), 'io.type(obj)'),
    ], {'stdin': UNIVERSAL, 'stdout': UNIVERSAL, 'stderr': UNIVERSAL})

    coroutine_lib = _library('coroutine', [
        _fn('coroutine.create', None, UNIVERSAL, (1, 1), 'coroutine.create(f)'),
        _fn('coroutine.resume', None, BOOLEAN, (1, None), 'coroutine.resume(co [, val1, ...])'),
        _fn('coroutine.yield', None, UNIVERSAL, (0, None), 'coroutine.yield(...)'),
        _fn('coroutine.status', None, STRING, (1, 1), 'coroutine.status(co)'),
        _fn('coroutine.wrap', None, UNIVERSAL, (1, 1), 'coroutine.wrap(f)'),
        _fn('coroutine.running', None, UNIVERSAL, (0, 0), 'coroutine.running()'),
        _fn('coroutine.isyieldable', None, BOOLEAN, (0, 0), 'coroutine.isyieldable()'),
    ])

    utf8_lib = _library('utf8', [
        _fn('utf8.char', _utf8_char, STRING, (0, None), 'utf8.char(...)'),
        _fn('utf8.len', None, UNIVERSAL, (1, 3), 'utf8.len(s [, i [, j]])'),
        _fn('utf8.codepoint', None, UNIVERSAL, (1, 3), 'utf8.codepoint(s [, i [, j]])'),
        _fn('utf8.offset', None, UNIVERSAL, (2, 3), 'utf8.offset(s, n [, i])'),
        _fn('utf8.codes', None, UNIVERSAL, (1, 1), 'utf8.codes(s)'),
    ], {'charpattern': "[\0-\x7F\xC2-\xFD][\x80-\xBF]*"})

    debug_lib = _library('debug', [
        _fn('debug.traceback', None, STRING, (0, 3), 'debug.traceback([thread,] [message [, level]])'),
        _fn('debug.getinfo', None, UNIVERSAL, (1, 3), 'debug.getinfo([thread,] f [, what])'),
        _fn('debug.getlocal', None, UNIVERSAL, (2, 3), 'debug.getlocal([thread,] f, local)'),
        _fn('debug.sethook', None, NONE, (0, 4), 'debug.sethook([thread,] hook, mask [, count])'),
        _fn('debug.getmetatable', None, UNIVERSAL, (1, 1), 'debug.getmetatable(value)'),
        _fn('debug.setmetatable', None, UNIVERSAL, (2, 2), 'debug.setmetatable(value, table)'),
    ])

    package_lib = LuaTable({
        'path': UNIVERSAL, 'cpath': UNIVERSAL, 'loaded': UNIVERSAL, 'preload': UNIVERSAL,
        'searchers': UNIVERSAL, 'config': UNIVERSAL,
        'searchpath': _fn('package.searchpath', None, UNIVERSAL, (2, 4),
                          'package.searchpath(name, path [, sep [, rep]])'),
    }, name='package', readonly=True)

    globals_table = LuaTable(name='_G')
    for builtin in [
        _fn('assert', _assert, UNIVERSAL, (1, None), 'assert(v [, message])'),
        _fn('tostring', _tostring, STRING, (1, 1), 'tostring(v)'),
        _fn('tonumber', _tonumber, UNIVERSAL, (1, 2), 'tonumber(e [, base])'),
        _fn('type', _type, STRING, (1, 1), 'type(v)'),
        _fn('select', _select, UNIVERSAL, (1, None), 'select(index, ...)'),
        _fn('rawequal', _rawequal, BOOLEAN, (2, 2), 'rawequal(v1, v2)'),
        _fn('rawget', _rawget, UNIVERSAL, (2, 2), 'rawget(table, index)'),
        _fn('rawlen', _rawlen, NUMBER, (1, 1), 'rawlen(v)'),
        _fn('unpack', _unpack, UNIVERSAL, (1, 3), 'unpack(list [, i [, j]])'),
        _fn('print', None, NONE, (0, None), 'print(...)'),
        _fn('error', None, NONE, (0, 2), 'error(message [, level])'),
        _fn('pcall', None, BOOLEAN, (1, None), 'pcall(f [, arg1, ...])'),
        _fn('xpcall', None, BOOLEAN, (2, None), 'xpcall(f, msgh [, arg1, ...])'),
        _fn('setmetatable', None, UNIVERSAL, (2, 2), 'setmetatable(table, metatable)'),
        _fn('getmetatable', None, UNIVERSAL, (1, 1), 'getmetatable(object)'),
        _fn('rawset', None, UNIVERSAL, (3, 3), 'rawset(table, index, value)'),
        _fn('pairs', None, UNIVERSAL, (1, 1), 'pairs(t)'),
        _fn('ipairs', None, UNIVERSAL, (1, 1), 'ipairs(t)'),
        _fn('next', None, UNIVERSAL, (1, 2), 'next(table [, index])'),
        _fn('load', None, UNIVERSAL, (1, 4), 'load(chunk [, chunkname [, mode [, env]]])'),
        _fn('loadstring', None, UNIVERSAL, (1, 2), 'loadstring(string [, chunkname])'),
        _fn('loadfile', None, UNIVERSAL, (0, 3), 'loadfile([filename [, mode [, env]]])'),
        _fn('dofile', None, UNIVERSAL, (0, 1), 'dofile([filename])'),
        _fn('collectgarbage', None, UNIVERSAL, (0, 2), 'collectgarbage([opt [, arg]])'),
        _fn('setfenv', None, UNIVERSAL, (2, 2), 'setfenv(f, table)'),
        _fn('getfenv', None, UNIVERSAL, (0, 1), 'getfenv([f])'),
        _fn('module', None, NONE, (1, None), 'module(name [, ...])'),
        REQUIRE,
    ]:
        globals_table.rawset(builtin.name, builtin)
    for name, library in (('math', math_lib), ('string', string_lib), ('table', table_lib),
                          ('os', os_lib), ('io', io_lib), ('coroutine', coroutine_lib),
                          ('utf8', utf8_lib), ('debug', debug_lib), ('package', package_lib)):
        globals_table.rawset(name, library)
    globals_table.rawset('_VERSION', 'Lua 5.3')
    globals_table.rawset('_G', globals_table)
    globals_table.readonly = True
    return globals_table


RUNTIME = build_runtime()
STRING_LIBRARY = RUNTIME.get('string')


def lookup_path(path):
    """Follow a dotted path of keys from the global environment."""
    value = RUNTIME
    for part in path:
        if not isinstance(value, LuaTable):
            return None
        value = value.get(part)
        if value is NIL:
            return None
    return value
