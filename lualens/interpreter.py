"""
Abstract interpretation of one annotated tree.

ValueInterpreter.infer_values makes one post-order pass over the tree and
stores a value on every expression node it can say something about. Running
the pass again refines values that depended on later definitions, for
example a call to a function declared further down the file.

Function literals are registered once in the DebugTable; their return values
are recomputed on each pass from the reachable return statements.
"""

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, List, Optional, Tuple

from luaparser.astnodes import Name, Node

from lualens.errors import InferenceError
from lualens.lexer import Token
from lualens.operators import BINARY_OPS, UNARY_OPS, binop, unop
from lualens.runtime import REQUIRE, RUNTIME, STRING_LIBRARY
from lualens.tree import is_positional_field, kind_of, string_value, walk
from lualens.values import (
    NIL, NONE, NUMBER, STRING, UNIVERSAL, Builtin, ErrorValue, LuaFunction, LuaTable,
    TypeTag, boolean_cast, describe_value, is_known, lua_type, meet, same_value, superset,
)

logger = logging.getLogger(__name__)

OPEN_ENDED = frozenset({'Call', 'Invoke', 'Varargs'})


@dataclass
class FunctionRecord:
    ident: int
    node: Node
    name: Optional[str]
    source: str
    span: Optional[Tuple[int, int]]
    position: Optional[Tuple[int, int]]
    param_names: List[str]
    is_vararg: bool
    tokens: List[Token] = field(default_factory=list, repr=False)
    returns: Optional[List[Any]] = None

    @property
    def param_range(self) -> Tuple[int, Optional[int]]:
        n = len(self.param_names)
        return n, None if self.is_vararg else n

    @property
    def signature(self) -> str:
        params = self.param_names + (['...'] if self.is_vararg else [])
        return f"function({', '.join(params)})"


class DebugTable:
    """Function records of one inspection, indexed by LuaFunction.ident."""

    def __init__(self, source: str = '<string>'):
        self.source = source
        self.records: List[FunctionRecord] = []

    def register(self, node, name, span, position, param_names, is_vararg, tokens) -> LuaFunction:
        ident = len(self.records) + 1
        self.records.append(FunctionRecord(
            ident=ident, node=node, name=name, source=self.source, span=span,
            position=position, param_names=param_names, is_vararg=is_vararg, tokens=tokens,
        ))
        return LuaFunction(ident=ident, name=name, debug=self)

    def record(self, fn) -> Optional[FunctionRecord]:
        if not isinstance(fn, LuaFunction) or fn.debug is not self:
            return None
        if 1 <= fn.ident <= len(self.records):
            return self.records[fn.ident - 1]
        return None

    def clear(self):
        self.records.clear()

    def __len__(self):
        return len(self.records)


def function_record(value) -> Optional[FunctionRecord]:
    """Record of an analysed function value from any inspection."""
    if isinstance(value, LuaFunction):
        return value.record()
    return None


def index_value(container, key):
    """Raw Lua indexing of a concrete container."""
    if isinstance(container, str):
        container = STRING_LIBRARY
    if isinstance(container, LuaTable):
        return container.get(key)
    raise InferenceError(f"attempt to index a {lua_type(container)} value")


class ValueInterpreter:
    """Infers values for one inspection."""

    def __init__(self, inspection, modules=None):
        self.inspection = inspection
        self.source_map = inspection.source_map
        self.annotations = inspection.annotations
        self.options = inspection.options
        self.debug = inspection.debug
        self.modules = modules

    def infer_values(self):
        """One pass over the tree."""
        detect_dead = self.options.detect_dead_code
        if detect_dead:
            for _, info in self.annotations.items():
                info.is_dead = False
        for node in self.source_map.postorder:
            kind = kind_of(node)
            handler = getattr(self, f'_infer_{kind}', None)
            if handler is not None:
                handler(node)
            elif kind in BINARY_OPS:
                self._infer_binary(node, BINARY_OPS[kind])
            elif kind in UNARY_OPS:
                self._infer_unary(node, UNARY_OPS[kind])
        if detect_dead:
            self._scan(self.source_map.chunk.body.body, [])

    # ---- helpers ----

    def _value(self, node):
        return self.annotations.value(node)

    def _set_value(self, node, value):
        info = self.annotations.info(node)
        if info.pinned:
            if value is not None and value is not UNIVERSAL and not isinstance(value, ErrorValue):
                conflict = meet(info.value, value)
                if isinstance(conflict, ErrorValue):
                    info.note = f"value {describe_value(value)} conflicts with pinned {describe_value(info.value)}"
            return
        info.value = value

    def _global_value(self, name: str):
        if name in self.inspection.value_globals:
            return self.inspection.value_globals[name]
        return RUNTIME.get(name)

    def _field_key(self, index_node):
        if isinstance(index_node.idx, Name) and self.source_map.is_dot_index(index_node):
            return index_node.idx.id
        return self._value(index_node.idx)

    def _index(self, container, key):
        if container is STRING:
            container = STRING_LIBRARY
        if is_known(container) and is_known(key):
            try:
                return index_value(container, key)
            except InferenceError as e:
                return ErrorValue(str(e))
        return UNIVERSAL

    def _new_index(self, container, key, value):
        """Assignment t[k] = v; returns the value the target ends up with."""
        if not (is_known(container) and is_known(key)):
            return UNIVERSAL
        if not isinstance(container, LuaTable):
            return ErrorValue(f"attempt to index a {lua_type(container)} value")
        if container.readonly:
            return UNIVERSAL
        existing = container.get(key)
        if existing is not NIL and is_known(existing) and not same_value(existing, value):
            value = UNIVERSAL
        try:
            container.rawset(key, value)
        except InferenceError as e:
            return ErrorValue(str(e))
        return value

    def _expand(self, value_nodes, count: int) -> List[Any]:
        values = [self._value(node) for node in value_nodes]
        if len(values) < count:
            open_ended = bool(value_nodes) and kind_of(value_nodes[-1]) in OPEN_ENDED
            values.extend([UNIVERSAL if open_ended else NIL] * (count - len(values)))
        return values

    def _assign(self, target, value):
        if isinstance(target, Name):
            info = self.annotations.info(target)
            if info.binding is None and info.is_global and not info.pinned:
                self.inspection.value_globals[target.id] = value
            self._set_value(target, value)
        elif kind_of(target) == 'Index':
            container = self._value(target.value)
            key = self._field_key(target)
            self._set_value(target, self._new_index(container, key, value))

    def _call(self, node, func, args):
        if func is REQUIRE:
            if args and isinstance(args[0], str) and self.modules is not None:
                report = partial(self.inspection.report, node=node, code='module')
                return self.modules.require_inspect(args[0], report)
            return UNIVERSAL
        if isinstance(func, Builtin):
            if func.safe and all(is_known(arg) for arg in args):
                try:
                    return func.impl(*args)
                except (InferenceError, ArithmeticError, ValueError, TypeError) as e:
                    logger.debug("builtin %s failed: %s", func.name, e)
                    return ErrorValue(str(e))
            return func.returns
        record = function_record(func)
        if record is not None and record.returns is not None:
            return record.returns[0] if record.returns else NIL
        if isinstance(func, TypeTag) and lua_type(func) is not None:
            return ErrorValue(f"attempt to call a {func.name} value")
        if is_known(func) and not isinstance(func, (LuaFunction, LuaTable)):
            return ErrorValue(f"attempt to call a {lua_type(func)} value")
        return UNIVERSAL

    # ---- literals and names ----

    def _infer_Number(self, node):
        self._set_value(node, node.n)

    def _infer_String(self, node):
        self._set_value(node, string_value(node))

    def _infer_Nil(self, node):
        self._set_value(node, NIL)

    def _infer_TrueExpr(self, node):
        self._set_value(node, True)

    def _infer_FalseExpr(self, node):
        self._set_value(node, False)

    def _infer_Varargs(self, node):
        self._set_value(node, UNIVERSAL)

    def _infer_Name(self, node):
        info = self.annotations.get(node)
        if info is None or info.is_field or info.pinned:
            return
        if info.binding is not None:
            if info.binding is node:
                return
            definition = self.annotations.info(info.binding)
            if definition.is_mutated and not definition.pinned:
                info.value = UNIVERSAL
            else:
                info.value = definition.value
        elif info.is_global:
            info.value = self._global_value(node.id)

    # ---- expressions ----

    def _infer_Index(self, node):
        container = self._value(node.value)
        self._set_value(node, self._index(container, self._field_key(node)))

    def _infer_Call(self, node):
        func = self._value(node.func)
        args = [self._value(arg) for arg in node.args]
        self._set_value(node, self._call(node, func, args))

    def _infer_Invoke(self, node):
        receiver = self._value(node.source)
        method = self._index(receiver, node.func.id)
        self.annotations.info(node).callee_value = method
        args = [receiver] + [self._value(arg) for arg in node.args]
        self._set_value(node, self._call(node, method, args))

    def _infer_Table(self, node):
        info = self.annotations.info(node)
        table = info.value if isinstance(info.value, LuaTable) else LuaTable()
        position = 1
        for item in node.fields:
            if is_positional_field(item):
                key = position
                position += 1
            elif isinstance(item.key, Name) and not getattr(item, 'between_brackets', False):
                key = item.key.id
            else:
                key = self._value(item.key)
            # NaN never equals itself and cannot be a key
            if is_known(key) and key is not NIL and key == key:
                table.rawset(key, self._value(item.value))
        info.value = table

    def _infer_binary(self, node, opid):
        try:
            value = binop(opid, self._value(node.left), self._value(node.right))
        except InferenceError as e:
            value = ErrorValue(str(e))
        self._set_value(node, value)

    def _infer_unary(self, node, opid):
        try:
            value = unop(opid, self._value(node.operand))
        except InferenceError as e:
            value = ErrorValue(str(e))
        self._set_value(node, value)

    # ---- functions ----

    def _function_name(self, node) -> Optional[str]:
        kind = kind_of(node)
        if kind == 'LocalFunction':
            return node.name.id
        if kind == 'Function':
            return self.source_map.text(node.name) or getattr(node.name, 'id', None)
        if kind == 'Method':
            owner = self.source_map.text(node.source) or getattr(node.source, 'id', '?')
            return f"{owner}:{node.name.id}"
        return None

    def _infer_function(self, node) -> LuaFunction:
        info = self.annotations.info(node)
        fn = info.value
        if not isinstance(fn, LuaFunction):
            args = node.args or []
            params = [arg.id for arg in args if isinstance(arg, Name)]
            if kind_of(node) == 'Method':
                params.insert(0, 'self')
            fn = self.debug.register(
                node,
                name=self._function_name(node),
                span=self.source_map.span(node),
                position=self.source_map.position(node),
                param_names=params,
                is_vararg=any(kind_of(arg) == 'Varargs' for arg in args),
                tokens=self.inspection.tokens,
            )
            info.value = fn
        self.debug.record(fn).returns = self._function_returns(node.body)
        self._init_params(node)
        return fn

    def _init_params(self, node):
        params = [arg for arg in node.args or [] if isinstance(arg, Name)]
        implicit_self = self.inspection.scope.implicit_self.get(id(node))
        if implicit_self is not None:
            params.insert(0, implicit_self)
        for param in params:
            self._set_value(param, UNIVERSAL)

    def _infer_AnonymousFunction(self, node):
        self._infer_function(node)

    def _infer_LocalFunction(self, node):
        self._set_value(node.name, self._infer_function(node))

    def _infer_Function(self, node):
        self._assign(node.name, self._infer_function(node))

    def _infer_Method(self, node):
        fn = self._infer_function(node)
        self._new_index(self._value(node.source), node.name.id, fn)
        self._set_value(node.name, fn)

    def _function_returns(self, body) -> List[Any]:
        """Join of the values returned at each position."""
        returns: List[Node] = []
        falls_through = not self._scan(body.body, returns)
        rows = [[self._value(value) for value in ret.values or []] for ret in returns]
        if falls_through:
            rows.append([])
        result = []
        position = 0
        while True:
            combined = None
            for row in rows:
                value = row[position] if position < len(row) else NONE
                if value is None:
                    value = UNIVERSAL
                combined = value if combined is None else superset(combined, value)
            if combined is None or combined is NONE:
                break
            result.append(combined)
            position += 1
        return result

    def _scan(self, statements, returns: List[Node]) -> bool:
        """Collect reachable returns; True when the statements always return."""
        always = False
        for statement in statements:
            if always:
                if self.options.detect_dead_code:
                    self._mark_dead(statement)
                continue
            always = self._scan_statement(statement, returns)
        return always

    def _scan_statement(self, statement, returns: List[Node]) -> bool:
        kind = kind_of(statement)
        if kind == 'Return':
            returns.append(statement)
            return True
        if kind in ('If', 'ElseIf'):
            body_returns = self._scan(statement.body.body, returns)
            orelse = statement.orelse
            if orelse is None:
                return False
            if kind_of(orelse) == 'ElseIf':
                return self._scan_statement(orelse, returns) and body_returns
            return self._scan(orelse.body, returns) and body_returns
        if kind == 'Do':
            return self._scan(statement.body.body, returns)
        if kind in ('While', 'Repeat', 'Fornum', 'Forin'):
            self._scan(statement.body.body, returns)
        return False

    # ---- control flow ----

    def _mark_dead(self, node):
        for child in walk(node):
            self.annotations.info(child).is_dead = True

    def _infer_If(self, node):
        if not self.options.detect_dead_code:
            return
        truth = boolean_cast(self._value(node.test))
        if truth is False:
            self._mark_dead(node.body)
        elif truth is True and node.orelse is not None:
            self._mark_dead(node.orelse)

    _infer_ElseIf = _infer_If

    def _infer_While(self, node):
        if self.options.detect_dead_code and boolean_cast(self._value(node.test)) is False:
            self._mark_dead(node.body)

    # ---- statements ----

    def _infer_LocalAssign(self, node):
        values = self._expand(node.values or [], len(node.targets))
        for target, value in zip(node.targets, values):
            self._set_value(target, value)

    def _infer_Assign(self, node):
        values = self._expand(node.values or [], len(node.targets))
        for target, value in zip(node.targets, values):
            self._assign(target, value)

    def _infer_Fornum(self, node):
        self._set_value(node.target, NUMBER)

    def _infer_Forin(self, node):
        for target in node.targets:
            self._set_value(target, UNIVERSAL)
