import pytest

from lualens.annotations import AnnotationTable
from lualens.errors import InferenceError
from lualens.operators import binop, unop
from lualens.runtime import RUNTIME, lookup_path, tostring
from lualens.values import (
    BOOLEAN, NIL, NONE, NUMBER, STRING, UNIVERSAL, ErrorValue, LuaTable, boolean_cast,
    describe_value, is_known, lua_type, meet, str_to_number, superset, value_fingerprint,
)


class TestLattice:
    def test_superset_of_equal_values(self):
        assert superset(1, 1) == 1

    def test_superset_collapses_to_type(self):
        assert superset(1, 2.5) is NUMBER
        assert superset("a", STRING) is STRING

    def test_superset_of_mixed_types(self):
        assert superset(1, "a") is UNIVERSAL
        assert superset(NIL, 1) is UNIVERSAL

    def test_superset_with_none(self):
        assert superset(NONE, 1) is UNIVERSAL

    def test_meet_narrows(self):
        assert meet(NUMBER, 3) == 3
        assert meet(UNIVERSAL, "x") == "x"

    def test_meet_conflict_is_error(self):
        assert isinstance(meet(1, "a"), ErrorValue)

    def test_known(self):
        assert is_known(1)
        assert is_known(NIL)
        assert not is_known(NUMBER)
        assert not is_known(None)
        assert not is_known(ErrorValue("boom"))

    def test_boolean_cast(self):
        assert boolean_cast(NIL) is False
        assert boolean_cast(0) is True
        assert boolean_cast(STRING) is True
        assert boolean_cast(BOOLEAN) is None
        assert boolean_cast(UNIVERSAL) is None

    def test_lua_type(self):
        assert lua_type(LuaTable()) == 'table'
        assert lua_type(RUNTIME.get('print')) == 'function'
        assert lua_type(NUMBER) == 'number'
        assert lua_type(UNIVERSAL) is None


class TestLuaTable:
    def test_integer_float_keys_are_the_same(self):
        t = LuaTable()
        t.rawset(1.0, 'a')
        assert t.get(1) == 'a'

    def test_boolean_is_not_one(self):
        t = LuaTable({True: 'yes'})
        assert t.get(1) is NIL

    def test_nil_assignment_removes(self):
        t = LuaTable({'k': 1})
        t.rawset('k', NIL)
        assert 'k' not in t
        assert len(t) == 0

    def test_nil_key_raises(self):
        with pytest.raises(InferenceError):
            LuaTable().rawset(NIL, 1)

    def test_border(self):
        t = LuaTable({1: 'a', 2: 'b', 4: 'd'})
        assert t.border() == 2

    def test_readonly_ignores_writes(self):
        t = LuaTable({'a': 1}, readonly=True)
        t.rawset('a', 2)
        assert t.get('a') == 1


class TestOperators:
    def test_concrete_arithmetic(self):
        assert binop('add', 1, 2) == 3
        assert binop('div', 1, 2) == 0.5
        assert binop('idiv', 7, 2) == 3
        assert binop('mod', -1, 3) == 2

    def test_string_coercion(self):
        assert binop('add', "10", 1) == 11
        assert binop('concat', "a", 1) == "a1"

    def test_comparisons(self):
        assert binop('lt', 1, 2) is True
        assert binop('eq', 1, "1") is False

    def test_logical_operators_return_operands(self):
        assert binop('and', NIL, 1) is NIL
        assert binop('or', False, "x") == "x"

    def test_abstract_operands(self):
        assert binop('add', NUMBER, 1) is NUMBER
        assert binop('concat', STRING, 1) is STRING
        assert binop('eq', UNIVERSAL, 1) is BOOLEAN
        assert binop('add', UNIVERSAL, 1) is UNIVERSAL

    def test_type_errors(self):
        with pytest.raises(InferenceError, match="arithmetic on a nil value"):
            binop('add', NIL, 1)
        with pytest.raises(InferenceError, match="arithmetic on a boolean value"):
            binop('add', NUMBER, True)

    def test_unary(self):
        assert unop('len', "abc") == 3
        assert unop('unm', 2) == -2
        assert unop('not', NIL) is True
        assert unop('len', STRING) is NUMBER
        assert unop('not', UNIVERSAL) is BOOLEAN


class TestRuntime:
    def test_lookup_path(self):
        assert lookup_path(['string', 'format']) is RUNTIME.get('string').get('format')
        assert lookup_path(['string', 'nope']) is None
        assert lookup_path(['nope', 'x']) is None

    def test_safe_builtin(self):
        fmt = lookup_path(['string', 'format'])
        assert fmt.safe
        assert fmt.impl("%d-%s", 3, "x") == "3-x"

    def test_format_with_huge_width_is_a_string(self):
        fmt = lookup_path(['string', 'format'])
        assert fmt.impl("%999999999d", 1) is STRING
        assert fmt.impl("%.999999999f", 1) is STRING
        assert fmt.impl("%5d", 1) == "    1"

    def test_unsafe_builtin_has_no_impl(self):
        assert not RUNTIME.get('print').safe

    def test_tostring(self):
        assert tostring(1.0) == "1.0"
        assert tostring(NIL) == "nil"


def test_str_to_number():
    assert str_to_number("0x10") == 16
    assert str_to_number(" 1e2 ") == 100.0
    assert str_to_number("abc") is None


def test_describe_value():
    assert describe_value("hi") == '"hi"'
    assert describe_value(NIL) == 'nil'
    assert describe_value(NUMBER) == 'number'
    assert describe_value(LuaTable({'a': 1})) == 'table: {a=1}'


class TestFingerprint:
    def annotated(self, value):
        annotations = AnnotationTable()
        annotations.info(object()).value = value
        return annotations

    def test_sees_entries_past_the_description_limit(self):
        table = LuaTable({i: i for i in range(1, 10)})
        annotations = self.annotated(table)
        before = annotations.fingerprint()
        table.rawset(9, 'changed')
        assert annotations.fingerprint() != before

    def test_sees_nested_tables(self):
        inner = LuaTable({'x': 1})
        annotations = self.annotated(LuaTable({'inner': inner}))
        before = annotations.fingerprint()
        inner.rawset('x', 2)
        assert annotations.fingerprint() != before

    def test_cycles_terminate(self):
        table = LuaTable()
        table.rawset('self', table)
        assert value_fingerprint(table) == ('table', ((('string', 'self'), 'table: <cycle>'),))
