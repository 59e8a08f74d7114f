from conftest import names
from lualens.interpreter import function_record
from lualens.tree import kind_of
from lualens.values import (
    BOOLEAN, NIL, NUMBER, STRING, UNIVERSAL, ErrorValue, LuaFunction, LuaTable, is_unknown, lua_type,
)


def value_of(inspection, name, occurrence=0):
    return inspection.annotations.value(names(inspection, name)[occurrence])


class TestConstants:
    def test_literals_and_arithmetic(self, inspect):
        inspection = inspect('local a = 1 + 2 * 3\nlocal s = "x" .. 1')
        assert value_of(inspection, 'a') == 7
        assert value_of(inspection, 's') == "x1"

    def test_local_use_sees_definition_value(self, inspect):
        inspection = inspect("local a = 10\nlocal b = a / 4")
        assert value_of(inspection, 'a', 1) == 10
        assert value_of(inspection, 'b') == 2.5

    def test_mutated_local_is_universal_at_uses(self, inspect):
        inspection = inspect("local n = 1\nn = 2\nprint(n)")
        assert value_of(inspection, 'n', 2) is UNIVERSAL

    def test_operator_error_becomes_error_value(self, inspect):
        inspection = inspect("local t = {}\nlocal bad = t + 1")
        bad = value_of(inspection, 'bad')
        assert isinstance(bad, ErrorValue)
        assert 'arithmetic on a table value' in bad.message


class TestGlobalsAndRuntime:
    def test_safe_builtin_is_evaluated(self, inspect):
        inspection = inspect("local m = math.max(1, 5, 3)")
        assert value_of(inspection, 'm') == 5

    def test_method_on_string_value(self, inspect):
        inspection = inspect('local s = "abc"\nlocal u = s:upper()')
        assert value_of(inspection, 'u') == "ABC"

    def test_oversized_format_is_not_built(self, inspect):
        inspection = inspect('local s = string.format("%999999999d", 1)')
        assert value_of(inspection, 's') is STRING

    def test_unsafe_builtin_returns_declared_type(self, inspect):
        inspection = inspect("local r = math.random()")
        assert value_of(inspection, 'r') is NUMBER

    def test_assigned_global_value(self, inspect):
        inspection = inspect("limit = 3\nlocal twice = limit * 2")
        assert inspection.value_globals['limit'] == 3
        assert value_of(inspection, 'twice') == 6

    def test_calling_a_number_is_an_error(self, inspect):
        inspection = inspect("local n = 1\nlocal r = n()")
        assert value_of(inspection, 'r') == ErrorValue("attempt to call a number value")


class TestTables:
    def test_constructor_fields(self, inspect):
        inspection = inspect("local t = {x = 1, 2}\nlocal a = t.x\nlocal b = t[1]")
        assert isinstance(value_of(inspection, 't'), LuaTable)
        assert value_of(inspection, 'a') == 1
        assert value_of(inspection, 'b') == 2

    def test_field_assignment(self, inspect):
        inspection = inspect("local t = {}\nt.a = 1\nlocal v = t.a")
        assert value_of(inspection, 'v') == 1

    def test_conflicting_writes_widen(self, inspect):
        inspection = inspect("local t = {a = 1}\nt.a = 2\nlocal v = t.a")
        assert value_of(inspection, 'v') is UNIVERSAL

    def test_indexing_nil_is_an_error(self, inspect):
        inspection = inspect("local t = {}\nlocal v = t.a.b")
        assert isinstance(value_of(inspection, 'v'), ErrorValue)


class TestAssignment:
    def test_missing_values_are_nil(self, inspect):
        inspection = inspect("local a, b = 1")
        assert value_of(inspection, 'b') is NIL

    def test_missing_values_after_call_are_universal(self, inspect):
        inspection = inspect("local c, d = io.read()")
        assert value_of(inspection, 'd') is UNIVERSAL


class TestFunctions:
    def test_function_value_and_record(self, inspect):
        inspection = inspect("""
            local function add(a, b, ...)
              return a + b
            end
        """)
        fn = value_of(inspection, 'add')
        assert isinstance(fn, LuaFunction)
        record = function_record(fn)
        assert record.param_names == ['a', 'b']
        assert record.param_range == (2, None)
        assert record.signature == 'function(a, b, ...)'

    def test_return_values_are_joined(self, inspect):
        inspection = inspect("""
            local function pick(flag)
              if flag then return 1 end
              return 2
            end
            local r = pick(true)
        """)
        assert function_record(value_of(inspection, 'pick')).returns == [NUMBER]
        assert value_of(inspection, 'r') is NUMBER

    def test_constant_return(self, inspect):
        inspection = inspect("""
            local function answer() return 42 end
            local r = answer()
        """)
        assert value_of(inspection, 'r') == 42

    def test_falling_through_widens(self, inspect):
        inspection = inspect("""
            local function maybe(flag)
              if flag then return 1 end
            end
        """)
        assert function_record(value_of(inspection, 'maybe')).returns == [UNIVERSAL]

    def test_no_return_means_no_values(self, inspect):
        inspection = inspect("local function noop() end\nlocal r = noop()")
        assert function_record(value_of(inspection, 'noop')).returns == []
        assert value_of(inspection, 'r') is NIL

    def test_parameters_are_universal(self, inspect):
        inspection = inspect("local function f(p) return p end")
        assert value_of(inspection, 'p') is UNIVERSAL


class TestPasses:
    SOURCE = """
        local v = f()
        function f() return 42 end
    """

    def test_second_pass_sees_later_global_function(self, inspect):
        inspection = inspect(self.SOURCE)
        assert inspection.passes_run == 2
        assert value_of(inspection, 'v') == 42

    def test_single_pass_does_not(self, inspect):
        inspection = inspect(self.SOURCE, passes=1)
        assert isinstance(value_of(inspection, 'v'), ErrorValue)

    def test_fixpoint_runs_until_stable(self, inspect):
        source = """
            local x = a()
            function a() return b() end
            function b() return 1 end
        """
        assert value_of(inspect(source), 'x') != 1
        inspection = inspect(source, fixpoint=True)
        assert value_of(inspection, 'x') == 1
        assert 2 < inspection.passes_run < inspection.options.max_passes


class TestExports:
    def test_returned_table(self, inspect):
        exports = inspect("return {version = 1}").exports
        assert isinstance(exports, LuaTable)
        assert exports.get('version') == 1

    def test_no_return_is_universal(self, inspect):
        assert inspect("local x = 1").exports is UNIVERSAL


def _nodes_of_kind(inspection, kind):
    return [n for n in inspection.source_map.nodes if kind_of(n) == kind]


class TestConvergence:
    SOURCE = """
        function f() return g() end
        function g() return 1 end
    """

    def test_forward_call_unknown_after_one_pass(self, inspect):
        inspection = inspect(self.SOURCE, passes=1)
        (call,) = _nodes_of_kind(inspection, 'Call')
        assert is_unknown(inspection.annotations.value(call))

    def test_forward_call_is_a_number_after_two(self, inspect):
        inspection = inspect(self.SOURCE)
        (call,) = _nodes_of_kind(inspection, 'Call')
        assert lua_type(inspection.annotations.value(call)) == 'number'


class TestErrorContainment:
    def test_concrete_operands(self, inspect):
        inspection = inspect('local x = "a" / true + 1')
        (division,) = _nodes_of_kind(inspection, 'FloatDivOp')
        (addition,) = _nodes_of_kind(inspection, 'AddOp')
        assert isinstance(inspection.annotations.value(division), ErrorValue)
        assert inspection.annotations.value(addition) is UNIVERSAL

    def test_typed_operands(self, inspect):
        inspection = inspect("""
            local s = tostring(io.read())
            local b = io.read() == 1
            local x = s / b + 1
        """)
        assert value_of(inspection, 's') is STRING
        assert value_of(inspection, 'b') is BOOLEAN
        (division,) = _nodes_of_kind(inspection, 'FloatDivOp')
        assert inspection.annotations.value(division) == ErrorValue(
            "attempt to perform arithmetic on a boolean value")
        assert value_of(inspection, 'x') is UNIVERSAL
