from luaparser.astnodes import String

from conftest import names
from lualens.resolver import escape_key, unescape_key


class TestBindings:
    def test_local_use_binds_to_definition(self, inspect):
        inspection = inspect("""
            local x = 1
            print(x)
        """)
        definition, use = names(inspection, 'x')
        info = inspection.annotations.get(use)
        assert info.binding is definition
        assert inspection.annotations.get(definition).is_used

    def test_unbound_name_is_global(self, inspect):
        inspection = inspect("y = 1\nprint(y)")
        (target, use) = names(inspection, 'y')
        assert inspection.annotations.get(use).is_global
        assert inspection.scope.globals['y'].set
        assert inspection.scope.globals['y'].used
        assert inspection.scope.globals['print'].used
        assert not inspection.scope.globals['print'].set

    def test_local_is_not_visible_in_its_own_initializer(self, inspect):
        inspection = inspect("local x = x")
        definition, use = names(inspection, 'x')
        assert inspection.annotations.get(use).is_global

    def test_local_function_sees_itself(self, inspect):
        inspection = inspect("""
            local function f(n)
              return f(n)
            end
        """)
        definition, recursive = names(inspection, 'f')
        assert inspection.annotations.get(recursive).binding is definition

    def test_parameters_and_function_level(self, inspect):
        inspection = inspect("""
            local up = 1
            local function f(p)
              return p + up
            end
        """)
        p_def, p_use = names(inspection, 'p')
        up_def, up_use = names(inspection, 'up')
        assert inspection.annotations.get(p_def).is_parameter
        assert inspection.annotations.get(up_use).function_level > inspection.annotations.get(up_def).function_level

    def test_mutation(self, inspect):
        inspection = inspect("local n = 0\nn = n + 1")
        definition = names(inspection, 'n')[0]
        assert inspection.annotations.get(definition).is_mutated

    def test_masking(self, inspect):
        inspection = inspect("""
            local a = 1
            do
              local a = 2
              print(a)
            end
            print(a)
        """)
        outer, inner, inner_use, outer_use = names(inspection, 'a')
        assert inspection.annotations.get(inner).masks is outer
        assert inspection.annotations.get(outer).masked_by is inner
        assert inspection.annotations.get(inner_use).binding is inner
        assert inspection.annotations.get(outer_use).binding is outer

    def test_repeat_until_sees_body_locals(self, inspect):
        inspection = inspect("""
            repeat
              local done = true
            until done
        """)
        definition, use = names(inspection, 'done')
        assert inspection.annotations.get(use).binding is definition

    def test_for_variable_scope(self, inspect):
        inspection = inspect("""
            for i = 1, 3 do print(i) end
            print(i)
        """)
        definition, inside, outside = names(inspection, 'i')
        assert inspection.annotations.get(inside).binding is definition
        assert inspection.annotations.get(outside).is_global

    def test_implicit_self(self, inspect):
        inspection = inspect("""
            local obj = {}
            function obj:get()
              return self
            end
        """)
        (use,) = names(inspection, 'self')
        method = inspection.chunk.body.body[1]
        assert inspection.annotations.get(use).binding is inspection.scope.implicit_self[id(method)]

    def test_variables_in_scope(self, inspect):
        inspection = inspect("""
            local a = 1
            do
              local b = 2
            end
        """)
        inside = inspection.source.index('local b') + len('local b = 2')
        after = len(inspection.source)
        assert set(inspection.scope.variables_in_scope(inside)) == {'a', 'b'}
        assert set(inspection.scope.variables_in_scope(after)) == {'a'}


class TestFields:
    def test_dot_and_method_fields(self, inspect):
        inspection = inspect("""
            local t = {}
            t.a = 1
            t:m()
        """)
        for name in ('a', 'm'):
            (node,) = names(inspection, name)
            info = inspection.annotations.get(node)
            assert info.is_field
            assert info.previous is names(inspection, 't')[1 if name == 'a' else 2]

    def test_string_key_is_a_field(self, inspect):
        inspection = inspect('local t = {}\nprint(t["k"])')
        key = next(n for n in inspection.source_map.nodes if isinstance(n, String))
        assert inspection.annotations.get(key).is_field


class TestIdentifiers:
    def test_local_uses_share_an_id(self, inspect):
        inspection = inspect("local v = 1\nprint(v, v)")
        ids = {inspection.annotations.get(n).structural_id for n in names(inspection, 'v')}
        assert len(ids) == 1

    def test_distinct_locals_differ(self, inspect):
        inspection = inspect("local v = 1\ndo local v = 2 print(v) end")
        outer, inner, use = names(inspection, 'v')
        annotations = inspection.annotations
        assert annotations.get(outer).structural_id != annotations.get(inner).structural_id
        assert annotations.get(use).structural_id == annotations.get(inner).structural_id

    def test_resolved_names(self, inspect):
        inspection = inspect('local f = string.format\nlocal k = T["a.b"]')
        (fmt,) = names(inspection, 'format')
        assert inspection.annotations.get(fmt).resolved_name == 'string.format'
        key = next(n for n in inspection.source_map.nodes if isinstance(n, String))
        assert inspection.annotations.get(key).resolved_name == 'T.a%db'

    def test_locals_have_no_resolved_name(self, inspect):
        inspection = inspect("local t = {}\nprint(t.x)")
        (x,) = names(inspection, 'x')
        assert inspection.annotations.get(x).resolved_name is None

    def test_same_field_of_same_global_shares_id(self, inspect):
        inspection = inspect("print(math.pi, math.pi)")
        first, second = names(inspection, 'pi')
        annotations = inspection.annotations
        assert annotations.get(first).structural_id == annotations.get(second).structural_id


def test_key_escaping():
    assert escape_key('a.b%c') == 'a%db%%c'
    assert unescape_key(escape_key('a.b%c')) == 'a.b%c'
