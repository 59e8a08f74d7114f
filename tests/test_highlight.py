from lualens import LuaInspector
from lualens.highlight import SELECTED, highlight_request, highlight_tokens


def kinds(inspection, **cursor):
    return {(line, first): kind for kind, line, first, last in highlight_tokens(inspection, **cursor)}


def test_locals_and_globals(inspect):
    inspection = inspect("local a = 1\nprint(a, b)")
    assert list(highlight_tokens(inspection)) == [
        ('luaInspectLocal', 1, 7, 7),
        ('luaInspectGlobalDefined', 2, 1, 5),
        ('luaInspectLocal', 2, 7, 7),
        ('luaInspectGlobalUndefined', 2, 10, 10),
    ]


def test_local_variants(inspect):
    inspection = inspect("""
        local unused = 1
        local m = 1
        m = 2
        local function f(p) return p + m end
    """)
    found = kinds(inspection)
    assert found[(1, 7)] == 'luaInspectLocalUnused'
    assert found[(2, 7)] == 'luaInspectLocalMutated'
    assert found[(3, 1)] == 'luaInspectLocalMutated'
    assert found[(4, 16)] == 'luaInspectLocalUnused'
    assert found[(4, 18)] == 'luaInspectParam'
    assert found[(4, 32)] == 'luaInspectUpValue'


def test_fields(inspect):
    inspection = inspect("local t = {}\nprint(t.x, string.len)")
    found = kinds(inspection)
    assert found[(2, 9)] == 'luaInspectFieldUndefined'
    assert found[(2, 19)] == 'luaInspectFieldDefined'


def test_selected_variable(inspect):
    inspection = inspect("local a = 1\nlocal b = a\nprint(a, b)")
    found = kinds(inspection, line=3, column=7)
    assert found[(1, 7)] == SELECTED
    assert found[(2, 11)] == SELECTED
    assert found[(3, 7)] == SELECTED
    assert found[(2, 7)] == 'luaInspectLocal'


def test_request_round_trip():
    lines = highlight_request("2\n7\nlocal a = 1\nprint(a)", LuaInspector())
    assert lines == [
        f"{SELECTED}\t1\t7\t7",
        "luaInspectGlobalDefined\t2\t1\t5",
        f"{SELECTED}\t2\t7\t7",
    ]


def test_request_without_cursor():
    lines = highlight_request("\n\nprint(x)", LuaInspector())
    assert lines == ["luaInspectGlobalDefined\t1\t1\t5", "luaInspectGlobalUndefined\t1\t7\t7"]


def test_request_with_syntax_error():
    assert highlight_request("1\n1\nlocal = =", LuaInspector()) == []
