from conftest import names
from lualens import LuaInspector, analyze_file
from lualens.inspector import arity_note, call_arg_range
from lualens.tree import kind_of
from lualens.values import describe_value

SOURCE = """
local M = {}
local count = 0

local function add(a, b)
  return a + b
end

function M.total(list)
  local sum = 0
  for _, v in ipairs(list) do
    sum = add(sum, v)
  end
  count = count + 1
  return sum
end

M.name = string.upper("lens")
return M
"""


def snapshot(inspection):
    annotations = inspection.annotations
    rows = []
    for node in inspection.source_map.nodes:
        info = annotations.get(node)
        if info is None:
            continue
        rows.append((kind_of(node), describe_value(info.value), info.structural_id, info.is_used,
                     info.note))
    return rows


class TestReinspect:
    def test_reinspect_gives_the_same_annotations(self):
        inspector = LuaInspector()
        inspection = inspector.inspect_source(SOURCE)
        before = snapshot(inspection)
        inspector.reinspect(inspection)
        assert snapshot(inspection) == before

    def test_uninspect_clears_everything(self):
        inspector = LuaInspector()
        inspection = inspector.uninspect(inspector.inspect_source(SOURCE))
        assert len(inspection.annotations) == 0
        assert len(inspection.debug) == 0
        assert inspection.value_globals == {}
        assert inspection.keyword_ids == {}
        assert inspection.passes_run == 0

    def test_exports(self):
        exports = LuaInspector().inspect_source(SOURCE).exports
        assert exports.get('name') == "LENS"
        assert describe_value(exports.get('total')) == "function: M.total"


class TestArity:
    def test_call_arg_range(self, inspect):
        inspection = inspect("f(1, 2)\nf(1, g())\nt:m(1)\nf()")
        calls = [n for n in inspection.source_map.nodes if kind_of(n) in ('Call', 'Invoke')
                 and kind_of(inspection.source_map.parent(n)) == 'Block']
        assert [call_arg_range(call) for call in calls] == [(2, 2), (1, None), (2, 2), (0, 0)]

    def test_arity_note_ignores_unknown_callees(self, inspect):
        inspection = inspect("f(1, 2)")
        call = inspection.chunk.body.body[0]
        assert arity_note(None, call) is None


class TestReporting:
    def test_listener_receives_messages(self):
        received = []
        inspector = LuaInspector(report=received.append)
        inspection = inspector.inspect_source("--! nonsense\nprint(1)")
        assert received == ["warning: invalid directive: unknown directive 'nonsense'"]
        assert inspection.messages[0].code == 'directive'

    def test_shebang_is_ignored(self, inspect):
        inspection = inspect("#!/usr/bin/env lua\nlocal x = 1\nprint(x)")
        (definition, use) = names(inspection, 'x')
        assert inspection.annotations.get(use).binding is definition


class TestAnalyzeFile:
    def test_findings_for_a_file(self, tmp_path):
        path = tmp_path / "main.lua"
        path.write_text("local unused = 1\n")
        findings = analyze_file(path)
        assert [(f.pattern_name, f.line_num, f.column) for f in findings] == [('unused-local', 1, 7)]
        assert findings[0].source_line == "local unused = 1"

    def test_syntax_error_becomes_a_finding(self, tmp_path):
        path = tmp_path / "broken.lua"
        path.write_text("local = = 1\n")
        (finding,) = analyze_file(path)
        assert finding.pattern_name == 'syntax-error'
        assert finding.severity == 'error'
        assert finding.message

    def test_file_name_is_used_in_locations(self, tmp_path):
        path = tmp_path / "lib.lua"
        path.write_text("local function f() end\nf()")
        inspection = LuaInspector().inspect_file(path)
        assert inspection.name == str(path)
