import pytest

from conftest import messages, names
from lualens.diagnostics import describe_node, list_warnings
from lualens.directives import Directive, parse_directives
from lualens.errors import DirectiveError
from lualens.values import NIL, NUMBER, STRING, ErrorValue


class TestParse:
    def test_statements_and_values(self):
        directives = parse_directives('pin("a", 1); apply_value(\'b\', error("boom"))')
        assert directives == [
            Directive('pin', 'a', 1),
            Directive('apply_value', 'b', ErrorValue('boom')),
        ]

    def test_named_values(self):
        values = [d.value for d in parse_directives('pin("a", nil); pin("b", string); pin("c", true)')]
        assert values == [NIL, STRING, True]

    def test_string_escapes(self):
        (directive,) = parse_directives(r'pin("a\"b", "x\ny")')
        assert directive.pattern == 'a"b'
        assert directive.value == "x\ny"

    def test_empty_and_trailing_separators(self):
        assert parse_directives('') == []
        assert len(parse_directives('pin("a", 1);;')) == 1

    @pytest.mark.parametrize('text, error', [
        ('frob("a", 1)', "unknown directive 'frob'"),
        ('pin("a" 1)', "expected ','"),
        ('pin("a", number', "unexpected end of directive"),
        ('pin(a, 1)', "expects a string pattern"),
        ('pin("a", maybe)', "unknown value 'maybe'"),
        ('pin("a", 1) pin("b", 2)', "expected ';'"),
        ('pin("a", #)', "unexpected character"),
    ])
    def test_grammar_errors(self, text, error):
        with pytest.raises(DirectiveError, match=error):
            parse_directives(text)


class TestEvaluate:
    def test_pin_overrides_inference(self, inspect):
        inspection = inspect("""
            local function f(p)
              --! pin("^p$", number)
              return p
            end
        """)
        p_def, p_use = names(inspection, 'p')
        for node in (p_def, p_use):
            info = inspection.annotations.get(node)
            assert info.pinned
            assert info.value is NUMBER
        (f,) = names(inspection, 'f')
        assert "signature: function(p) returns number" in describe_node(inspection, f)

    def test_directive_scope_is_the_enclosing_node(self, inspect):
        inspection = inspect("""
            local function f(p)
              --! pin("p", number)
              return p
            end
            local p = 1
        """)
        outer = names(inspection, 'p')[2]
        assert not inspection.annotations.get(outer).pinned
        assert inspection.annotations.value(outer) == 1

    def test_conflicting_inference_is_reported(self, inspect):
        findings = list_warnings(inspect("""
            --! pin("^x$", string)
            local x = 1
            print(x)
        """))
        assert messages(findings, 'value-conflict') == ["value 1 conflicts with pinned string"]

    def test_invalid_directive_is_a_warning(self, inspect):
        inspection = inspect('--! frobnicate("x", 1)\nlocal y = 2\nprint(y)')
        findings = list_warnings(inspection)
        (warning,) = [f for f in findings if f.pattern_name == 'directive']
        assert warning.message == "invalid directive: unknown directive 'frobnicate'"
        assert warning.line_num == 1

    def test_bad_pattern_is_a_warning(self, inspect):
        findings = list_warnings(inspect('--! pin("(", number)\nprint(1)'))
        assert messages(findings, 'directive')[0].startswith("invalid directive: bad pattern")

    def test_other_markers_are_plain_comments(self, inspect):
        inspection = inspect('--@ pin("v", number)\nlocal v = "s"\nprint(v)')
        assert inspection.annotations.value(names(inspection, 'v')[0]) == "s"
        custom = inspect('--@ pin("v", number)\nlocal v = "s"\nprint(v)', directive_marker='@')
        assert custom.annotations.value(names(custom, 'v')[0]) is NUMBER
