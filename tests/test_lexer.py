from lualens.lexer import LineIndex, remove_shebang, tokenize


class TestTokenize:
    def test_kinds_and_positions(self):
        tokens = tokenize("local x = 1 -- note\nprint(x)")
        assert [t.kind for t in tokens] == [
            'keyword', 'name', 'op', 'number', 'comment', 'name', 'op', 'name', 'op',
        ]
        assert (tokens[1].line, tokens[1].column) == (1, 7)
        assert (tokens[5].text, tokens[5].line, tokens[5].column) == ('print', 2, 1)

    def test_long_comment_spans_lines(self):
        tokens = tokenize("--[[ one\ntwo ]] x")
        assert tokens[0].kind == 'comment'
        assert tokens[0].text == "--[[ one\ntwo ]]"
        assert (tokens[1].text, tokens[1].line) == ('x', 2)

    def test_long_string_with_level(self):
        tokens = tokenize("s = [==[a]]b]==]")
        assert tokens[2].kind == 'string'
        assert tokens[2].text == "[==[a]]b]==]"

    def test_unterminated_string_does_not_raise(self):
        tokens = tokenize('x = "abc')
        assert tokens[-1].kind == 'string'

    def test_multi_char_operators(self):
        tokens = tokenize("a .. b ... c == d ~= e // f")
        ops = [t.text for t in tokens if t.kind == 'op']
        assert ops == ['..', '...', '==', '~=', '//']

    def test_indexes_are_sequential(self):
        tokens = tokenize("a = b + c")
        assert [t.index for t in tokens] == list(range(len(tokens)))


class TestCommentBody:
    def test_line_comment(self):
        (token,) = tokenize('--! pin("x", number)')
        assert token.comment_body == '! pin("x", number)'

    def test_long_comment(self):
        (token,) = tokenize('--[[! pin("x", nil) ]]')
        assert token.comment_body == '! pin("x", nil) '

    def test_not_a_comment(self):
        (token,) = tokenize('x')
        assert token.comment_body == ''


class TestLineIndex:
    def test_line_col_and_back(self):
        index = LineIndex("ab\ncd\n")
        assert index.line_col(0) == (1, 1)
        assert index.line_col(4) == (2, 2)
        assert index.offset(2, 2) == 4

    def test_offset_is_clamped(self):
        index = LineIndex("ab")
        assert index.offset(9, 9) == 2


def test_remove_shebang_keeps_length():
    source = "#!/usr/bin/lua\nprint(1)"
    cleaned = remove_shebang(source)
    assert len(cleaned) == len(source)
    assert cleaned.startswith('--')
    assert tokenize(cleaned)[0].kind == 'comment'
