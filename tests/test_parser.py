"""Tests for error-tolerant parsing and cursor-to-node lookup."""

from __future__ import annotations

from conch.parser import PLACEHOLDER, NodeKind, parse, parse_and_locate


# --- parse ---


def test_parse_keeps_every_character():
    source = "foo(x, 'ab\n  ).\n"
    assert parse(source).module.get_code() == source


def test_offsets_and_positions_agree():
    parsed = parse("ab\n\ncd")
    assert parsed.position(0) == (1, 0)
    assert parsed.position(3) == (2, 0)
    assert parsed.position(5) == (3, 1)
    assert parsed.offset((3, 1)) == 5


def test_garbage_never_raises():
    for source in (")))(((", "'''", "def (", "@@@", "lambda: [", "\\", "\tx.", "f(**", "a if"):
        for cursor in range(len(source) + 1):
            parse_and_locate(source, cursor)


def test_unmatched_closer_has_no_node():
    assert parse_and_locate(")))(((", 3) is None


# --- parse_and_locate ---


def test_identifier():
    node = parse_and_locate("ls", 2)
    assert node.kind is NodeKind.IDENTIFIER
    assert node.name == "ls"
    assert (node.start, node.end) == (0, 2)


def test_cursor_is_clamped():
    node = parse_and_locate("ls", 99)
    assert node.kind is NodeKind.IDENTIFIER


def test_trailing_dot_gets_placeholder_property():
    node = parse_and_locate("ls.", 3)
    assert node.kind is NodeKind.ATTRIBUTE
    assert node.computed is False
    assert node.object.kind is NodeKind.IDENTIFIER
    assert node.object.name == "ls"
    assert node.property.name == PLACEHOLDER
    assert node.property.typed_name() == ""
    assert node.property.start == 3


def test_partial_property():
    node = parse_and_locate("os.pa", 5)
    assert node.kind is NodeKind.ATTRIBUTE
    assert node.property.name == "pa"
    assert node.property.start == 3
    assert node.object.text("os.pa") == "os"


def test_cursor_on_object_selects_identifier():
    node = parse_and_locate("os.path", 1)
    assert node.kind is NodeKind.IDENTIFIER
    assert node.name == "os"


def test_subscript_is_computed_access():
    node = parse_and_locate("a[0]", 4)
    assert node.kind is NodeKind.ATTRIBUTE
    assert node.computed is True


def test_open_call():
    node = parse_and_locate("foo(", 4)
    assert node.kind is NodeKind.CALL
    assert node.callee.name == "foo"
    assert node.end == 4


def test_open_call_with_arguments():
    source = "foo(1, "
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.CALL
    assert len(node.arguments) == 1
    assert node.end == len(source)


def test_closed_call_ends_with_paren():
    source = "foo(1)"
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.CALL
    assert source[node.end - 1] == ")"


def test_argument_identifier_wins_over_call():
    node = parse_and_locate("foo(ba", 6)
    assert node.kind is NodeKind.IDENTIFIER
    assert node.name == "ba"


def test_unterminated_string_literal():
    source = "open('./fi"
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.STRING
    assert node.value == "./fi"
    assert node.raw == "'./fi"
    assert (node.start, node.end) == (5, 10)


def test_closed_string_literal():
    source = "open('a.md')"
    node = parse_and_locate(source, 8)
    assert node.kind is NodeKind.STRING
    assert node.raw == "'a.md'"


def test_trailing_operator_gets_placeholder_identifier():
    node = parse_and_locate("x = 1 + ", 8)
    assert node.kind is NodeKind.IDENTIFIER
    assert node.name == PLACEHOLDER
    assert (node.start, node.end) == (8, 8)


def test_whitespace_only_has_no_node():
    assert parse_and_locate("   ", 1) is None


def test_multiline_block():
    source = "for x in y:\n    x."
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.ATTRIBUTE
    assert node.object.name == "x"
    assert node.start == source.index("x.")


def test_trailing_comment():
    source = "ls.  # look"
    node = parse_and_locate(source, 3)
    assert node.kind is NodeKind.ATTRIBUTE
    assert node.property.typed_name() == ""


def test_broken_earlier_line_falls_back_to_cursor_line():
    source = "))))\nls."
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.ATTRIBUTE
    assert node.start == 5


def test_offsets_are_characters_not_bytes():
    source = "'ñ'.up"
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.ATTRIBUTE
    assert node.property.start == 4
    assert node.end == 6


def test_fstring_is_not_a_string_literal():
    source = 'f"{x}abc"'
    node = parse_and_locate(source, 7)
    assert node.kind is NodeKind.OTHER


def test_bytes_are_not_a_string_literal():
    node = parse_and_locate("b'abc'", 3)
    assert node.kind is NodeKind.OTHER


def test_keyword_argument_value():
    node = parse_and_locate("f(x=ab", 6)
    assert node.kind is NodeKind.IDENTIFIER
    assert node.name == "ab"


def test_raw_string_prefix_belongs_to_the_literal():
    source = "open(r'./fi"
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.STRING
    assert node.raw == "r'./fi"
    assert node.value == "./fi"
    assert node.start == 5


def test_unterminated_triple_quoted_string():
    source = 'x = """abc'
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.STRING
    assert node.value == "abc"
    assert node.end == len(source)


def test_unterminated_string_on_a_later_line():
    source = "x = 1\nopen('di"
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.STRING
    assert node.start == source.index("'")
    assert node.value == "di"


def test_method_call_callee_is_attribute():
    source = "a.b("
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.CALL
    assert node.callee.kind is NodeKind.ATTRIBUTE
    assert node.callee.text(source) == "a.b"


def test_call_result_as_attribute_object():
    source = "ls().x"
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.ATTRIBUTE
    assert node.object.kind is NodeKind.CALL
    assert node.object.text(source) == "ls()"


def test_chained_attribute_object():
    source = "a.b.c"
    node = parse_and_locate(source, len(source))
    assert node.object.kind is NodeKind.ATTRIBUTE
    assert node.object.text(source) == "a.b"


def test_cursor_inside_open_call_arguments():
    source = "f(a, b.c, "
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.CALL
    assert [arg.text(source) for arg in node.arguments] == ["a", "b.c"]


def test_keyword_operator_gets_placeholder_identifier():
    source = "if x and "
    node = parse_and_locate(source, len(source))
    assert node.kind is NodeKind.IDENTIFIER
    assert node.name == PLACEHOLDER


def test_cursor_at_start_of_property():
    node = parse_and_locate("os.path", 3)
    assert node.kind is NodeKind.ATTRIBUTE
    assert node.property.name == "path"
    assert node.property.start == 3


def test_number_is_other():
    node = parse_and_locate("1 + 2", 5)
    assert node.kind is NodeKind.OTHER
