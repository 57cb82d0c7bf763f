"""Error-tolerant parsing of a partially typed line and cursor-to-node lookup.

The user is by definition in the middle of an expression, so the source
is rarely valid Python. parso parses it with error recovery: every token
is kept, and whatever does not fit the grammar ends up in error nodes.
The node under the cursor is then rebuilt from the leaves around it:

    name after '.'         attribute access (`os.pa`, `ls.` -> PLACEHOLDER)
    '(' after an operand   call, closed or still open
    '[' after an operand   computed access
    lone quote             string literal running to the end of its line
    operator, no operand   PLACEHOLDER identifier (`x = 1 + `)

Spans are character offsets into the source.
"""

from __future__ import annotations

import bisect
import itertools
import keyword
import logging
import re
from dataclasses import dataclass
from enum import Enum

import parso
from parso.tree import Leaf
from parso.utils import split_lines
from pydantic import BaseModel

logger = logging.getLogger(__name__)

PLACEHOLDER = "__incomplete__"
"""Identifier standing in for a name the user has not typed yet.

`ls.` parses as `ls.__incomplete__`; anything reading a name compares
against this constant and treats it as the empty prefix.
"""

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")": "(", "]": "[", "}": "{"}
# operators after which an operand may be left out
_OPERAND_OPTIONAL = frozenset({"(", "[", "{", ")", "]", "}", ",", ";", ".", "..."})
_OPERAND_KEYWORDS = frozenset({
    "and", "assert", "await", "del", "elif", "else", "for", "if", "in", "is",
    "not", "or", "while", "with",
})
_CONSTANT_KEYWORDS = frozenset({"None", "True", "False"})
_QUOTE = re.compile(r"([rRuUbBfF]*)('''|\"\"\"|'|\")")


class NodeKind(str, Enum):
    """What the cursor sits in, as far as completion cares."""

    STRING = "string"
    IDENTIFIER = "identifier"
    ATTRIBUTE = "attribute"
    CALL = "call"
    OTHER = "other"


class SyntaxNode(BaseModel):
    """A parsed subtree with half-open [start, end) character offsets.

    Attribute access fills object/property (computed for `a[b]`); calls
    fill callee/arguments. Nodes live for a single completion request.
    """

    kind: NodeKind
    start: int
    end: int
    name: str | None = None
    value: str | None = None
    raw: str | None = None
    object: SyntaxNode | None = None
    property: SyntaxNode | None = None
    computed: bool = False
    callee: SyntaxNode | None = None
    arguments: list[SyntaxNode] = []

    def text(self, source: str) -> str:
        """The slice of source this node covers."""
        return source[self.start:self.end]

    def typed_name(self) -> str:
        """The name as typed: '' when it is the PLACEHOLDER."""
        if self.name is None or self.name == PLACEHOLDER:
            return ""
        return self.name


SyntaxNode.model_rebuild()


@dataclass
class ParsedSource:
    """parso's module for source, plus (line, column) <-> offset mapping."""

    source: str
    module: parso.python.tree.Module
    lines: list[str]
    line_starts: list[int]

    def offset(self, position: tuple[int, int]) -> int:
        line, column = position
        return min(self.line_starts[line - 1] + column, len(self.source))

    def position(self, offset: int) -> tuple[int, int]:
        line = bisect.bisect_right(self.line_starts, offset)
        return line, offset - self.line_starts[line - 1]

    def start(self, leaf: Leaf) -> int:
        return self.offset(leaf.start_pos)

    def end(self, leaf: Leaf) -> int:
        return self.offset(leaf.end_pos)

    def line_end(self, line: int) -> int:
        """Offset of the end of line, before its line break."""
        return self.line_starts[line - 1] + len(self.lines[line - 1].rstrip("\r\n"))

    def leaf_at(self, cursor: int) -> Leaf:
        """The leaf touching cursor (the left one on a tie), else the next one."""
        return self.module.get_leaf_for_position(self.position(cursor), include_prefixes=True)


def parse(source: str) -> ParsedSource:
    """Parse source with error recovery; any text gives a tree."""
    module = parso.parse(source, error_recovery=True)
    lines = split_lines(source, keepends=True)
    starts = [0, *itertools.accumulate(len(line) for line in lines[:-1])]
    return ParsedSource(source, module, lines, starts)


# --- leaves ---


def _previous(leaf: Leaf | None) -> Leaf | None:
    """The previous leaf holding text; error recovery leaves empty ones."""
    if leaf is None:
        return None
    leaf = leaf.get_previous_leaf()
    while leaf is not None and leaf.value == "" and leaf.type != "endmarker":
        leaf = leaf.get_previous_leaf()
    return leaf


def _next(leaf: Leaf) -> Leaf | None:
    leaf = leaf.get_next_leaf()
    while leaf is not None and leaf.value == "" and leaf.type != "endmarker":
        leaf = leaf.get_next_leaf()
    return leaf


def _is_operator(leaf: Leaf | None) -> bool:
    if leaf is None:
        return False
    return leaf.type == "operator" or (leaf.type == "error_leaf" and leaf.token_type == "OP")


def _is_op(leaf: Leaf | None, values) -> bool:
    return _is_operator(leaf) and leaf.value in values


def _is_name(leaf: Leaf | None) -> bool:
    if leaf is None:
        return False
    if leaf.type == "name":
        return True
    return (
        leaf.type == "error_leaf"
        and leaf.token_type == "NAME"
        and not keyword.iskeyword(leaf.value)
    )


def _is_keyword(leaf: Leaf | None) -> bool:
    if leaf is None:
        return False
    if leaf.type == "keyword":
        return True
    return leaf.type == "error_leaf" and leaf.token_type == "NAME" and keyword.iskeyword(leaf.value)


def _ends_operand(leaf: Leaf | None) -> bool:
    if leaf is None:
        return False
    if leaf.type in ("string", "number", "fstring_end") or _is_name(leaf):
        return True
    if _is_keyword(leaf):
        return leaf.value in _CONSTANT_KEYWORDS
    return _is_op(leaf, _CLOSERS)


def _expects_operand(leaf: Leaf) -> bool:
    if _is_keyword(leaf):
        return leaf.value in _OPERAND_KEYWORDS
    return _is_operator(leaf) and leaf.value not in _OPERAND_OPTIONAL


def _matching_opener(closer: Leaf) -> Leaf | None:
    depth = 0
    leaf = closer
    while leaf is not None:
        if _is_op(leaf, _CLOSERS):
            depth += 1
        elif _is_op(leaf, _OPENERS):
            depth -= 1
            if depth == 0:
                return leaf if _OPENERS[leaf.value] == closer.value else None
        leaf = _previous(leaf)
    return None


def _matching_closer(opener: Leaf) -> Leaf | None:
    depth = 0
    leaf = opener
    while leaf is not None and leaf.type != "endmarker":
        if _is_op(leaf, _OPENERS):
            depth += 1
        elif _is_op(leaf, _CLOSERS):
            depth -= 1
            if depth == 0:
                return leaf if _CLOSERS[leaf.value] == opener.value else None
        elif leaf.type == "newline" and depth <= 1:
            return None
        leaf = _next(leaf)
    return None


def _enclosing_opener(leaf: Leaf | None) -> Leaf | None:
    """The innermost bracket left open at leaf, within its statement."""
    depth = 0
    while leaf is not None:
        if _is_op(leaf, _CLOSERS):
            depth += 1
        elif _is_op(leaf, _OPENERS):
            if depth == 0:
                return leaf
            depth -= 1
        elif depth == 0 and (leaf.type == "newline" or _is_op(leaf, ";")):
            return None
        leaf = _previous(leaf)
    return None


def _primary_start(leaf: Leaf) -> Leaf | None:
    """First leaf of the primary (`a.b(c)[d]`, `'s'`, `(x)`) ending at leaf."""
    while True:
        if _is_op(leaf, _CLOSERS):
            first = _matching_opener(leaf)
            if first is None:
                return None
            before = _previous(first)
            if first.value in ("(", "[") and _ends_operand(before):
                leaf = before
                continue
        elif leaf.type == "fstring_end" and leaf.parent.type == "fstring":
            first = leaf.parent.get_first_leaf()
        else:
            first = leaf
        before = _previous(first)
        if _is_op(before, ".") and _ends_operand(_previous(before)):
            leaf = _previous(before)
            continue
        return first


# --- nodes ---


def _string_node(parsed: ParsedSource, start: int, end: int, closed: bool) -> SyntaxNode:
    raw = parsed.source[start:end]
    match = _QUOTE.match(raw)
    letters, quote = match.group(1).lower(), match.group(2)
    if "b" in letters or "f" in letters:
        return SyntaxNode(kind=NodeKind.OTHER, start=start, end=end)
    value = raw[match.end():len(raw) - len(quote)] if closed else raw[match.end():]
    return SyntaxNode(kind=NodeKind.STRING, start=start, end=end, value=value, raw=raw)


def _leaf_node(parsed: ParsedSource, leaf: Leaf) -> SyntaxNode:
    start, end = parsed.start(leaf), parsed.end(leaf)
    if _is_name(leaf) or _is_keyword(leaf):
        return SyntaxNode(kind=NodeKind.IDENTIFIER, start=start, end=end, name=leaf.value)
    if leaf.type == "string":
        return _string_node(parsed, start, end, closed=True)
    return SyntaxNode(kind=NodeKind.OTHER, start=start, end=end)


def _span(parsed: ParsedSource, first: Leaf, last: Leaf) -> SyntaxNode:
    if first is last:
        return _leaf_node(parsed, first)
    return SyntaxNode(kind=NodeKind.OTHER, start=parsed.start(first), end=parsed.end(last))


def _expression(parsed: ParsedSource, first: Leaf, last: Leaf) -> SyntaxNode:
    """Node for the primary spanning first..last."""
    if first is last:
        return _leaf_node(parsed, last)
    node = None
    if _is_name(last) and _is_op(_previous(last), "."):
        node = _attribute_node(parsed, _previous(last), _leaf_node(parsed, last))
    elif _is_op(last, (")", "]")):
        opener = _matching_opener(last)
        if opener is not None and opener is not first:
            node = _group_node(parsed, opener)
    if node is None or node.start != parsed.start(first):
        return _span(parsed, first, last)
    return node


def _attribute_node(parsed: ParsedSource, dot: Leaf, prop: SyntaxNode) -> SyntaxNode | None:
    last = _previous(dot)
    first = _primary_start(last) if _ends_operand(last) else None
    if first is None:
        return None
    obj = _expression(parsed, first, last)
    return SyntaxNode(
        kind=NodeKind.ATTRIBUTE, start=obj.start, end=prop.end, object=obj, property=prop,
    )


def _arguments(parsed: ParsedSource, opener: Leaf, closer: Leaf | None) -> list[SyntaxNode]:
    """Top-level comma-separated arguments between opener and closer."""
    arguments = []
    first = last = None
    depth = 0
    leaf = _next(opener)
    while leaf is not None and leaf is not closer and leaf.type != "endmarker":
        if depth == 0 and _is_op(leaf, ","):
            if first is not None:
                arguments.append(_span(parsed, first, last))
            first = last = None
        elif leaf.type != "newline":
            if _is_op(leaf, _OPENERS):
                depth += 1
            elif _is_op(leaf, _CLOSERS):
                depth -= 1
            first = first or leaf
            last = leaf
        leaf = _next(leaf)
    if first is not None:
        arguments.append(_span(parsed, first, last))
    return arguments


def _group_node(parsed: ParsedSource, opener: Leaf) -> SyntaxNode:
    """Call, computed access or plain bracket group opened by opener.

    An unclosed group runs to the end of the source.
    """
    closer = _matching_closer(opener)
    end = parsed.end(closer) if closer is not None else len(parsed.source)
    before = _previous(opener)
    first = None
    if opener.value in ("(", "[") and _ends_operand(before):
        first = _primary_start(before)
    if first is None:
        return SyntaxNode(kind=NodeKind.OTHER, start=parsed.start(opener), end=end)
    target = _expression(parsed, first, before)
    if opener.value == "(":
        return SyntaxNode(
            kind=NodeKind.CALL, start=target.start, end=end,
            callee=target, arguments=_arguments(parsed, opener, closer),
        )
    inner_end = parsed.start(closer) if closer is not None else end
    return SyntaxNode(
        kind=NodeKind.ATTRIBUTE, start=target.start, end=end, computed=True,
        object=target,
        property=SyntaxNode(kind=NodeKind.OTHER, start=parsed.end(opener), end=inner_end),
    )


def _open_string(parsed: ParsedSource, cursor: int) -> SyntaxNode | None:
    """The unterminated string literal holding cursor, if any.

    parso keeps an unterminated quote as a lone error leaf and tokenizes
    the rest of the line as code; the literal is everything from the
    first such quote to the end of the line.
    """
    line = parsed.position(cursor)[0]
    found = None
    leaf = parsed.leaf_at(cursor)
    while leaf is not None and leaf.end_pos[0] >= line:
        if (
            leaf.type == "error_leaf"
            and leaf.token_type == "ERRORTOKEN"
            and _QUOTE.match(leaf.value)
            and parsed.start(leaf) <= cursor
        ):
            found = leaf
        leaf = leaf.get_previous_leaf()
    if found is None:
        return None

    start = parsed.start(found)
    if len(found.value) > 1:
        # an unterminated triple-quoted or continued string runs to the end
        return _string_node(parsed, start, parsed.end(found), closed=False)
    letters = found.get_previous_leaf()
    if (
        letters is not None
        and letters.type == "name"
        and not found.prefix
        and set(letters.value) <= set("rRuUbB")
    ):
        start = parsed.start(letters)
    return _string_node(parsed, start, parsed.line_end(line), closed=False)


def _after(parsed: ParsedSource, leaf: Leaf | None, cursor: int) -> SyntaxNode | None:
    """Node for a cursor sitting after leaf, with nothing typed yet."""
    if leaf is None or leaf.type == "newline":
        return None
    if _is_op(leaf, "."):
        prop = SyntaxNode(kind=NodeKind.IDENTIFIER, start=cursor, end=cursor, name=PLACEHOLDER)
        return _attribute_node(parsed, leaf, prop)
    if _expects_operand(leaf):
        return SyntaxNode(kind=NodeKind.IDENTIFIER, start=cursor, end=cursor, name=PLACEHOLDER)
    opener = _enclosing_opener(leaf)
    if opener is None:
        return None
    return _group_node(parsed, opener)


def _locate(parsed: ParsedSource, cursor: int) -> SyntaxNode | None:
    string = _open_string(parsed, cursor)
    if string is not None:
        return string

    leaf = parsed.leaf_at(cursor)
    start, end = parsed.start(leaf), parsed.end(leaf)
    if leaf.value == "" or cursor < start:
        return _after(parsed, _previous(leaf), cursor)
    if leaf.type == "newline":
        return _after(parsed, leaf if cursor == end else _previous(leaf), cursor)

    if _is_operator(leaf) and cursor == end:
        following = _next(leaf)
        if (
            following is not None
            and parsed.start(following) == cursor
            and (_is_name(following) or following.type in ("string", "number"))
            and not _is_op(leaf, _CLOSERS)
        ):
            leaf = following

    if _is_name(leaf) or _is_keyword(leaf):
        name = _leaf_node(parsed, leaf)
        if _is_name(leaf) and _is_op(_previous(leaf), "."):
            return _attribute_node(parsed, _previous(leaf), name) or name
        return name
    if _is_op(leaf, _CLOSERS):
        if cursor == parsed.start(leaf):
            return _after(parsed, _previous(leaf), cursor)
        opener = _matching_opener(leaf)
        return _group_node(parsed, opener) if opener is not None else None
    if _is_operator(leaf):
        if cursor == parsed.start(leaf):
            return _after(parsed, _previous(leaf), cursor)
        return _after(parsed, leaf, cursor)
    return _leaf_node(parsed, leaf)


def parse_and_locate(source: str, cursor: int) -> SyntaxNode | None:
    """The smallest node enclosing cursor, or None when there is none."""
    cursor = max(0, min(cursor, len(source)))
    node = _locate(parse(source), cursor)
    if node is None:
        logger.debug("no node at %d in %r", cursor, source)
    return node
