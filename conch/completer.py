"""Context-aware completion of a partially typed line.

Completer.complete() parses the line, finds the node under the cursor
and picks a strategy by its kind:

    string literal   -> filesystem paths (conch.paths)
    identifier       -> global names of the environment
    attribute access -> attribute names of the evaluated object
    call             -> a display-only hint for the callee

Completions are suffixes: the text still to type after
original_substring, which the caller leaves in place.
"""

from __future__ import annotations

import keyword
import logging
import os
import re
from typing import Callable, Iterable

from pydantic import BaseModel

from conch.config import ConchConfig
from conch.environment import LiveEnvironment
from conch.parser import NodeKind, SyntaxNode, parse_and_locate
from conch.paths import complete_path, normalize_path, trailing_fragment

logger = logging.getLogger(__name__)

_STRING_PREFIX = re.compile(r"[rRbBuUfF]*")


class CompletionResult(BaseModel):
    """Suffix completions for original_substring.

    fillable=False marks a single advisory hint to display, not insert.
    """

    completions: list[str]
    original_substring: str = ""
    fillable: bool = True


def remove_prefix(candidates: Iterable[str], prefix: str) -> list[str]:
    """Suffixes of the candidates starting with prefix, unique, non-empty."""
    seen: set[str] = set()
    suffixes = []
    for candidate in candidates:
        if not candidate.startswith(prefix):
            continue
        suffix = candidate[len(prefix):]
        if suffix and suffix not in seen:
            seen.add(suffix)
            suffixes.append(suffix)
    return suffixes


def _quote_of(raw: str) -> tuple[int, str]:
    """(length of the string prefix letters, opening quote) of a literal."""
    letters = _STRING_PREFIX.match(raw).end()
    body = raw[letters:]
    for quote in ('"""', "'''", '"', "'"):
        if body.startswith(quote):
            return letters, quote
    return letters, ""


def is_completed_string(raw: str | None) -> bool:
    """True when raw opens and closes with the same quote."""
    if not raw:
        return False
    letters, quote = _quote_of(raw)
    body = raw[letters:]
    if not quote or len(body) < 2 * len(quote):
        return False
    return body.endswith(quote)


class Completer:
    """Completion over a live environment.

    The environment is shared with the shell and may change between
    requests; nothing is cached across calls to complete().
    """

    def __init__(
        self,
        environment: LiveEnvironment,
        config: ConchConfig | None = None,
        *,
        cwd: Callable[[], str] = os.getcwd,
    ) -> None:
        self.environment = environment
        self.config = config or ConchConfig()
        self._cwd = cwd
        self._strategies = {
            NodeKind.STRING: self._complete_string,
            NodeKind.IDENTIFIER: self._complete_identifier,
            NodeKind.ATTRIBUTE: self._complete_attribute,
            NodeKind.CALL: self._complete_call,
        }

    async def complete(self, source: str, cursor: int | None = None) -> CompletionResult | None:
        """Complete source at cursor (default: its end). None: leave input as is."""
        if cursor is None:
            cursor = len(source)
        try:
            return await self._complete(source, cursor)
        except Exception:
            logger.debug("completion of %r at %d failed", source, cursor, exc_info=True)
            return None

    async def _complete(self, source: str, cursor: int) -> CompletionResult | None:
        if not source:
            return await self._complete_globals()
        node = parse_and_locate(source, cursor)
        if node is None:
            return await self._complete_globals()
        strategy = self._strategies.get(node.kind)
        if strategy is None:
            logger.debug("no completion for %s node at %d", node.kind.value, cursor)
            return None
        return await strategy(source, cursor, node)

    async def _complete_globals(self) -> CompletionResult:
        names = await self.environment.get_global_names()
        return CompletionResult(completions=remove_prefix(names, ""), original_substring="")

    async def _complete_string(
        self, source: str, cursor: int, node: SyntaxNode
    ) -> CompletionResult | None:
        raw = node.raw or ""
        if cursor == node.start:
            return None
        if cursor == node.end and is_completed_string(raw):
            return None
        letters, quote = _quote_of(raw)
        value = "" if cursor == node.start + letters + len(quote) else node.value or ""
        item_path = normalize_path(value)
        return CompletionResult(
            completions=remove_prefix(complete_path(item_path), item_path),
            original_substring=trailing_fragment(item_path),
        )

    async def _complete_identifier(
        self, source: str, cursor: int, node: SyntaxNode
    ) -> CompletionResult | None:
        name = node.typed_name()
        prefix = name[: max(0, cursor - node.start)]
        names = await self.environment.get_global_names()
        if name and name not in names and await self.load_module(name):
            names = await self.environment.get_global_names()
        completions = remove_prefix(names, prefix)
        if not completions:
            return None
        return CompletionResult(completions=completions, original_substring=prefix)

    async def load_module(self, name: str) -> bool:
        """Best-effort import of name: from config.module_dir, then sys.path.

        True when either attempt yields an object. Failure only means the
        module's attributes cannot be completed yet.
        """
        if not self.config.autoload_modules:
            return False
        if not name.isidentifier() or keyword.iskeyword(name):
            return False
        if self.config.module_dir:
            path = os.path.join(self._cwd(), self.config.module_dir, name)
            local = await self.environment.load_module(path)
            if local.result.type == "object":
                return True
        installed = await self.environment.load_module(name)
        return installed.result.type == "object"

    async def _complete_attribute(
        self, source: str, cursor: int, node: SyntaxNode
    ) -> CompletionResult | None:
        if node.computed:
            return None
        prop = node.property
        prefix = prop.typed_name()[: max(0, cursor - prop.start)]

        evaluation = await self.environment.evaluate(node.object.text(source), silent=True)
        if evaluation.exception_details is not None:
            # the object could not be resolved: nothing known, not an error
            return CompletionResult(completions=[], original_substring=prefix)

        object_id = evaluation.result.object_id
        if object_id is None:
            return CompletionResult(completions=[], original_substring=prefix)
        try:
            properties = await self.environment.enumerate_properties(object_id)
        finally:
            await self.environment.release(object_id)
        return CompletionResult(
            completions=remove_prefix((p.name for p in properties), prefix),
            original_substring=prefix,
        )

    async def _complete_call(
        self, source: str, cursor: int, node: SyntaxNode
    ) -> CompletionResult | None:
        if source[node.end - 1:node.end] == ")":
            return None
        evaluation = await self.environment.evaluate(node.callee.text(source), silent=True)
        if evaluation.exception_details is not None:
            return None

        callee = evaluation.result
        try:
            hint = await self.environment.invoke_hint(callee, node, source)
        finally:
            if callee.object_id is not None:
                await self.environment.release(callee.object_id)
        if hint.type == "string" and hint.value:
            return CompletionResult(completions=[hint.value], fillable=False)
        return None
