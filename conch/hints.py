"""Call-site hints: display-only signature text for known callables.

Hints are looked up by the identity of the resolved callee. Nothing is
guessed from the parameter list of an unregistered function: unknown
callees simply have no hint.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from conch.parser import SyntaxNode

HintProvider = Callable[["SyntaxNode", str], str | None]
Hint = str | HintProvider


def _unwrap(fn: object) -> object:
    """Bound methods share a hint with their function."""
    return getattr(fn, "__func__", fn)


def signature_hint(fn: Callable) -> str:
    """`name(params) -> ret` for fn, or just its name when unavailable."""
    name = getattr(fn, "__name__", type(fn).__name__)
    try:
        return f"{name}{inspect.signature(fn)}"
    except (TypeError, ValueError):
        return f"{name}(...)"


class HintRegistry:
    """Identity-keyed hints.

    registry.register(fn, "fn(path) -- change directory")
    @registry.annotate(lambda site, line: ...)   -- computed per call site
    """

    def __init__(self) -> None:
        # id -> (fn, hint); fn is held so its id cannot be reused
        self._hints: dict[int, tuple[object, Hint]] = {}

    def register(self, fn: object, hint: Hint) -> None:
        target = _unwrap(fn)
        self._hints[id(target)] = (target, hint)

    def unregister(self, fn: object) -> None:
        self._hints.pop(id(_unwrap(fn)), None)

    def annotate(self, hint: Hint | None = None) -> Callable:
        """Decorator form of register(); defaults to the signature hint."""

        def decorator(fn):
            self.register(fn, hint if hint is not None else signature_hint(fn))
            return fn

        return decorator

    def __contains__(self, fn: object) -> bool:
        return id(_unwrap(fn)) in self._hints

    def complete_call(self, fn: object, call_site: SyntaxNode, line: str) -> str | None:
        """Hint text for a call to fn at call_site, if fn is registered."""
        entry = self._hints.get(id(_unwrap(fn)))
        if entry is None:
            return None
        hint = entry[1]
        if callable(hint):
            return hint(call_site, line)
        return hint


registry = HintRegistry()
annotate = registry.annotate
