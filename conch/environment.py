"""Live environment: the running namespace completion introspects.

The completer only talks to a LiveEnvironment through the request/response
methods below and treats it as a remote service: values come back as
RemoteObject descriptions, never as the Python objects themselves, and
further questions about a value go through its object_id handle.

NamespaceEnvironment is the in-process implementation over the shell's
namespace dict. Create it once, share it between the shell and the
completer, and close() it when the shell exits.
"""

from __future__ import annotations

import ast
import builtins
import contextlib
import importlib
import importlib.util
import inspect
import io
import itertools
import logging
import os
import sys
import textwrap
from typing import Any, Protocol

from pydantic import BaseModel

from conch.exceptions import SideEffectError
from conch.hints import HintRegistry
from conch.hints import registry as default_hints
from conch.parser import SyntaxNode

logger = logging.getLogger(__name__)


class RemoteObject(BaseModel):
    """Description of a value living in the environment.

    type is one of: string, number, boolean, none, function, object,
    undefined. Primitives carry value; any value carries an object_id
    while its handle is retained.
    """

    type: str
    value: Any = None
    description: str | None = None
    class_name: str | None = None
    object_id: str | None = None


class ExceptionDetails(BaseModel):
    text: str
    exception: RemoteObject | None = None


class Evaluation(BaseModel):
    result: RemoteObject
    exception_details: ExceptionDetails | None = None


class PropertyDescriptor(BaseModel):
    name: str


UNDEFINED = RemoteObject(type="undefined")


class LiveEnvironment(Protocol):
    """What the completer needs from a running interpreter."""

    async def evaluate(self, expression: str, silent: bool = False) -> Evaluation: ...

    async def get_global_names(self) -> list[str]: ...

    async def load_module(self, specifier: str) -> Evaluation: ...

    async def enumerate_properties(self, object_id: str) -> list[PropertyDescriptor]: ...

    async def invoke_hint(
        self, callee: RemoteObject, call_site: SyntaxNode, line: str
    ) -> RemoteObject: ...

    async def release(self, object_id: str) -> None: ...


# Builtins that neither mutate state nor consume iterators.
PURE_BUILTINS = frozenset({
    "abs", "bool", "chr", "complex", "dir", "divmod", "float",
    "format", "getattr", "hasattr", "hash", "hex", "id", "int", "isinstance",
    "issubclass", "len", "oct", "ord", "range", "repr", "round", "slice",
    "str", "type", "vars",
})

# Types whose iteration, indexing and membership tests run no user code.
_PLAIN_CONTAINERS = (list, tuple, str, dict, set, frozenset, range, bytes)
_SUBSCRIPTABLE = (list, tuple, str, dict)
_SEQUENCES = (list, tuple, str, bytes)
_MAX_BITS = 4096
_MAX_EXPONENT = 64
_MAX_ITEMS = 100_000


def _plain_number(value: object) -> bool:
    return type(value) in (int, float, bool)


def _bits(value: int | float | bool) -> int:
    return int(value).bit_length() if type(value) is not float else 0


def _length(container: object) -> int | float:
    try:
        return len(container)
    except OverflowError:
        return float("inf")


class _SideEffectGuard(ast.NodeVisitor):
    """Rejects expressions a silent evaluation must not run.

    Sub-expressions already accepted are evaluated to check the runtime
    types of subscripts, iterables and arithmetic operands.
    """

    def __init__(self, namespace: dict, expression: str) -> None:
        self._ns = namespace
        self._expression = expression

    def _refuse(self, node: ast.AST) -> None:
        raise SideEffectError(
            f"possible side effect: {type(node).__name__}",
            expression=self._expression,
            node=type(node).__name__,
        )

    def _value(self, node: ast.expr) -> object:
        try:
            return eval(compile(ast.Expression(node), "<conch>", "eval"), self._ns)
        except Exception:
            self._refuse(node)

    def _require_plain(self, node: ast.expr, types: tuple) -> None:
        if type(self._value(node)) not in types:
            self._refuse(node)

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        if not (isinstance(func, ast.Name) and func.id in PURE_BUILTINS):
            self._refuse(node)
        # a shadowed builtin is whatever the user bound to that name
        if self._ns.get(func.id, getattr(builtins, func.id)) is not getattr(builtins, func.id):
            self._refuse(node)
        self.generic_visit(node)

    def visit_Subscript(self, node: ast.Subscript) -> None:
        self.generic_visit(node)
        self._require_plain(node.value, _SUBSCRIPTABLE)

    def visit_Starred(self, node: ast.Starred) -> None:
        self.generic_visit(node)
        self._require_plain(node.value, _PLAIN_CONTAINERS)

    def _visit_comprehension(self, node: ast.expr) -> None:
        self.generic_visit(node)
        # an iterable using a loop variable fails to evaluate and is refused
        for generator in node.generators:
            iterable = self._value(generator.iter)
            if type(iterable) not in _PLAIN_CONTAINERS or _length(iterable) > _MAX_ITEMS:
                self._refuse(generator.iter)

    visit_ListComp = _visit_comprehension
    visit_SetComp = _visit_comprehension
    visit_DictComp = _visit_comprehension
    visit_GeneratorExp = _visit_comprehension

    def visit_Compare(self, node: ast.Compare) -> None:
        self.generic_visit(node)
        for op, right in zip(node.ops, node.comparators):
            if isinstance(op, (ast.In, ast.NotIn)):
                self._require_plain(right, _PLAIN_CONTAINERS)

    def visit_BinOp(self, node: ast.BinOp) -> None:
        self.generic_visit(node)
        if not isinstance(node.op, (ast.Pow, ast.Mult, ast.LShift)):
            return
        left, right = self._value(node.left), self._value(node.right)
        if isinstance(node.op, ast.Pow):
            allowed = (
                _plain_number(left) and _plain_number(right)
                and abs(right) <= _MAX_EXPONENT and _bits(left) <= _MAX_EXPONENT
            )
        elif isinstance(node.op, ast.LShift):
            allowed = (
                type(left) in (int, bool) and type(right) in (int, bool)
                and right <= _MAX_BITS and _bits(left) <= _MAX_BITS
            )
        elif _plain_number(left) and _plain_number(right):
            allowed = _bits(left) <= _MAX_BITS and _bits(right) <= _MAX_BITS
        else:
            if type(left) in (int, bool):
                left, right = right, left
            allowed = (
                type(left) in _SEQUENCES and type(right) in (int, bool)
                and len(left) * right <= _MAX_ITEMS
            )
        if not allowed:
            self._refuse(node)

    def visit_Await(self, node: ast.Await) -> None:
        self._refuse(node)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self._refuse(node)

    def visit_Yield(self, node: ast.Yield) -> None:
        self._refuse(node)

    def visit_YieldFrom(self, node: ast.YieldFrom) -> None:
        self._refuse(node)


def _describe_value(value: object) -> str:
    try:
        return textwrap.shorten(repr(value), width=200, placeholder="...")
    except Exception:
        return f"<{type(value).__name__}>"


class NamespaceEnvironment:
    """LiveEnvironment over a namespace dict in this process.

    The namespace is shared and mutable: the shell keeps executing user
    code in it between completion requests.
    """

    def __init__(self, namespace: dict, hints: HintRegistry | None = None) -> None:
        self.namespace = namespace
        self.hints = hints if hints is not None else default_hints
        self._handles: dict[str, object] = {}
        self._ids = itertools.count(1)

    def __repr__(self) -> str:
        return f"NamespaceEnvironment({len(self.namespace)} names, {len(self._handles)} handles)"

    # --- handles ---

    def _retain(self, value: object) -> str:
        object_id = str(next(self._ids))
        self._handles[object_id] = value
        return object_id

    def resolve(self, object_id: str | None) -> object | None:
        """The value behind a handle, None for unknown or released handles."""
        if object_id is None:
            return None
        return self._handles.get(object_id)

    async def release(self, object_id: str) -> None:
        self._handles.pop(object_id, None)

    def close(self) -> None:
        """Drop every retained handle."""
        self._handles.clear()

    def describe(self, value: object, *, retain: bool = True) -> RemoteObject:
        """RemoteObject for value, with a handle unless retain is False.

        Primitives carry their value too; their handle still allows
        attribute enumeration (`'abc'.upper`).
        """
        primitive = None
        if value is None:
            kind = "none"
        elif isinstance(value, bool):
            kind, primitive = "boolean", value
        elif isinstance(value, (int, float)):
            kind, primitive = "number", value
        elif isinstance(value, str):
            kind, primitive = "string", value
        elif inspect.isroutine(value) or inspect.isclass(value):
            kind = "function"
        else:
            kind = "object"
        return RemoteObject(
            type=kind,
            value=primitive,
            description=_describe_value(value),
            class_name=type(value).__name__,
            object_id=self._retain(value) if retain else None,
        )

    def _failure(self, exc: BaseException) -> Evaluation:
        exception = self.describe(exc, retain=False)
        return Evaluation(
            result=exception,
            exception_details=ExceptionDetails(
                text=f"{type(exc).__name__}: {exc}", exception=exception,
            ),
        )

    # --- LiveEnvironment ---

    async def evaluate(self, expression: str, silent: bool = False) -> Evaluation:
        """Evaluate expression in the namespace.

        silent=True refuses anything that could change state (see
        PURE_BUILTINS). Failures come back as exception_details, never raised.
        """
        try:
            tree = ast.parse(f"({expression.strip()}\n)", mode="eval")
            if silent:
                _SideEffectGuard(self.namespace, expression).visit(tree)
            value = await self._run(tree, "eval")
        except Exception as exc:
            logger.debug("evaluate %r failed: %s", expression, exc)
            return self._failure(exc)
        return Evaluation(result=self.describe(value))

    async def _run(self, tree: ast.AST, mode: str) -> object:
        """Compile and run tree in the namespace, awaiting top-level await."""
        code = compile(tree, "<conch>", mode, flags=ast.PyCF_ALLOW_TOP_LEVEL_AWAIT)
        result = eval(code, self.namespace)
        if code.co_flags & inspect.CO_COROUTINE:
            result = await result
        return result

    async def execute(self, source: str) -> tuple[object | None, str]:
        """Run shell input in the namespace with stdout captured.

        Returns (result, captured_stdout): result is the value of a
        trailing expression (also bound to `_`), or None. Unlike
        evaluate(), errors propagate to the caller.
        """
        tree = ast.parse(source, mode="exec")
        trailing = None
        if tree.body and isinstance(tree.body[-1], ast.Expr):
            trailing = ast.Expression(tree.body.pop().value)
        buf = io.StringIO()
        result = None
        with contextlib.redirect_stdout(buf):
            await self._run(tree, "exec")
            if trailing is not None:
                result = await self._run(trailing, "eval")
        if trailing is not None:
            self.namespace["_"] = result
        return result, buf.getvalue()

    async def get_global_names(self) -> list[str]:
        """Namespace names plus builtins, sorted."""
        return sorted(set(self.namespace) | set(dir(builtins)))

    async def load_module(self, specifier: str) -> Evaluation:
        """Import specifier and bind it into the namespace if unbound.

        An absolute path loads `<path>.py` or `<path>/__init__.py`; anything
        else goes through the regular import system. A path whose module
        name is already imported is never loaded, so a local file cannot
        replace a module in sys.modules.
        """
        try:
            if os.path.isabs(specifier):
                if _module_name(specifier) in sys.modules:
                    return Evaluation(result=UNDEFINED)
                module = _load_from_path(specifier)
            else:
                module = importlib.import_module(specifier)
        except Exception as exc:
            logger.debug("load_module %r failed: %s", specifier, exc)
            failure = self._failure(exc)
            return Evaluation(result=UNDEFINED, exception_details=failure.exception_details)
        if module is None:
            return Evaluation(result=UNDEFINED)
        self.namespace.setdefault(module.__name__.rpartition(".")[2], module)
        return Evaluation(result=self.describe(module, retain=False))

    async def enumerate_properties(self, object_id: str) -> list[PropertyDescriptor]:
        """Own and inherited attribute names of the value behind object_id."""
        if object_id not in self._handles:
            return []
        try:
            names = dir(self._handles[object_id])
        except Exception as exc:
            logger.debug("dir() failed for handle %s: %s", object_id, exc)
            return []
        return [PropertyDescriptor(name=name) for name in names]

    async def invoke_hint(
        self, callee: RemoteObject, call_site: SyntaxNode, line: str
    ) -> RemoteObject:
        """Ask the hint registry about the callee behind its handle."""
        fn = self.resolve(callee.object_id)
        if fn is None:
            return UNDEFINED
        try:
            hint = self.hints.complete_call(fn, call_site, line)
        except Exception:
            logger.debug("hint provider for %r raised", fn, exc_info=True)
            return UNDEFINED
        if isinstance(hint, str):
            return RemoteObject(type="string", value=hint)
        return UNDEFINED

    async def preview(self, expression: str) -> str | None:
        """repr of a silent evaluation, None if it errors or has side effects."""
        evaluation = await self.evaluate(expression, silent=True)
        if evaluation.exception_details is not None:
            return None
        result = evaluation.result
        if result.object_id is not None:
            await self.release(result.object_id)
        return result.description


def _module_name(path: str) -> str:
    return os.path.basename(path.rstrip(os.sep))


def _load_from_path(path: str):
    """Load a not yet imported module from a filesystem path."""
    name = _module_name(path)
    package = os.path.join(path, "__init__.py")
    if os.path.isfile(path + ".py"):
        location, search = path + ".py", None
    elif os.path.isfile(package):
        location, search = package, [path]
    else:
        return None

    spec = importlib.util.spec_from_file_location(
        name, location, submodule_search_locations=search
    )
    if spec is None or spec.loader is None:
        return None
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(name, None)
        raise
    return module
