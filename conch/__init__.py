"""Conch: a Python shell with context-aware tab completion."""

from conch.completer import Completer, CompletionResult, remove_prefix
from conch.config import ConchConfig, load_config
from conch.environment import (
    Evaluation,
    ExceptionDetails,
    LiveEnvironment,
    NamespaceEnvironment,
    PropertyDescriptor,
    RemoteObject,
)
from conch.exceptions import ConchConfigError, ConchError, PatternRequiredError, SideEffectError
from conch.hints import HintRegistry, annotate
from conch.parser import PLACEHOLDER, NodeKind, SyntaxNode, parse_and_locate
from conch.paths import complete_path, dir_path_completer, item_path_completer

__all__ = [
    # Completion
    "Completer",
    "CompletionResult",
    "remove_prefix",
    # Parsing
    "PLACEHOLDER",
    "NodeKind",
    "SyntaxNode",
    "parse_and_locate",
    # Paths
    "complete_path",
    "dir_path_completer",
    "item_path_completer",
    # Environment
    "LiveEnvironment",
    "NamespaceEnvironment",
    "Evaluation",
    "ExceptionDetails",
    "PropertyDescriptor",
    "RemoteObject",
    # Hints
    "HintRegistry",
    "annotate",
    # Config
    "ConchConfig",
    "load_config",
    # Exceptions
    "ConchError",
    "ConchConfigError",
    "PatternRequiredError",
    "SideEffectError",
]
