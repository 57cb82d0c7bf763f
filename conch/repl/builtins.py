"""Shell builtins injected into the namespace, each with a call hint."""

from __future__ import annotations

import os
import re
from typing import Callable

from conch.exceptions import PatternRequiredError
from conch.hints import annotate


@annotate("cd(path='~') -> str -- change the working directory")
def cd(path: str = "~") -> str:
    """Change the working directory and return the new one."""
    os.chdir(os.path.expanduser(path))
    return os.getcwd()


@annotate("pwd() -> str -- current working directory")
def pwd() -> str:
    return os.getcwd()


def _grep_hint(call_site, line: str) -> str:
    if call_site.arguments:
        return "grep(pattern, flags=0) -> predicate -- flags: re.IGNORECASE, re.MULTILINE, ..."
    return "grep(pattern, flags=0) -> predicate -- pattern: str or compiled re.Pattern"


@annotate(_grep_hint)
def grep(pattern: str | re.Pattern | None = None, flags: int = 0) -> Callable[[str], bool]:
    """Predicate testing a string against pattern, for filter() and friends.

    filter(grep(r"\\.py$"), os.listdir())
    """
    if pattern is None or pattern == "":
        raise PatternRequiredError("grep() requires a pattern")
    regex = re.compile(pattern, flags) if isinstance(pattern, str) else pattern
    return lambda text: regex.search(text) is not None


BUILTINS = {
    "cd": cd,
    "pwd": pwd,
    "grep": grep,
}
