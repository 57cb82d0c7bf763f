"""Shell namespace seeding."""

from __future__ import annotations

import asyncio
import os
import re
from pathlib import Path

from conch.repl.builtins import BUILTINS

# Objects pre-loaded into the shell namespace next to the builtins.
_PRELOADED = {
    "asyncio": asyncio,
    "os": os,
    "re": re,
    "Path": Path,
}


def seed() -> dict:
    """Build the initial namespace with shell builtins pre-loaded."""
    ns: dict = {"__name__": "__conch__", "__builtins__": __builtins__}
    ns.update(_PRELOADED)
    ns.update(BUILTINS)
    return ns
