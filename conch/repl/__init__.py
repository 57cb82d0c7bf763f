"""Conch shell: async Python REPL with context-aware completion."""

from __future__ import annotations

import asyncio

from conch.config import ConchConfig
from conch.repl.shell import ConchShell


def launch(config: ConchConfig | None = None) -> None:
    """Start the conch shell."""
    asyncio.run(ConchShell(config).run())


__all__ = ["ConchShell", "launch"]
