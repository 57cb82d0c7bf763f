"""ConchShell: async Python shell with context-aware completion."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory, History, InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.lexers import PygmentsLexer
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.styles import Style
from pygments.lexers.python import PythonLexer
from rich.console import Console
from rich.pretty import Pretty

from conch.completer import Completer
from conch.config import ConchConfig
from conch.environment import NamespaceEnvironment
from conch.repl.complete import ShellCompleter
from conch.repl.namespace import seed

logger = logging.getLogger(__name__)

PROMPT_COLOR = "#87ff87"


def _build_key_bindings() -> KeyBindings:
    """Enter submits, Escape+Enter inserts a newline."""
    kb = KeyBindings()

    @kb.add("enter")
    def submit(event):
        event.current_buffer.validate_and_handle()

    @kb.add("escape", "enter")
    def insert_newline(event):
        event.current_buffer.insert_text("\n")

    return kb


def _history(config: ConchConfig) -> History:
    if not config.history_file:
        return InMemoryHistory()
    path = Path(config.history_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return FileHistory(str(path))


class ConchShell:
    """Python shell over one long-lived namespace.

    The namespace, the environment wrapping it and the completer querying
    that environment are created once and live as long as the shell.
    """

    def __init__(self, config: ConchConfig | None = None, *, console: Console | None = None) -> None:
        self.config = config or ConchConfig()
        self.namespace: dict = seed()
        self.environment = NamespaceEnvironment(self.namespace)
        self.completer = Completer(self.environment, self.config)
        self.console = console or Console()
        self.session = PromptSession(
            message=self._prompt,
            lexer=PygmentsLexer(PythonLexer),
            completer=ShellCompleter(self.completer),
            complete_while_typing=self.config.complete_while_typing,
            history=_history(self.config),
            multiline=True,
            style=Style.from_dict({"prompt.cwd": "#808080"}),
            key_bindings=_build_key_bindings(),
        )

    def _prompt(self):
        """cwd basename plus a colored marker."""
        cwd = os.path.basename(os.getcwd()) or os.sep
        return [("class:prompt.cwd", cwd), ("fg:" + PROMPT_COLOR, " > ")]

    async def execute(self, text: str) -> None:
        """Run one input, printing its output, value or traceback."""
        try:
            result, captured = await self.environment.execute(text)
        except KeyboardInterrupt:
            return
        except Exception:
            logger.debug("input raised: %r", text, exc_info=True)
            self.console.print_exception(max_frames=5)
            return
        if captured:
            self.console.print(captured.rstrip("\n"), markup=False, highlight=False)
        if result is not None:
            self.console.print(Pretty(result))

    def shutdown(self) -> None:
        self.environment.close()

    async def run(self) -> None:
        """Main loop until Ctrl-C or Ctrl-D."""
        with patch_stdout():
            while True:
                try:
                    text = await self.session.prompt_async()
                except (KeyboardInterrupt, EOFError):
                    self.shutdown()
                    return
                if not text.strip():
                    continue
                await self.execute(text)
