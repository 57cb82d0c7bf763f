"""prompt_toolkit adapter over the source completer.

Completions are suffixes inserted at the cursor; the menu shows the
whole candidate. Call hints are display-only entries that insert nothing.
"""

from __future__ import annotations

import asyncio
from typing import AsyncGenerator, Iterable

from prompt_toolkit.completion import CompleteEvent, Completer, Completion
from prompt_toolkit.document import Document

from conch.completer import Completer as SourceCompleter
from conch.completer import CompletionResult


def _completions(result: CompletionResult | None) -> Iterable[Completion]:
    if result is None:
        return
    if not result.fillable:
        for hint in result.completions:
            yield Completion("", start_position=0, display=hint, display_meta="hint")
        return
    for suffix in result.completions:
        yield Completion(
            suffix,
            start_position=0,
            display=result.original_substring + suffix,
        )


class ShellCompleter(Completer):
    """Tab completion backed by conch.completer.Completer."""

    def __init__(self, completer: SourceCompleter) -> None:
        self.completer = completer

    def get_completions(
        self, document: Document, complete_event: CompleteEvent
    ) -> Iterable[Completion]:
        """Synchronous completion, for callers outside an event loop.

        The environment is async-only, so this runs the request in a fresh
        loop. Inside a running loop nothing is yielded: the shell's
        PromptSession always goes through get_completions_async.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            return
        result = asyncio.run(
            self.completer.complete(document.text, document.cursor_position)
        )
        yield from _completions(result)

    async def get_completions_async(
        self, document: Document, complete_event: CompleteEvent
    ) -> AsyncGenerator[Completion, None]:
        result = await self.completer.complete(document.text, document.cursor_position)
        for completion in _completions(result):
            yield completion
