"""Tests for the prompt_toolkit completer adapter."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from prompt_toolkit.completion import CompleteEvent
from prompt_toolkit.document import Document

from conch.completer import CompletionResult
from conch.repl.complete import ShellCompleter


def _adapter(result):
    source = MagicMock()
    source.complete = AsyncMock(return_value=result)
    return ShellCompleter(source), source


async def _collect(adapter, text, cursor=None):
    document = Document(text, cursor_position=len(text) if cursor is None else cursor)
    return [c async for c in adapter.get_completions_async(document, CompleteEvent())]


@pytest.mark.asyncio
async def test_suffixes_are_inserted_at_cursor():
    adapter, source = _adapter(CompletionResult(completions=["th", "rdir"], original_substring="pa"))
    completions = await _collect(adapter, "os.pa")
    assert [c.text for c in completions] == ["th", "rdir"]
    assert all(c.start_position == 0 for c in completions)
    assert [c.display_text for c in completions] == ["path", "pardir"]
    source.complete.assert_awaited_once_with("os.pa", 5)


@pytest.mark.asyncio
async def test_cursor_position_is_passed():
    adapter, source = _adapter(None)
    await _collect(adapter, "os.path", 2)
    source.complete.assert_awaited_once_with("os.path", 2)


@pytest.mark.asyncio
async def test_absent_result_yields_nothing():
    adapter, _ = _adapter(None)
    assert await _collect(adapter, "pwd()") == []


@pytest.mark.asyncio
async def test_hint_is_display_only():
    adapter, _ = _adapter(CompletionResult(completions=["grep(pattern)"], fillable=False))
    completions = await _collect(adapter, "grep(")
    assert len(completions) == 1
    assert completions[0].text == ""
    assert completions[0].display_text == "grep(pattern)"
    assert completions[0].display_meta_text == "hint"


def test_sync_completion_runs_the_request():
    adapter, source = _adapter(CompletionResult(completions=["th"], original_substring="pa"))
    completions = list(adapter.get_completions(Document("os.pa"), CompleteEvent()))
    assert [c.text for c in completions] == ["th"]
    source.complete.assert_awaited_once_with("os.pa", 5)


@pytest.mark.asyncio
async def test_sync_completion_inside_a_loop_is_empty():
    adapter, source = _adapter(CompletionResult(completions=["th"], original_substring="pa"))
    assert list(adapter.get_completions(Document("os.pa"), CompleteEvent())) == []
    source.complete.assert_not_called()
