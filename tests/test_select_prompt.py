from types import SimpleNamespace
from unittest.mock import AsyncMock

import iterm2
import pytest

from select_prompt import run_selection_loop, shortcut_map
from shortcut_select import (FALLBACK_KEY, Accepted, Cancelled, Chosen, Fallback,
                             ForcedFallback, ShortcutSelector)

FOOS = ["foo", "foo-baz", "foo-car", "foo-dry", "foo-eel"]
DECORATED = ["[a] foo", "[s] foo-baz", "[d] foo-car", "[f] foo-dry", "[g] foo-eel"]


class FakeMonitor:
    """Plays back a fixed list of keystrokes."""

    def __init__(self, keys):
        self._keys = list(keys)

    async def async_get(self):
        return self._keys.pop(0)


def key(keycode=None, characters=""):
    return SimpleNamespace(keycode=keycode, characters=characters, modifiers=[])


UP = key(iterm2.Keycode.UP_ARROW)
DOWN = key(iterm2.Keycode.DOWN_ARROW)
RETURN = key(iterm2.Keycode.RETURN)
ESCAPE = key(iterm2.Keycode.ESCAPE)
TAB = key(FALLBACK_KEY, "\t")


def scripted_prompt(*keys):
    """A prompt collaborator driving run_selection_loop with ``keys``."""
    async def prompt(prompt_text, table, require_match, history, position, fallback_key):
        return await run_selection_loop(FakeMonitor(keys), AsyncMock(), list(table),
                                        history, position, fallback_key)
    return prompt


def test_shortcut_map_skips_unmarked_labels():
    assert shortcut_map(["[a] foo", "plain", "[s] bar"]) == {"a": "[a] foo", "s": "[s] bar"}


@pytest.mark.asyncio
async def test_shortcut_key_accepts_immediately():
    render = AsyncMock()
    result = await run_selection_loop(FakeMonitor([key(characters="d")]), render,
                                      DECORATED, DECORATED * 4, 0, FALLBACK_KEY)
    assert result == Accepted("[d] foo-car")
    render.assert_awaited_once_with(0)


@pytest.mark.asyncio
async def test_uppercase_shortcut_key():
    result = await run_selection_loop(FakeMonitor([key(characters="S")]), AsyncMock(),
                                      DECORATED, DECORATED, 0, FALLBACK_KEY)
    assert result == Accepted("[s] foo-baz")


@pytest.mark.asyncio
async def test_unknown_keys_are_ignored():
    keys = [key(characters="z"), key(characters="1"), RETURN]
    history = ["x", "y"]
    result = await run_selection_loop(FakeMonitor(keys), AsyncMock(), DECORATED,
                                      history, 1, FALLBACK_KEY)
    assert result == Accepted("y")


@pytest.mark.asyncio
async def test_navigation_stops_at_history_ends():
    history = ["h0", "h1", "h2"]
    render = AsyncMock()
    keys = [UP, UP, UP, RETURN]
    result = await run_selection_loop(FakeMonitor(keys), render, [], history, 1, FALLBACK_KEY)
    assert result == Accepted("h2")
    assert [c.args[0] for c in render.await_args_list] == [1, 2, 2, 2]

    keys = [DOWN, DOWN, DOWN, RETURN]
    result = await run_selection_loop(FakeMonitor(keys), AsyncMock(), [], history, 1, FALLBACK_KEY)
    assert result == Accepted("h0")


@pytest.mark.asyncio
async def test_escape_dismisses_and_fallback_key_forces_fallback():
    result = await run_selection_loop(FakeMonitor([ESCAPE]), AsyncMock(), DECORATED,
                                      DECORATED, 0, FALLBACK_KEY)
    assert result == Accepted(None)

    result = await run_selection_loop(FakeMonitor([DOWN, TAB]), AsyncMock(), DECORATED,
                                      DECORATED, 0, FALLBACK_KEY)
    assert result == ForcedFallback()


@pytest.mark.asyncio
async def test_immediate_accept_picks_default():
    selector = ShortcutSelector(scripted_prompt(RETURN), AsyncMock())
    assert await selector.select("Pick: ", FOOS, default="foo-car") == Chosen("foo-car")


@pytest.mark.asyncio
async def test_down_moves_forward_in_display_order():
    selector = ShortcutSelector(scripted_prompt(DOWN, DOWN, RETURN), AsyncMock())
    assert await selector.select("Pick: ", FOOS, default="foo-car") == Chosen("foo-eel")


@pytest.mark.asyncio
async def test_navigation_wraps_past_both_ends():
    selector = ShortcutSelector(scripted_prompt(UP, RETURN), AsyncMock())
    assert await selector.select("Pick: ", FOOS) == Chosen("foo-eel")

    selector = ShortcutSelector(scripted_prompt(DOWN, RETURN), AsyncMock())
    assert await selector.select("Pick: ", FOOS, default="foo-eel") == Chosen("foo")

    # A full lap and one more in either direction
    selector = ShortcutSelector(scripted_prompt(*([DOWN] * 6), RETURN), AsyncMock())
    assert await selector.select("Pick: ", FOOS, default="foo-baz") == Chosen("foo-car")

    selector = ShortcutSelector(scripted_prompt(*([UP] * 6), RETURN), AsyncMock())
    assert await selector.select("Pick: ", FOOS, default="foo-baz") == Chosen("foo")


@pytest.mark.asyncio
async def test_tab_in_prompt_falls_back_with_three_candidates():
    fallback = AsyncMock(return_value="b")
    selector = ShortcutSelector(scripted_prompt(TAB), fallback)

    assert await selector.select("Pick: ", ["a", "b", "c"]) == Fallback("b")
    fallback.assert_awaited_once()


@pytest.mark.asyncio
async def test_escape_in_prompt_cancels():
    selector = ShortcutSelector(scripted_prompt(ESCAPE), AsyncMock())
    assert await selector.select("Pick: ", FOOS) == Cancelled()
