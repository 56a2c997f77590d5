#!/usr/bin/env python3
"""Shortcut prompt for iTerm2.

Draws the decorated candidates in a popup and reads single keystrokes:
    - Shortcut character: pick that candidate
    - Up/Down: walk the seeded history
    - Enter: pick the highlighted candidate
    - Tab: hand over to the completion prompt
    - Escape: dismiss
"""

from typing import Dict, List, Optional, Sequence

import iterm2

from screen_overlay import build_menu_box, debug_print, keystroke_pattern, open_overlay
from shortcut_select import MARKER_DELIMITER, Accepted, ForcedFallback, PromptResult

# History steps; the history is newest-first so Up goes to higher positions
HISTORY_STEPS = {
    iterm2.Keycode.UP_ARROW: 1,
    iterm2.Keycode.DOWN_ARROW: -1,
}


def shortcut_map(decorated_labels: Sequence[str]) -> Dict[str, str]:
    """Map each shortcut character to its decorated label ('[a] foo')."""
    shortcuts: Dict[str, str] = {}
    for decorated in decorated_labels:
        if decorated.startswith(MARKER_DELIMITER) and decorated[2:4] == '] ':
            shortcuts[decorated[1]] = decorated
    return shortcuts


async def run_selection_loop(mon, render, decorated_labels: Sequence[str],
                             history: List[str], position: int,
                             fallback_key) -> PromptResult:
    """Read keystrokes from ``mon`` until the user commits.

    ``render(position)`` redraws the popup before every keystroke. The
    position stops at both ends of ``history``.
    """
    shortcuts = shortcut_map(decorated_labels)
    last = len(history) - 1
    position = max(0, min(position, last))

    while True:
        await render(position)
        keystroke = await mon.async_get()
        keycode = keystroke.keycode

        if keycode == fallback_key:
            return ForcedFallback()
        if keycode == iterm2.Keycode.ESCAPE:
            return Accepted(None)
        if keycode == iterm2.Keycode.RETURN:
            return Accepted(history[position])
        if keycode in HISTORY_STEPS:
            position = max(0, min(last, position + HISTORY_STEPS[keycode]))
            continue

        key = (keystroke.characters or "").lower()[:1]
        if key in shortcuts:
            return Accepted(shortcuts[key])
        debug_print(f"Ignoring key {keystroke.characters!r}")


class ShortcutPrompt:
    """Shortcut prompt bound to one iTerm2 session."""

    def __init__(self, connection, session):
        self.connection = connection
        self.session = session

    async def __call__(self, prompt_text: str, table: Dict[str, object],
                       require_match: bool, history: List[str], position: int,
                       fallback_key) -> PromptResult:
        # Only rows of the table can be picked, so require_match always holds
        session_id = self.session.session_id
        rows = list(table)
        overlay, (height, width, cursor_row, cursor_col) = await open_overlay(self.session)

        async def render(current: int):
            selected = history[current]
            await overlay.draw(*build_menu_box(
                prompt_text.strip(), selected, rows, rows.index(selected),
                height, width, cursor_row, cursor_col
            ))

        pattern = keystroke_pattern(iterm2.Keycode.ESCAPE, iterm2.Keycode.RETURN,
                                    iterm2.Keycode.UP_ARROW, iterm2.Keycode.DOWN_ARROW,
                                    fallback_key)
        result: Optional[PromptResult] = None
        async with iterm2.KeystrokeFilter(self.connection, [pattern], session_id):
            async with iterm2.KeystrokeMonitor(self.connection, session_id) as mon:
                await overlay.open()
                try:
                    result = await run_selection_loop(mon, render, rows, history,
                                                      position, fallback_key)
                finally:
                    await overlay.close()

        debug_print(f"Shortcut prompt result: {result}")
        return result
