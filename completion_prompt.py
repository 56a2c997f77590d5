#!/usr/bin/env python3
"""Filter-as-you-type completion popup for iTerm2.

This is the fallback of the shortcut prompt, used when there are too many
candidates for single-key shortcuts or when Tab is pressed there. It takes
the same arguments as ShortcutSelector.select().

Usage:
    - Type to filter candidates
    - Use Up/Down or Tab/Shift-Tab to navigate
    - Enter to select, Escape to cancel
"""

from typing import List, Optional, Sequence, Tuple

import iterm2

from screen_overlay import build_menu_box, debug_print, keystroke_pattern, open_overlay
from shortcut_select import all_completions

MAX_COMPLETIONS = 20   # Maximum candidates to show
HISTORY_LENGTH = 100   # Entries kept in a caller's history list

PREFIX, SUBSTRING, SUBSEQUENCE = range(3)


def match_rank(pattern: str, text: str) -> Optional[Tuple[int, int]]:
    """Rank ``text`` against ``pattern``, case-insensitively; lower is better.

    The rank is (tier, cost): a prefix match costs nothing, a substring
    match costs its offset and a scattered match costs the span it covers.
    None means no match.
    """
    pattern = pattern.lower()
    text = text.lower()
    if text.startswith(pattern):
        return PREFIX, 0

    offset = text.find(pattern)
    if offset >= 0:
        return SUBSTRING, offset

    positions = []
    for i, char in enumerate(text):
        if len(positions) < len(pattern) and char == pattern[len(positions)]:
            positions.append(i)
    if len(positions) < len(pattern):
        return None
    return SUBSEQUENCE, positions[-1] - positions[0] + 1


def filter_candidates(labels: Sequence[str], filter_text: str) -> List[str]:
    """Labels matching ``filter_text``, best first, ties in original order."""
    ranked = [(rank, label) for label in labels
              for rank in [match_rank(filter_text, label)] if rank is not None]
    ranked.sort(key=lambda pair: pair[0])
    return [label for _, label in ranked[:MAX_COMPLETIONS]]


def default_label(default) -> Optional[str]:
    if isinstance(default, (list, tuple)):
        return default[0] if default else None
    return default


def push_history(history: Optional[List[str]], item: str):
    """Move ``item`` to the front of ``history``, dropping the oldest entries."""
    if history is None or not item:
        return
    if item in history:
        history.remove(item)
    history.insert(0, item)
    del history[HISTORY_LENGTH:]


async def run_completion_loop(mon, render, labels: Sequence[str], filter_text: str,
                              default: Optional[str], require_match: bool) -> Optional[str]:
    """Read keystrokes from ``mon`` until a label is picked or the popup is closed.

    ``render(filter_text, filtered, selected_idx)`` redraws before every key.
    Returns the picked label, the typed text if free text is allowed, or None.
    """
    filtered = filter_candidates(labels, filter_text)
    selected_idx = filtered.index(default) if default in filtered else 0

    while True:
        filtered = filter_candidates(labels, filter_text)
        last = max(0, len(filtered) - 1)
        selected_idx = min(selected_idx, last)
        await render(filter_text, filtered, selected_idx)

        keystroke = await mon.async_get()
        keycode = keystroke.keycode
        shifted = iterm2.Modifier.SHIFT in (keystroke.modifiers or [])

        if keycode == iterm2.Keycode.ESCAPE:
            return None
        if keycode == iterm2.Keycode.RETURN:
            if filtered:
                return filtered[selected_idx]
            if not require_match:
                return filter_text or default or ""
            debug_print(f"No candidate matches {filter_text!r}")
        elif keycode == iterm2.Keycode.TAB and not shifted:
            # Tab wraps around, the arrows stop at the ends
            selected_idx = (selected_idx + 1) % len(filtered) if filtered else 0
        elif keycode in (iterm2.Keycode.TAB, iterm2.Keycode.UP_ARROW):
            selected_idx = max(0, selected_idx - 1)
        elif keycode == iterm2.Keycode.DOWN_ARROW:
            selected_idx = min(last, selected_idx + 1)
        elif keycode == iterm2.Keycode.DELETE:
            filter_text = filter_text[:-1]
            selected_idx = 0
        elif keystroke.characters:
            filter_text += keystroke.characters
            selected_idx = 0


class CompletionPrompt:
    """Completion popup bound to one iTerm2 session.

    The candidates are the ones the shortcut prompt would have listed for
    the same request: those starting with ``initial_input``. Returns the
    value of the picked candidate (the original item, or the key of a
    mapping), the typed text when a match is not required, or None when
    cancelled.
    """

    def __init__(self, connection, session):
        self.connection = connection
        self.session = session

    async def __call__(self, prompt: str, collection, predicate=None,
                       require_match: bool = False, initial_input: Optional[str] = None,
                       history: Optional[List[str]] = None, default=None,
                       inherit_input_method: bool = False):
        # inherit_input_method has no terminal counterpart
        session_id = self.session.session_id
        candidates = all_completions(initial_input or "", collection, predicate)
        values = {c.label: c.value for c in candidates}
        debug_print(f"Completion popup over {len(values)} candidates")

        overlay, (height, width, cursor_row, cursor_col) = await open_overlay(self.session)

        async def render(filter_text: str, filtered: List[str], selected_idx: int):
            await overlay.draw(*build_menu_box(
                f"{prompt.strip()} ({len(filtered)})", filter_text, filtered,
                selected_idx, height, width, cursor_row, cursor_col
            ))

        pattern = keystroke_pattern(iterm2.Keycode.ESCAPE, iterm2.Keycode.RETURN,
                                    iterm2.Keycode.TAB, iterm2.Keycode.UP_ARROW,
                                    iterm2.Keycode.DOWN_ARROW, iterm2.Keycode.DELETE)
        label: Optional[str] = None
        async with iterm2.KeystrokeFilter(self.connection, [pattern], session_id):
            async with iterm2.KeystrokeMonitor(self.connection, session_id) as mon:
                await overlay.open()
                try:
                    label = await run_completion_loop(
                        mon, render, list(values), initial_input or "",
                        default_label(default), require_match
                    )
                finally:
                    await overlay.close()

        debug_print(f"Completion result: {label!r}")
        if label is None:
            return None
        push_history(history, label)
        return values[label] if label in values else label
