#!/usr/bin/env python3
"""Switch to another session of the current window with a single key.

The current session is highlighted; Up/Down cycle through the others.
"""

from typing import Dict, List

import iterm2

from completion_prompt import CompletionPrompt
from screen_overlay import debug_print
from select_prompt import ShortcutPrompt
from shortcut_select import ShortcutSelector


def session_labels(sessions: List) -> Dict[str, object]:
    """Label each session by name, numbering repeated names 'name <2>'."""
    labels: Dict[str, object] = {}
    for session in sessions:
        name = (session.name or "").strip() or "Session"
        label = name
        n = 2
        while label in labels:
            label = f"{name} <{n}>"
            n += 1
        labels[label] = session
    return labels


async def switch_session(connection, window):
    current = window.current_tab.current_session
    if current is None:
        return
    sessions = [session for tab in window.tabs for session in tab.sessions]
    by_label = session_labels(sessions)
    default = next((label for label, s in by_label.items() if s is current), None)

    selector = ShortcutSelector(ShortcutPrompt(connection, current),
                                CompletionPrompt(connection, current))
    label = await selector.completing_read("Session: ", by_label,
                                           require_match=True, default=default)
    debug_print(f"Switching to {label!r}")
    target = by_label.get(label)
    if target is not None and target is not current:
        await target.async_activate()


async def main(connection):
    app = await iterm2.async_get_app(connection)
    window = app.current_terminal_window
    if window is not None:
        await switch_session(connection, window)
    else:
        print("No Current Window")


if __name__ == "__main__":
    iterm2.run_until_complete(main)
