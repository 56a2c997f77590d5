#!/usr/bin/env python3
"""Complete the word at the cursor by picking from words on the screen.

Like screen completion, but every candidate gets a single-key shortcut
(nearest word first, and highlighted). With too many candidates, or after
pressing Tab, the filter-as-you-type completion popup takes over.

Usage:
    Assign to a hotkey, then press the shortcut key of the wanted word.
"""

import asyncio
import re
from typing import List, Optional, Set, Tuple

import iterm2
import iterm2.screen

from completion_prompt import CompletionPrompt
from screen_overlay import debug_print, get_screen_content, line_to_string
from select_prompt import ShortcutPrompt
from shortcut_select import ShortcutSelector

MIN_WORD_LENGTH = 2        # Minimum word length to consider
INCLUDE_SCROLLBACK = True  # Include scrollback buffer in completion source
MAX_SCROLLBACK_LINES = 300 # Maximum scrollback lines to scan

WORD_PATTERN = re.compile(r'[a-zA-Z_][a-zA-Z0-9_\-\.]*')
WORD_CHARS = set('abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-.')


async def get_scrollback_text(session) -> List[str]:
    """Get text from scrollback buffer."""
    if not INCLUDE_SCROLLBACK:
        return []

    try:
        line_info = await session.async_get_line_info()
        scrollback_height = line_info.scrollback_buffer_height

        if scrollback_height == 0:
            return []

        lines_to_read = min(scrollback_height, MAX_SCROLLBACK_LINES)
        start_line = max(0, scrollback_height - lines_to_read)

        contents = await session.async_get_contents(start_line, lines_to_read)
        text_lines = [line_to_string(contents.line(i)) for i in range(contents.number_of_lines)]

        debug_print(f"Read {len(text_lines)} lines from scrollback")
        return text_lines

    except Exception as e:
        debug_print(f"Error reading scrollback: {e}")
        return []


def get_cursor_position(lines: List[iterm2.screen.LineContents]) -> Tuple[int, int]:
    """Estimate cursor position (end of the last line with content)."""
    for row in range(len(lines) - 1, -1, -1):
        line_text = line_to_string(lines[row]).rstrip()
        if line_text:
            return row, len(line_text)
    return len(lines) - 1, 0


def extract_word_prefix(line_text: str, cursor_col: int) -> str:
    """Extract the word prefix that ends at the cursor column."""
    end = min(cursor_col, len(line_text))
    start = end
    while start > 0 and line_text[start - 1] in WORD_CHARS:
        start -= 1
    return line_text[start:end]


def find_word_completions(screen_text: List[str],
                          prefix: str,
                          cursor_row: int,
                          scrollback_text: Optional[List[str]] = None) -> List[str]:
    """Find all words starting with prefix, ordered by proximity to cursor."""
    matches: List[Tuple[str, int]] = []
    seen: Set[str] = {prefix}  # Don't include the prefix itself

    def collect(text_lines: List[str], distance_of):
        for row, line_text in enumerate(text_lines):
            for match in WORD_PATTERN.finditer(line_text):
                word = match.group()
                if len(word) < MIN_WORD_LENGTH or not word.startswith(prefix) or word in seen:
                    continue
                seen.add(word)
                matches.append((word, distance_of(row, match.start())))

    # Prefer words on the cursor line, then nearby lines
    collect(screen_text, lambda row, col: abs(row - cursor_row) * 1000 + col)

    if scrollback_text:
        # Scrollback is further away, most recent first
        base = len(screen_text) * 1000
        collect(scrollback_text,
                lambda row, col: base + (len(scrollback_text) - row) * 1000 + col)

    matches.sort(key=lambda x: x[1])
    debug_print(f"Found {len(matches)} completions for '{prefix}'")
    return [m[0] for m in matches]


async def select_screen_word(connection, session):
    """Pick a screen word completing the prefix at the cursor and insert it."""
    lines, (cursor_row, cursor_col) = await get_screen_content(session)
    if cursor_row < 0 or cursor_col < 0:
        debug_print("Cursor position not available from API, using heuristic")
        cursor_row, cursor_col = get_cursor_position(lines)

    screen_text = [line_to_string(line) for line in lines]
    prefix = ""
    if 0 <= cursor_row < len(screen_text):
        prefix = extract_word_prefix(screen_text[cursor_row], cursor_col)
    debug_print(f"Prefix at cursor: '{prefix}'")

    scrollback_text = await get_scrollback_text(session)
    words = find_word_completions(screen_text, prefix, cursor_row, scrollback_text)
    if not words:
        debug_print("No completions found")
        return

    selector = ShortcutSelector(ShortcutPrompt(connection, session),
                                CompletionPrompt(connection, session))
    word = await selector.completing_read("Complete: ", words,
                                          initial_input=prefix, default=words[0])
    if not word:
        return

    if word.startswith(prefix):
        text = word[len(prefix):]
    else:
        # Free text from the completion popup replaces the prefix
        text = '\x7f' * len(prefix) + word
    debug_print(f"Inserting '{text}' for '{word}'")
    if text:
        # Small delay to ensure terminal is ready after screen restore
        await asyncio.sleep(0.05)
        # async_send_text sends as USER INPUT, async_inject would be terminal output
        await session.async_send_text(text)


async def main(connection):
    """Main entry point."""
    app = await iterm2.async_get_app(connection)

    window = app.current_terminal_window
    if not window:
        return

    session = window.current_tab.current_session
    if not session:
        return

    await select_screen_word(connection, session)


if __name__ == "__main__":
    iterm2.run_until_complete(main)
