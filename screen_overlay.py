#!/usr/bin/env python3
"""Terminal overlay helpers shared by the selection prompts.

Menus are drawn by injecting escape sequences into the session, either on
the alternate screen buffer or directly over the visible screen (tmux/ssh),
in which case the cells under the menu are redrawn afterwards.
"""

import sys
from typing import List, Sequence, Tuple

import iterm2
import iterm2.screen

# Set to True to enable debug output
DEBUG = False

# (start_row, start_col, width, height), 1-indexed screen coordinates
MenuPos = Tuple[int, int, int, int]
NO_MENU: MenuPos = (0, 0, 0, 0)

PRINTABLE_KEYS = (
    'abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'
    '`~!@#$%^&*()-_=+[]{}\\|;:\'",.<>/? '
)

# Session variables whose value means a multiplexer (or a remote one) may
# sit between us and the screen
MULTIPLEXER_HINTS = (
    ("user.TERM", lambda value: "tmux" in value or "screen" in value),
    ("jobName", lambda value: "tmux" in value or value == "ssh"),
)

MENU_BORDER = "\033[1;37;44m"    # Bold white on blue
MENU_TITLE = "\033[1;33m"        # Bold yellow
MENU_TEXT = "\033[0;37;44m"
MENU_SELECTED = "\033[1;30;47m"  # Bold black on white
RESET = "\033[0m"

CELL_ATTRIBUTES = (("bold", "1"), ("faint", "2"), ("italic", "3"),
                   ("underline", "4"), ("inverse", "7"))


def debug_print(msg: str):
    """Print debug message if DEBUG is enabled."""
    if DEBUG:
        print(f"[DEBUG] {msg}", file=sys.stderr, flush=True)


def keystroke_pattern(*keycodes) -> iterm2.KeystrokePattern:
    """Pattern catching every printable key plus ``keycodes``."""
    pattern = iterm2.KeystrokePattern()
    pattern.characters = list(PRINTABLE_KEYS)
    pattern.keycodes = list(keycodes)
    return pattern


async def should_use_alt_screen(session) -> bool:
    """False when a multiplexer is likely, the menu is then drawn in place."""
    for name, is_multiplexed in MULTIPLEXER_HINTS:
        try:
            value = await session.async_get_variable(name)
        except Exception as e:
            debug_print(f"Cannot read {name}: {e}")
            continue
        if value and is_multiplexed(value.lower()):
            debug_print(f"{name}={value}, drawing over the screen")
            return False
    return True


async def get_screen_content(session) -> Tuple[List[iterm2.screen.LineContents], Tuple[int, int]]:
    """Get the visible lines and the screen-relative cursor position.

    The cursor is (-1, -1) when the API does not report it.
    """
    contents = await session.async_get_screen_contents()
    line_info = await session.async_get_line_info()
    lines = [contents.line(i) for i in range(contents.number_of_lines)]

    cursor = getattr(contents, "cursor_coord", None)
    if not cursor:
        return lines, (-1, -1)
    # cursor_coord.y counts scrollback lines too
    return lines, (cursor.y - line_info.first_visible_line_number, cursor.x)


def line_cells(line: iterm2.screen.LineContents) -> List[str]:
    """The cells of a line, blanks for empty cells."""
    cells = []
    while True:
        try:
            cell = line.string_at(len(cells))
        except IndexError:
            return cells
        cells.append(cell or ' ')


def line_to_string(line: iterm2.screen.LineContents) -> str:
    return ''.join(line_cells(line))


def screen_size(lines: List[iterm2.screen.LineContents]) -> Tuple[int, int]:
    """Return (height, width), estimating the width from the first line."""
    width = len(line_cells(lines[0])) if lines else 0
    return len(lines), width or 80


def _fit(text: str, width: int) -> str:
    """Cut ``text`` to ``width`` with an ellipsis, then pad it."""
    if len(text) > width:
        text = text[:max(0, width - 3)] + "..."
    return text.ljust(width)


def menu_geometry(row_count: int, content_width: int, screen_height: int,
                  screen_width: int, cursor_row: int = -1, cursor_col: int = -1) -> MenuPos:
    """Place a menu of ``row_count`` rows below the cursor, or above it if it
    does not fit. Without a cursor the menu goes to the bottom right.
    """
    # Header, input line, separator and two borders
    height = max(6, min(row_count + 5, screen_height - 2))
    width = max(min(content_width + 6, screen_width - 4), 30)

    if cursor_row < 0 or cursor_col < 0:
        return max(1, screen_height - height), max(1, screen_width - width - 2), width, height

    if cursor_row + height + 1 <= screen_height:
        row = cursor_row + 2
    else:
        row = max(1, cursor_row - height)
    return row, max(1, min(cursor_col, screen_width - width - 1)), width, height


def build_menu_box(title: str,
                   input_line: str,
                   rows: Sequence[str],
                   selected_idx: int,
                   screen_height: int,
                   screen_width: int,
                   cursor_row: int = -1,
                   cursor_col: int = -1) -> Tuple[str, MenuPos]:
    """Render a boxed menu; rows scroll so ``selected_idx`` stays visible.

    Returns the escape sequence and the MenuPos needed to erase it again.
    """
    content_width = max([len(r) for r in rows] + [len(title), len(input_line) + 3])
    pos = menu_geometry(len(rows), content_width, screen_height, screen_width,
                        cursor_row, cursor_col)
    start_row, start_col, width, height = pos
    inner = width - 2
    visible = height - 5
    first = max(0, selected_idx - visible + 1)

    body = [
        (MENU_TITLE, _fit(f" {title} ", inner).rstrip().center(inner)),
        (MENU_TEXT, _fit(f" > {input_line}_", inner)),
    ]
    for idx in range(first, first + visible):
        text = rows[idx] if idx < len(rows) else ""
        style = MENU_SELECTED if idx == selected_idx and text else MENU_TEXT
        body.append((style, _fit(f" {text}", inner)))

    def at(offset: int) -> str:
        return f"\033[{start_row + offset};{start_col}H"

    parts = ["\0337", at(0), MENU_BORDER, "╭" + "─" * inner + "╮"]
    for offset, (style, text) in enumerate(body[:2], start=1):
        parts += [at(offset), "│", style, text, MENU_BORDER, "│"]
    parts += [at(3), "├" + "─" * inner + "┤"]
    for offset, (style, text) in enumerate(body[2:], start=4):
        parts += [at(offset), "│", style, text, MENU_BORDER, "│"]
    parts += [at(height - 1), "╰" + "─" * inner + "╯", "\033[0m\0338"]
    return ''.join(parts), pos


def _cell_sgr(line, col: int) -> str:
    """SGR sequence reproducing the attributes of one cell, if known."""
    style = None
    if hasattr(line, 'style_at'):
        try:
            style = line.style_at(col)
        except Exception:
            pass
    codes = ["0"] + [code for attr, code in CELL_ATTRIBUTES if getattr(style, attr, False)]
    return f"\033[{';'.join(codes)}m"


def build_screen_restore(lines: List[iterm2.screen.LineContents], menu_pos: MenuPos) -> str:
    """Redraw the captured cells covered by the menu at ``menu_pos``."""
    start_row, start_col, width, height = menu_pos
    parts = ["\0337"]
    current = None
    for row in range(start_row - 1, min(start_row - 1 + height, len(lines))):
        line = lines[row]
        cells = line_cells(line)
        parts.append(f"\033[{row + 1};{start_col}H")
        for col in range(start_col - 1, start_col - 1 + width):
            if col < len(cells):
                sgr, char = _cell_sgr(line, col), cells[col]
            else:
                sgr, char = RESET, " "
            if sgr != current:
                parts.append(sgr)
                current = sgr
            parts.append(char)
    parts.append(RESET + "\0338")
    return ''.join(parts)


def build_screen_sequence(lines: List[iterm2.screen.LineContents]) -> str:
    """Redraw the whole captured screen (onto the alternate buffer)."""
    parts = ["\0337"]
    for row, line in enumerate(lines):
        cells = line_cells(line)
        if cells:
            parts += [f"\033[{row + 1};1H", ''.join(cells)]
    parts.append("\0338")
    return ''.join(parts)


class Overlay:
    """Draws successive menus over a session and erases the last one.

    Resizing menus are handled by erasing the previous, larger one first.
    """

    def __init__(self, session, lines: List[iterm2.screen.LineContents], use_alt_screen: bool):
        self.session = session
        self.lines = lines
        self.use_alt_screen = use_alt_screen
        self.menu_pos: MenuPos = NO_MENU

    async def _inject(self, text: str):
        await self.session.async_inject(text.encode('utf-8'))

    async def open(self):
        if self.use_alt_screen:
            await self._inject("\033[?1049h" + build_screen_sequence(self.lines))

    async def draw(self, menu: str, menu_pos: MenuPos):
        if not self.use_alt_screen and self.menu_pos[3] > menu_pos[3]:
            await self._inject(build_screen_restore(self.lines, self.menu_pos))
        self.menu_pos = menu_pos
        await self._inject(menu)

    async def close(self):
        if self.use_alt_screen:
            # Leaving the alternate buffer brings the main screen back as it was
            await self._inject("\033[?1049l")
        elif self.menu_pos != NO_MENU:
            await self._inject(build_screen_restore(self.lines, self.menu_pos))


async def open_overlay(session) -> Tuple[Overlay, Tuple[int, int, int, int]]:
    """Capture the session screen for a popup.

    Returns the overlay and (screen_height, screen_width, cursor_row, cursor_col).
    """
    use_alt_screen = await should_use_alt_screen(session)
    lines, (cursor_row, cursor_col) = await get_screen_content(session)
    height, width = screen_size(lines)
    return Overlay(session, lines, use_alt_screen), (height, width, cursor_row, cursor_col)
