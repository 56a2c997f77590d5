from types import SimpleNamespace
from unittest.mock import AsyncMock

import iterm2
import pytest

import screen_overlay


class FakeLine:
    """Stands in for iterm2.screen.LineContents."""

    def __init__(self, text):
        self.text = text

    def string_at(self, col):
        if col >= len(self.text):
            raise IndexError(col)
        return self.text[col]


class FakeContext:
    """Async context manager standing in for KeystrokeFilter/KeystrokeMonitor."""

    def __init__(self, value=None):
        self.value = value

    async def __aenter__(self):
        return self.value

    async def __aexit__(self, *exc):
        return False


class FakeMonitor:
    """Plays back a fixed list of keystrokes."""

    def __init__(self, keys):
        self._keys = list(keys)

    async def async_get(self):
        return self._keys.pop(0)


@pytest.fixture
def make_lines():
    def make(*texts):
        return [FakeLine(text) for text in texts]
    return make


@pytest.fixture
def keystroke():
    def make(keycode=None, characters="", modifiers=()):
        return SimpleNamespace(keycode=keycode, characters=characters, modifiers=list(modifiers))
    return make


@pytest.fixture
def scripted_session(monkeypatch, make_lines):
    """A session whose popups read ``keys`` and draw into ``async_inject``."""
    def make(keys, alt_screen=True):
        monitor = FakeMonitor(keys)
        monkeypatch.setattr(iterm2, "KeystrokeFilter", lambda *args: FakeContext())
        monkeypatch.setattr(iterm2, "KeystrokeMonitor", lambda *args: FakeContext(monitor))
        monkeypatch.setattr(screen_overlay, "should_use_alt_screen",
                            AsyncMock(return_value=alt_screen))
        monkeypatch.setattr(screen_overlay, "get_screen_content",
                            AsyncMock(return_value=(make_lines("$ ls", "", "", ""), (0, 4))))
        return SimpleNamespace(session_id="s1", async_inject=AsyncMock())
    return make
