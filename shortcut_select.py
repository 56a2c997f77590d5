#!/usr/bin/env python3
"""Single-keystroke selection with a completion fallback.

A drop-in replacement for a "pick one of these strings" prompt:
- Each candidate gets a shortcut character, so a single key picks it
- The default candidate is highlighted first, Up/Down cycle without stopping
  at the ends of the list
- Too many candidates for the shortcut alphabet (or Tab pressed in the
  prompt) hands the whole request to a generic completion prompt

The terminal side lives in select_prompt.py (shortcut prompt) and
completion_prompt.py (fallback); this module only decides and resolves.
"""

from dataclasses import dataclass
from typing import (Any, Callable, Dict, List, Mapping, NamedTuple, Optional,
                    Sequence, Tuple, Union)

import iterm2

from screen_overlay import debug_print

# Home row first, then the top row
SHORTCUT_CHARS = 'asdfghjklqwerty'
MARKER_DELIMITER = '['
FALLBACK_KEY = iterm2.Keycode.TAB
HISTORY_REPLICAS = 4


class EmptyMenu(Exception):
    """The candidate source produced nothing to choose from."""


@dataclass(frozen=True)
class Candidate:
    label: str
    value: Any


@dataclass(frozen=True)
class MenuEntry:
    """A candidate together with its shortcut character.

    ``marker`` is None when the entry could not get a shortcut.
    """
    label: str
    marker: Optional[str]
    value: Any

    @property
    def decorated(self) -> str:
        if self.marker is None:
            return self.label
        return f"{MARKER_DELIMITER}{self.marker}] {self.label}"


@dataclass(frozen=True)
class Chosen:
    value: Any


@dataclass(frozen=True)
class Fallback:
    result: Any


@dataclass(frozen=True)
class Cancelled:
    pass


SelectionOutcome = Union[Chosen, Fallback, Cancelled]


@dataclass(frozen=True)
class Accepted:
    """The prompt was committed; ``text`` is None when it was dismissed."""
    text: Optional[str]


@dataclass(frozen=True)
class ForcedFallback:
    pass


PromptResult = Union[Accepted, ForcedFallback]


@dataclass(frozen=True)
class SelectorConfig:
    shortcut_chars: str = SHORTCUT_CHARS
    fallback_key: Any = FALLBACK_KEY


class SelectionRequest(NamedTuple):
    """The arguments of one select() call, in entry-point order."""
    prompt_label: str
    collection: Any
    predicate: Optional[Callable] = None
    require_match: bool = False
    initial_input: Optional[str] = None
    history: Optional[List[str]] = None
    default: Any = None
    inherit_input_method: bool = False


def all_completions(filter_text: str, collection, predicate: Optional[Callable] = None) -> List[Candidate]:
    """Collect the candidates of ``collection`` starting with ``filter_text``.

    ``collection`` is one of:
        - a sequence: every item is a candidate labelled ``str(item)``
        - a mapping: every key is a candidate, the predicate gets (key, value)
        - a callable ``(filter_text, predicate) -> labels`` doing its own filtering
    """
    if callable(collection) and not isinstance(collection, Mapping):
        return [Candidate(str(label), label) for label in collection(filter_text, predicate)]

    candidates: List[Candidate] = []
    if isinstance(collection, Mapping):
        for key, value in collection.items():
            label = str(key)
            if not label.startswith(filter_text):
                continue
            if predicate is not None and not predicate(key, value):
                continue
            candidates.append(Candidate(label, key))
    else:
        for item in collection:
            label = str(item)
            if not label.startswith(filter_text):
                continue
            if predicate is not None and not predicate(item):
                continue
            candidates.append(Candidate(label, item))
    return candidates


def assign_shortcuts(candidates: Sequence[Candidate],
                     shortcut_chars: str = SHORTCUT_CHARS) -> Tuple[List[MenuEntry], bool]:
    """Give each candidate the next unused shortcut character.

    Labels starting with MARKER_DELIMITER and candidates past the end of the
    alphabet get no marker. Returns (entries, overflow) where overflow is
    True if any entry has no marker.
    """
    # Repeated characters in the alphabet are only used once
    available = iter(dict.fromkeys(shortcut_chars))
    entries: List[MenuEntry] = []
    for candidate in candidates:
        if not candidate.label:
            raise ValueError("Candidate labels must be non-empty")
        marker = None
        if not candidate.label.startswith(MARKER_DELIMITER):
            marker = next(available, None)
        entries.append(MenuEntry(candidate.label, marker, candidate.value))

    overflow = any(entry.marker is None for entry in entries)
    return entries, overflow


def history_anchor(n: int, d: int) -> int:
    """Position of candidate ``d`` (of ``n``) in the cyclic history.

    The history is newest-first (Up moves to a higher position) and holds the
    candidates in reverse order, HISTORY_REPLICAS times over. The anchor sits
    in the second replica: ``d`` steps of Up and ``n - 1 - d`` steps of Down
    stay inside it, with whole replicas beyond both of its ends.
    """
    if n < 1:
        raise ValueError(f"Need at least one candidate, got {n}")
    if not 0 <= d < n:
        raise ValueError(f"Default index {d} out of range for {n} candidates")
    return 2 * n - 1 - d


def build_cyclic_history(entries: Sequence[MenuEntry], default_index: int) -> Tuple[List[str], int]:
    """Build the seed history and starting position for the shortcut prompt."""
    anchor = history_anchor(len(entries), default_index)
    replica = [entry.decorated for entry in reversed(entries)]
    return replica * HISTORY_REPLICAS, anchor


def resolve_default_index(entries: Sequence[MenuEntry], default) -> int:
    """Index of the entry labelled ``default``, 0 if there is none.

    A list or tuple default uses its first element.
    """
    if isinstance(default, (list, tuple)):
        default = default[0] if default else None
    if default is None:
        return 0
    for idx, entry in enumerate(entries):
        if entry.label == default:
            return idx
    return 0


def format_prompt(prompt_label: str, default_entry: MenuEntry) -> str:
    """'Session: ' -> 'Session (default [a] foo): '"""
    base = prompt_label.rstrip()
    if base.endswith(':'):
        base = base[:-1]
    return f"{base} (default {default_entry.decorated}): "


def resolve_choice(raw: Optional[str], entries: Sequence[MenuEntry],
                   prompt_text: str = "") -> Optional[MenuEntry]:
    """Map the text a prompt returned back to its menu entry.

    Tries an exact decorated label, then the same with the shown prompt text
    stripped, then a unique completion against the decorated labels.
    Returns None if nothing (or more than one entry) matches.
    """
    if raw is None:
        return None

    by_decorated: Dict[str, MenuEntry] = {entry.decorated: entry for entry in entries}
    if raw in by_decorated:
        return by_decorated[raw]

    if prompt_text and raw.startswith(prompt_text):
        stripped = raw[len(prompt_text):]
        if stripped in by_decorated:
            return by_decorated[stripped]

    completions = [decorated for decorated in by_decorated if decorated.startswith(raw)]
    if len(completions) == 1:
        return by_decorated[completions[0]]

    debug_print(f"Unresolvable choice {raw!r} ({len(completions)} completions)")
    return None


class ShortcutSelector:
    """Chooses between the shortcut prompt and the fallback for each request.

    Args:
        prompt: awaitable ``(prompt_text, table, require_match, history,
            position, fallback_key) -> PromptResult``
        fallback: awaitable with the same signature as select()
        config: shortcut alphabet and fallback key
    """

    def __init__(self, prompt, fallback, config: Optional[SelectorConfig] = None):
        self.prompt = prompt
        self.fallback = fallback
        self.config = config or SelectorConfig()

    async def select(self, prompt_label: str, collection, predicate=None,
                     require_match: bool = False, initial_input: Optional[str] = None,
                     history: Optional[List[str]] = None, default=None,
                     inherit_input_method: bool = False) -> SelectionOutcome:
        request = SelectionRequest(prompt_label, collection, predicate, require_match,
                                   initial_input, history, default, inherit_input_method)

        candidates = all_completions(initial_input or "", collection, predicate)
        if not candidates:
            raise EmptyMenu(f"Nothing to choose from for {prompt_label!r}")

        if len(candidates) == 1:
            debug_print(f"Single candidate {candidates[0].label!r}, not prompting")
            return Chosen(candidates[0].value)

        entries, overflow = assign_shortcuts(candidates, self.config.shortcut_chars)
        if overflow:
            debug_print(f"{len(entries)} candidates do not fit the shortcuts, falling back")
            return await self.delegate(request)

        default_index = resolve_default_index(entries, default)
        prompt_text = format_prompt(prompt_label, entries[default_index])
        table = {entry.decorated: entry.value for entry in entries}
        seed, anchor = build_cyclic_history(entries, default_index)
        debug_print(f"Prompting with {len(entries)} entries, default={default_index}, anchor={anchor}")

        result = await self.prompt(prompt_text, table, require_match, seed, anchor,
                                   self.config.fallback_key)
        if isinstance(result, ForcedFallback):
            debug_print("Fallback requested from the prompt")
            return await self.delegate(request)

        entry = resolve_choice(result.text, entries, prompt_text)
        if entry is None:
            return Cancelled()
        return Chosen(entry.value)

    async def delegate(self, request: SelectionRequest) -> Fallback:
        """Run the fallback with the request exactly as it was received."""
        return Fallback(await self.fallback(*request))

    async def completing_read(self, prompt_label: str, collection, predicate=None,
                              require_match: bool = False, initial_input: Optional[str] = None,
                              history: Optional[List[str]] = None, default=None,
                              inherit_input_method: bool = False):
        """Like select(), but return the picked value itself (None if cancelled)."""
        outcome = await self.select(prompt_label, collection, predicate, require_match,
                                    initial_input, history, default, inherit_input_method)
        if isinstance(outcome, Chosen):
            return outcome.value
        if isinstance(outcome, Fallback):
            return outcome.result
        return None
