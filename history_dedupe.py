"""
history_dedupe.py - Exclusion filtering, deduplication and ordering

Takes parsed history entries and produces the cleaned history:

1.  **Filter:** entries whose command matches any exclusion pattern are
    dropped, unless they also match a keep pattern.
2.  **Deduplicate:** among entries with identical command text, only the most
    recent survives.
3.  **Order:** survivors are written oldest first, the order Bash replays them.

"Most recent" is the position in the file by default. Timestamps can be
missing, repeated or out of order (several shells appending to the same file),
while the position is always present and strictly increasing. Ordering by
timestamp is available through `Recency.TIMESTAMP`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Protocol, Sequence

from history_parser import HistoryEntry, parse_history, serialize_entries

# ============================================================================
# PATTERNS
# ============================================================================


class Pattern(Protocol):
    """Anything that can decide whether a command matches."""

    def matches(self, text: str) -> bool: ...


class MatchMode(str, Enum):
    SEARCH = "search"
    FULLMATCH = "fullmatch"


class Recency(str, Enum):
    POSITION = "position"
    TIMESTAMP = "timestamp"


class ExclusionPatternError(ValueError):
    """Raised when a configured pattern is not a valid regular expression."""

    def __init__(self, source: str, position: int, reason: str):
        super().__init__(f"invalid pattern #{position + 1} {source!r}: {reason}")
        self.source = source
        self.position = position
        self.reason = reason


@dataclass(frozen=True)
class RegexPattern:
    """A compiled regular expression with a fixed match mode."""

    regex: re.Pattern[str]
    mode: MatchMode = MatchMode.SEARCH

    @classmethod
    def compile(
        cls, source: str, mode: MatchMode = MatchMode.SEARCH, ignore_case: bool = False
    ) -> RegexPattern:
        return cls(re.compile(source, re.IGNORECASE if ignore_case else 0), MatchMode(mode))

    @property
    def source(self) -> str:
        return self.regex.pattern

    def matches(self, text: str) -> bool:
        if self.mode is MatchMode.FULLMATCH:
            return self.regex.fullmatch(text) is not None
        return self.regex.search(text) is not None


def compile_patterns(
    sources: Iterable[str], mode: MatchMode = MatchMode.SEARCH, ignore_case: bool = False
) -> list[RegexPattern]:
    """
    Compiles every source into a `RegexPattern`.

    All-or-nothing: the first pattern that fails to compile raises
    `ExclusionPatternError` and no patterns are returned at all.
    """
    compiled = []
    for position, source in enumerate(sources):
        try:
            compiled.append(RegexPattern.compile(source, mode=mode, ignore_case=ignore_case))
        except re.error as e:
            raise ExclusionPatternError(source, position, str(e)) from e
    return compiled


def matches_any(patterns: Sequence[Pattern], text: str) -> bool:
    return any(pattern.matches(text) for pattern in patterns)


# ============================================================================
# RESULT
# ============================================================================


@dataclass
class CleanResult:
    """Survivors of a cleaning run and what was taken out."""

    entries: list[HistoryEntry] = field(default_factory=list)
    excluded: list[HistoryEntry] = field(default_factory=list)
    duplicates: list[HistoryEntry] = field(default_factory=list)
    parsed: int = 0
    lines_consumed: int = 0

    @property
    def removed(self) -> int:
        return len(self.excluded) + len(self.duplicates)

    def render(self) -> str:
        return serialize_entries(self.entries)


# ============================================================================
# PIPELINE STEPS
# ============================================================================


def filter_entries(
    entries: Iterable[HistoryEntry],
    exclusions: Sequence[Pattern],
    keep: Sequence[Pattern] = (),
) -> tuple[list[HistoryEntry], list[HistoryEntry]]:
    """→ Splits entries into (kept, excluded); keep patterns override exclusions"""
    kept: list[HistoryEntry] = []
    excluded: list[HistoryEntry] = []
    for entry in entries:
        command = entry.command
        if matches_any(exclusions, command) and not matches_any(keep, command):
            excluded.append(entry)
        else:
            kept.append(entry)
    return kept, excluded


def _recency_key(recency: Recency) -> Callable[[HistoryEntry], tuple[int, ...]]:
    if Recency(recency) is Recency.TIMESTAMP:
        return lambda entry: (
            entry.timestamp if entry.timestamp is not None else -1,
            entry.source_order,
        )
    return lambda entry: (entry.source_order,)


def dedupe_entries(
    entries: Iterable[HistoryEntry], recency: Recency = Recency.POSITION
) -> tuple[list[HistoryEntry], list[HistoryEntry]]:
    """
    Collapses entries with identical command text to their most recent one.

    Returns (survivors, superseded). Survivors come out sorted by the same
    recency key that picked them, so the most recently used command is last.
    Commands are compared as exact strings; no whitespace is normalised.
    """
    key = _recency_key(recency)
    table: dict[str, HistoryEntry] = {}
    superseded: list[HistoryEntry] = []

    for entry in entries:
        command = entry.command
        current = table.get(command)
        if current is None:
            table[command] = entry
        elif key(entry) > key(current):
            superseded.append(current)
            table[command] = entry
        else:
            superseded.append(entry)

    survivors = sorted(table.values(), key=key)
    superseded.sort(key=lambda entry: entry.source_order)
    return survivors, superseded


def clean_history(
    raw_text: str,
    exclusions: Sequence[Pattern],
    *,
    keep: Sequence[Pattern] = (),
    recency: Recency = Recency.POSITION,
) -> CleanResult:
    """→ Parses, filters and deduplicates a history text, keeping the details"""
    parsed = parse_history(raw_text)
    kept, excluded = filter_entries(parsed.entries, exclusions, keep)
    survivors, duplicates = dedupe_entries(kept, recency)
    return CleanResult(
        entries=survivors,
        excluded=excluded,
        duplicates=duplicates,
        parsed=len(parsed.entries),
        lines_consumed=parsed.lines_consumed,
    )


def process(
    raw_text: str,
    exclusions: Sequence[Pattern],
    *,
    keep: Sequence[Pattern] = (),
    recency: Recency = Recency.POSITION,
) -> str:
    """→ Cleans a history text and returns the rewritten text"""
    return clean_history(raw_text, exclusions, keep=keep, recency=recency).render()
