"""
history_parser.py - Bash history entry parser

Reads the timestamped history format Bash writes when HISTTIMEFORMAT is set:

    #1700000000
    echo 'foo
    bar'
    #1700000042
    git status

A line is a timestamp marker if and only if it is a hash followed by ASCII
digits and nothing else. Every other line belongs to the command that follows
the most recent marker, so a multi-line command is simply a run of non-marker
lines. The format cannot tell a real marker apart from a command line that
happens to read like one (e.g. a heredoc body line `#5678`); such lines are
always taken as markers, exactly as Bash itself does when it reads the file
back.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator

# ============================================================================
# CONSTANTS & PATTERNS
# ============================================================================

MARKER_CHAR = "#"
MARKER_RE = re.compile(r"#(\d+)", re.ASCII)


# ============================================================================
# DATA STRUCTURES
# ============================================================================


@dataclass(frozen=True)
class RawLine:
    """One physical line of input, without its newline."""

    index: int
    content: str


@dataclass(frozen=True)
class HistoryEntry:
    """A command (one or more physical lines) and the timestamp it was written under."""

    lines: tuple[str, ...]
    timestamp: int | None
    source_order: int
    line_number: int = 0  # index of the entry's last physical line

    @property
    def command(self) -> str:
        return "\n".join(self.lines)

    @property
    def is_multiline(self) -> bool:
        return len(self.lines) > 1

    def to_lines(self) -> list[str]:
        """→ Physical lines of this entry, marker first when a timestamp is known"""
        head = [f"{MARKER_CHAR}{self.timestamp}"] if self.timestamp is not None else []
        return head + list(self.lines)


@dataclass
class ParseResult:
    """Entries found in a history file plus bookkeeping about the scan."""

    entries: list[HistoryEntry] = field(default_factory=list)
    lines_consumed: int = 0
    markers: int = 0
    orphan_markers: int = 0

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(self.entries)


# ============================================================================
# LINE CLASSIFICATION
# ============================================================================


def split_lines(text: str) -> list[RawLine]:
    """
    Splits text into physical lines on "\\n" only.

    Not `str.splitlines`: that also breaks on "\\r", "\\x0b", "\\x1c" and
    friends, which may occur inside a command and must survive a rewrite.
    A terminating newline does not produce an extra empty line.
    """
    if not text:
        return []
    pieces = text.split("\n")
    if pieces[-1] == "":
        pieces.pop()
    return [RawLine(index, content) for index, content in enumerate(pieces)]


def marker_value(line: str) -> int | None:
    """→ Epoch seconds if the line is a timestamp marker, else None"""
    match = MARKER_RE.fullmatch(line)
    if match is None:
        return None
    return int(match.group(1))


def classify_lines(text: str) -> Iterator[tuple[RawLine, int | None]]:
    """→ Yields each physical line with its marker value (None for command lines)"""
    for raw in split_lines(text):
        yield raw, marker_value(raw.content)


# ============================================================================
# PARSING
# ============================================================================


def iter_entries(classified: Iterable[tuple[RawLine, int | None]]) -> Iterator[HistoryEntry]:
    """
    Groups classified lines into history entries.

    A marker flushes the pending command (if any) under the timestamp that
    preceded it, then becomes the pending timestamp. Consecutive markers with
    no command between them collapse to the last one seen. Markers never
    followed by a command produce nothing.
    """
    pending_lines: list[str] = []
    pending_timestamp: int | None = None
    last_index = -1
    source_order = 0

    for raw, timestamp in classified:
        if timestamp is not None:
            if pending_lines:
                yield HistoryEntry(tuple(pending_lines), pending_timestamp, source_order, last_index)
                source_order += 1
                pending_lines = []
            pending_timestamp = timestamp
        else:
            pending_lines.append(raw.content)
            last_index = raw.index

    if pending_lines:
        yield HistoryEntry(tuple(pending_lines), pending_timestamp, source_order, last_index)


def parse_history(text: str) -> ParseResult:
    """→ Parses the whole history text into entries; never fails on any input"""
    classified = list(classify_lines(text))
    result = ParseResult(lines_consumed=len(classified))
    result.markers = sum(1 for _, timestamp in classified if timestamp is not None)
    result.entries = list(iter_entries(classified))

    # A marker is consumed only by the entry directly after it
    used_markers = sum(1 for entry in result.entries if entry.timestamp is not None)
    result.orphan_markers = result.markers - used_markers
    return result


# ============================================================================
# SERIALIZATION
# ============================================================================


def serialize_entries(entries: Iterable[HistoryEntry]) -> str:
    """→ Writes entries back in history format, every line newline-terminated"""
    lines = [line for entry in entries for line in entry.to_lines()]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
