#!/usr/bin/env python3
"""
histclean.py - Bash history cleaning utility

**What it does**

Rewrites a timestamped Bash history file (`HISTTIMEFORMAT` set, so every
command is preceded by a `#<epoch>` line) so that:

*   commands matching an exclusion pattern are gone (unless a keep pattern
    rescues them),
*   every command appears once, at the place it was last used,
*   the file is ordered oldest first, the way Bash reads it back.

**How it is put together**

The interesting logic lives in two small modules with no I/O at all:

1.  `history_parser` turns raw text into `HistoryEntry` objects. It is the only
    place that knows what a timestamp marker looks like and how multi-line
    commands are grouped.
2.  `history_dedupe` filters, deduplicates and orders those entries. Its
    `process(raw_text, exclusions)` is a pure function from text to text.

This script is the thin shell around them: argument parsing, pattern files
and built-in defaults, reading and atomically replacing the history file
(with a timestamped backup), and reporting through a Rich console on stderr.
All patterns are compiled before any file is read, so a typo in a regex never
results in a half-cleaned history.

**Usage**

    histclean                          # dedupe $HISTFILE or ~/.bash_history
    histclean --defaults -v            # also drop short/secret/risky commands
    histclean -e '^git (status|diff)' -k '^git diff --stat' ~/.bash_history
    histclean --dry-run --show         # preview the result, write nothing
"""

from __future__ import annotations

import argparse
import os
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table
from rich.text import Text as RichText
from rich.theme import Theme

from history_dedupe import (
    CleanResult,
    ExclusionPatternError,
    MatchMode,
    RegexPattern,
    Recency,
    clean_history,
    compile_patterns,
)
from history_lexer import history_syntax
from history_parser import HistoryEntry

# ============================================================================
# CONFIGURATION & CONSTANTS
# ============================================================================

CUSTOM_THEME = Theme({
    "title": "bold #C678DD",
    "context": "#5C6370",
    "diff.plus": "bold #61AFEF",
    "diff.minus": "bold #E06C75",
    "info": "#61AFEF",
    "success": "#98C379",
    "warning": "#E5C07B",
    "error": "#E06C75",
    "linenumber": "#3A3F4C",
})

console = Console(stderr=True, theme=CUSTOM_THEME)

# Undecodable bytes survive a read/write cycle untouched
ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"

# Enabled with --defaults. Always matched anywhere in the command, ignoring case.
DEFAULT_EXCLUSIONS = [
    r"^.{1,3}$",  # short things
    r"^cd [^~/]",  # cd / ls with relative directories
    r"^ls [^~/]",
    r"^(sudo )?reboot",  # annoying if accidentally re-executed at a later date
    r"^(sudo )?shutdown",
    r"^(sudo )?halt",
    r"^0",  # mouse escape codes
    r"^ ",  # commands explicitly hidden by the user
    r"(api|token|key|secret|pass)",  # sensitive looking lines
]

DEFAULT_KEEP = [
    r"^pass -c",  # password retrieval to clipboard
]

QUIET, NORMAL, VERBOSE = 0, 1, 2


@dataclass
class Config:
    """Everything the command line decided, before any pattern is compiled."""

    files: list[Path] = field(default_factory=list)
    exclusions: list[str] = field(default_factory=list)
    keep: list[str] = field(default_factory=list)
    use_defaults: bool = False
    match_mode: MatchMode = MatchMode.SEARCH
    ignore_case: bool = False
    recency: Recency = Recency.POSITION
    output: Path | None = None
    dry_run: bool = False
    backup: bool = True
    confirm: bool = False
    show: bool = False
    verbosity: int = NORMAL

    def compile_exclusions(self) -> list[RegexPattern]:
        """→ Default and user exclusions, compiled all-or-nothing"""
        defaults = compile_patterns(DEFAULT_EXCLUSIONS, ignore_case=True) if self.use_defaults else []
        user = compile_patterns(self.exclusions, mode=self.match_mode, ignore_case=self.ignore_case)
        return defaults + user

    def compile_keep(self) -> list[RegexPattern]:
        """→ Default and user keep patterns, compiled all-or-nothing"""
        defaults = compile_patterns(DEFAULT_KEEP, ignore_case=True) if self.use_defaults else []
        user = compile_patterns(self.keep, mode=self.match_mode, ignore_case=self.ignore_case)
        return defaults + user


def default_history_path() -> Path:
    """→ $HISTFILE when set, otherwise ~/.bash_history"""
    histfile = os.environ.get("HISTFILE")
    if histfile:
        return Path(histfile).expanduser()
    return Path.home() / ".bash_history"


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="histclean",
        description="Deduplicate a timestamped Bash history file, most recent use wins",
    )
    ap.add_argument("files", nargs="*", type=Path, help="History files (default: $HISTFILE or ~/.bash_history)")

    patterns = ap.add_argument_group("patterns")
    patterns.add_argument("-e", "--exclude", action="append", default=[], metavar="REGEX",
                          help="Drop commands matching REGEX (repeatable)")
    patterns.add_argument("-k", "--keep", action="append", default=[], metavar="REGEX",
                          help="Never drop commands matching REGEX, even if excluded (repeatable)")
    patterns.add_argument("--exclude-file", action="append", default=[], type=Path, metavar="PATH",
                          help="Read exclusion patterns from PATH, one per line")
    patterns.add_argument("--keep-file", action="append", default=[], type=Path, metavar="PATH",
                          help="Read keep patterns from PATH, one per line")
    patterns.add_argument("--defaults", action="store_true",
                          help="Also apply the built-in exclusions (short, relative cd/ls, reboot, secrets...)")
    patterns.add_argument("--fullmatch", action="store_true",
                          help="Patterns must match the whole command instead of any part of it")
    patterns.add_argument("-i", "--ignore-case", action="store_true", help="Case-insensitive patterns")

    ap.add_argument("--recency", choices=[r.value for r in Recency], default=Recency.POSITION.value,
                    help="What decides the most recent duplicate and the output order (default: position)")
    ap.add_argument("-o", "--output", type=Path, help="Write the result here instead of rewriting in place")
    ap.add_argument("-n", "--dry-run", action="store_true", help="Report what would change, write nothing")
    ap.add_argument("--no-backup", dest="backup", action="store_false", help="Skip the timestamped backup")
    ap.add_argument("--confirm", action="store_true", help="Ask before writing each file")
    ap.add_argument("--show", action="store_true", help="Print the cleaned history, highlighted, to stdout")

    verbosity = ap.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only report errors")
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Show statistics and removed entries")
    return ap


def load_pattern_file(path: Path) -> list[str]:
    """
    Reads one pattern per line.

    Blank lines and lines starting with '#' are skipped; write '\\#' for a
    pattern that starts with a literal hash. Trailing newlines are stripped,
    other whitespace is part of the pattern.
    """
    patterns = []
    for line in path.read_text(encoding=ENCODING).splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        patterns.append(line)
    return patterns


def config_from_args(args: argparse.Namespace) -> Config:
    """→ Builds a Config from parsed arguments, reading any pattern files"""
    exclusions = list(args.exclude)
    for path in args.exclude_file:
        exclusions.extend(load_pattern_file(path.expanduser()))
    keep = list(args.keep)
    for path in args.keep_file:
        keep.extend(load_pattern_file(path.expanduser()))

    if args.quiet:
        verbosity = QUIET
    elif args.verbose:
        verbosity = VERBOSE
    else:
        verbosity = NORMAL

    return Config(
        files=[p.expanduser() for p in args.files] or [default_history_path()],
        exclusions=exclusions,
        keep=keep,
        use_defaults=args.defaults,
        match_mode=MatchMode.FULLMATCH if args.fullmatch else MatchMode.SEARCH,
        ignore_case=args.ignore_case,
        recency=Recency(args.recency),
        output=args.output.expanduser() if args.output else None,
        dry_run=args.dry_run,
        backup=args.backup,
        confirm=args.confirm,
        show=args.show,
        verbosity=verbosity,
    )


# ============================================================================
# FILE I/O
# ============================================================================


def _console_print(string="", *args, **kwargs) -> None:
    """→ Safe console printing with fallback"""
    try:
        console.print(string, *args, **kwargs)
    except Exception:
        kwargs_clean = {k: v for k, v in kwargs.items() if k in ["sep", "end", "flush"]}
        print(string, *args, file=sys.stderr, **kwargs_clean)


def read_history_file(file_path: Path) -> str | None:
    """→ File I/O: Reads the whole history file, handling errors"""
    try:
        return file_path.read_bytes().decode(ENCODING, ENCODING_ERRORS)
    except FileNotFoundError:
        _console_print(f"[error]Error: History file not found at '{escape(str(file_path))}'[/error]")
        return None
    except OSError as e:
        _console_print(f"[error]Error reading file '{escape(str(file_path))}': {escape(str(e))}[/error]")
        return None


def backup_history(history_path: Path, original_text: str) -> Path:
    """→ File I/O: Saves a timestamped copy next to the history file"""
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    backup_path = history_path.parent / f"{history_path.name}.clean.{timestamp}"
    backup_path.write_bytes(original_text.encode(ENCODING, ENCODING_ERRORS))
    return backup_path


def write_history(history_path: Path, text: str) -> None:
    """
    Replaces `history_path` with `text` atomically.

    The content goes to a temporary file in the same directory which is then
    renamed over the target, so readers see either the old or the new file.
    The mode bits of an existing target are kept.
    """
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{history_path.name}.", suffix=".tmp", dir=history_path.parent
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(text.encode(ENCODING, ENCODING_ERRORS))
        if history_path.exists():
            shutil.copymode(history_path, tmp_path)
        os.replace(tmp_path, history_path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


# ============================================================================
# REPORTING
# ============================================================================


def _entry_text(entry: HistoryEntry, marker: str, style: str) -> RichText:
    """→ One removed entry as plain Rich text; commands never go through markup"""
    text = RichText()
    text.append(f"{entry.line_number + 1:>6} ", style="linenumber")
    text.append(f"{marker} ", style=style)
    text.append(entry.command.replace("\n", "\n" + " " * 9))
    return text


def render_stats(file_path: Path, result: CleanResult) -> Table:
    table = Table(box=box.ROUNDED, title=f"[title]{escape(str(file_path))}[/title]", show_header=False)
    table.add_column(style="info")
    table.add_column(justify="right")
    table.add_row("Lines read", str(result.lines_consumed))
    table.add_row("Entries parsed", str(result.parsed))
    table.add_row("Excluded", str(len(result.excluded)))
    table.add_row("Duplicates collapsed", str(len(result.duplicates)))
    table.add_row("Entries left", str(len(result.entries)))
    return table


def report(file_path: Path, result: CleanResult, config: Config) -> None:
    if config.verbosity >= VERBOSE:
        _console_print(render_stats(file_path, result))
        for entry in result.excluded:
            _console_print(_entry_text(entry, "-", "diff.minus"))
        for entry in result.duplicates:
            _console_print(_entry_text(entry, "=", "context"))

    if config.verbosity >= NORMAL:
        verb = "would remove" if config.dry_run else "removed"
        _console_print(
            f"[info]{escape(str(file_path))}[/info]: {verb} {result.removed} entries "
            f"({len(result.excluded)} excluded, {len(result.duplicates)} duplicates), "
            f"{len(result.entries)} left"
        )


def show_preview(text: str) -> None:
    """→ Prints the cleaned history to stdout with syntax highlighting"""
    out = Console()
    try:
        out.print(history_syntax(text))
    except BrokenPipeError:
        # Downstream consumer closed early (e.g., piped to `head`)
        pass


# ============================================================================
# MAIN
# ============================================================================


def clean_file(
    file_path: Path,
    config: Config,
    exclusions: list[RegexPattern],
    keep: list[RegexPattern],
) -> bool:
    """→ Cleans one history file; returns False if it could not be read or written"""
    original_text = read_history_file(file_path)
    if original_text is None:
        return False

    result = clean_history(original_text, exclusions, keep=keep, recency=config.recency)
    cleaned_text = result.render()
    report(file_path, result, config)

    if config.show:
        show_preview(cleaned_text)

    if config.dry_run:
        return True

    target = config.output or file_path
    if target == file_path and cleaned_text == original_text:
        if config.verbosity >= VERBOSE:
            _console_print("[context]Nothing to change, file left untouched.[/context]")
        return True

    if config.confirm and not Confirm.ask(
        f"Rewrite [info]{escape(str(target))}[/info]?", console=console, default=False
    ):
        _console_print("[warning]Skipped, file unchanged.[/warning]")
        return True

    try:
        if target == file_path and config.backup:
            backup_path = backup_history(file_path, original_text)
            if config.verbosity >= VERBOSE:
                _console_print(f"Backup saved to [info]{escape(str(backup_path))}[/info]")
        write_history(target, cleaned_text)
    except OSError as e:
        _console_print(f"[error]Error writing to {escape(str(target))}: {escape(repr(e))}[/error]")
        return False

    if config.verbosity >= VERBOSE:
        _console_print(f"Cleaned history saved to [success]{escape(str(target))}[/success]")
    return True


def main(argv: list[str]) -> int:
    """→ Main: parses arguments, compiles patterns, cleans every file"""
    ap = build_arg_parser()
    args = ap.parse_args(argv)
    if args.output and len(args.files) > 1:
        ap.error("--output can only be used with a single history file")

    try:
        config = config_from_args(args)
    except OSError as e:
        _console_print(f"[error]Error reading pattern file: {escape(str(e))}[/error]")
        return 2

    try:
        exclusions = config.compile_exclusions()
        keep = config.compile_keep()
    except ExclusionPatternError as e:
        _console_print(f"[error]Error: {escape(str(e))}[/error]")
        return 2

    ok = True
    for file_path in config.files:
        ok = clean_file(file_path, config, exclusions, keep) and ok
    return 0 if ok else 1


def run() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
