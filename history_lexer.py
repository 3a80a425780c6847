# ============================================================================
# BASH HISTORY LEXER
# ============================================================================

from __future__ import annotations

from typing import Iterator

from pygments.lexer import Lexer
from pygments.lexers.shell import BashLexer
from pygments.token import (
    Comment,
    Error,
    Keyword,
    Name,
    Number,
    Operator,
    Punctuation,
    String,
    Text,
    _TokenType,
)
from rich.style import Style
from rich.syntax import Syntax, SyntaxTheme

from history_parser import MARKER_CHAR, classify_lines


class BashHistoryLexer(Lexer):
    """
    Pygments lexer for a timestamped Bash history file.

    Marker lines use the same classification as the parser, so what is
    highlighted as a timestamp is exactly what the cleaner treats as one.
    Each run of command lines is handed to the stock `BashLexer` as a single
    chunk, which keeps quoting intact across the lines of a multi-line command.
    Use like so:
    ```python
    console = Console()
    syntax = Syntax(text, BashHistoryLexer(), theme=MonokaiProTheme(), line_numbers=True)
    console.print(syntax)
    ```
    """

    name = "Bash history"
    aliases = ["bash-history"]
    filenames = [".bash_history", "*.bash_history"]

    def __init__(self, **options):
        options.setdefault("stripnl", False)
        super().__init__(**options)
        self.command_lexer = BashLexer(**options)

    def get_tokens_unprocessed(self, text: str) -> Iterator[tuple[int, _TokenType, str]]:
        offset = 0
        chunk_start: int | None = None
        for raw, timestamp in classify_lines(text):
            end = min(offset + len(raw.content) + 1, len(text))
            if timestamp is None:
                if chunk_start is None:
                    chunk_start = offset
            else:
                if chunk_start is not None:
                    yield from self._command_tokens(text, chunk_start, offset)
                    chunk_start = None
                yield offset, Comment.Special, MARKER_CHAR
                yield offset + 1, Number.Integer, raw.content[1:]
                if end > offset + len(raw.content):
                    yield offset + len(raw.content), Text.Whitespace, "\n"
            offset = end
        if chunk_start is not None:
            yield from self._command_tokens(text, chunk_start, offset)

    def _command_tokens(
        self, text: str, start: int, end: int
    ) -> Iterator[tuple[int, _TokenType, str]]:
        for index, token, value in self.command_lexer.get_tokens_unprocessed(text[start:end]):
            yield start + index, token, value


class MonokaiProTheme(SyntaxTheme):
    """Rich syntax-highlighting theme that matches Monokai Pro."""

    _BLACK = "#2d2a2e"
    _RED = "#ff6188"
    _GREEN = "#a9dc76"
    _YELLOW = "#ffd866"
    _ORANGE = "#fc9867"
    _PURPLE = "#ab9df2"
    _CYAN = "#78dce8"
    _WHITE = "#fcfcfa"
    _COMMENT_GRAY = "#727072"

    background_color = _BLACK
    default_style = Style(color=_WHITE)

    styles = {
        # History markers stay in the background so the commands stand out
        Comment.Special: Style(color=_COMMENT_GRAY, bold=True),  # the '#'
        Number.Integer: Style(color=_CYAN),  # epoch seconds
        # Bash
        Name.Builtin: Style(color=_CYAN, italic=True),
        Name.Variable: Style(color=_PURPLE),
        Name.Attribute: Style(color=_ORANGE),
        Number: Style(color=_CYAN),
        Text: Style(color=_WHITE),
        Comment: Style(color=_COMMENT_GRAY, italic=True),
        Keyword: Style(color=_RED, bold=True),
        Operator: Style(color=_RED),
        Punctuation: Style(color=_WHITE),
        String: Style(color=_YELLOW),
        String.Escape: Style(color=_PURPLE),
        String.Interpol: Style(color=_PURPLE, bold=True),
        String.Backtick: Style(color=_PURPLE, bold=True),
        Error: Style(color=_RED, bold=True),
    }

    @classmethod
    def get_style_for_token(cls, t):
        # Fall back through parent token types (String.Single -> String)
        while t is not None:
            if t in cls.styles:
                return cls.styles[t]
            t = t.parent
        return cls.default_style

    @classmethod
    def get_background_style(cls):
        return Style(bgcolor=cls._BLACK)


def history_syntax(text: str, line_numbers: bool = True) -> Syntax:
    """→ Rich renderable for a history text"""
    return Syntax(
        text.rstrip("\n"),
        BashHistoryLexer(),
        theme=MonokaiProTheme(),
        line_numbers=line_numbers,
        word_wrap=True,
    )
