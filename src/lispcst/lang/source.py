import linecache
import os
from typing import Optional

import pygments
import pygments.formatters
import pygments.lexers
import pygments.styles


def _terminal_formatter(disable_color: Optional[bool] = None) -> Optional[str]:
    """Return the name of the Pygments formatter suited to the current terminal,
    or None if source should not be colored.

    Color is off when `disable_color` is True or when `LISPCST_NO_COLOR` is set."""
    if disable_color or os.getenv("LISPCST_NO_COLOR", "").lower() in {"1", "true"}:
        return None
    if os.getenv("COLORTERM", "") in {"truecolor", "24bit"}:
        return "terminal16m"
    if "256" in os.getenv("TERM", ""):
        return "terminal256"
    return "terminal"


def format_source(s: str, disable_color: Optional[bool] = None) -> str:
    """Return one line of Clojure source highlighted for the terminal."""
    formatter_name = _terminal_formatter(disable_color)
    if formatter_name is None:
        return s + os.linesep
    formatter = pygments.formatters.get_formatter_by_name(
        formatter_name, style=pygments.styles.get_style_by_name("emacs")
    )
    return pygments.highlight(
        s, pygments.lexers.get_lexer_by_name("clojure"), formatter
    )


def format_source_context(
    filename: str,
    line: int,
    num_context_lines: int = 5,
    disable_color: Optional[bool] = None,
) -> list[str]:
    """Return the numbered lines of `filename` within `num_context_lines` of
    `line`, marking `line` itself with `>`.

    A line past the end of the file shows the end of the file with no marker.
    Pseudo-filenames such as `<string>` and unreadable files have no context."""
    assert num_context_lines >= 0

    if filename.startswith("<") and filename.endswith(">"):
        return []

    linecache.checkcache(filename)
    source_lines = linecache.getlines(filename)
    if not source_lines:
        return []

    first = max(1, min(line, len(source_lines)) - num_context_lines)
    last = min(len(source_lines), line + num_context_lines)
    width = len(str(last)) + 1
    return [
        f"{str(n).rjust(width)} {'>' if n == line else ' '} | "
        f"{format_source(source_lines[n - 1].rstrip(), disable_color=disable_color)}"
        for n in range(first, last + 1)
    ]
