"""Quote normalization for matching annotation excerpts against specification text."""

from __future__ import annotations

__all__ = ["normalize_quote"]


def normalize_quote(text: str) -> str:
    """
    Collapse a possibly multi-line quote into a single line.

    Lines are split on ``\\n`` only; each line is trimmed, blank lines are
    dropped, and the remaining lines are joined with one space. Everything
    inside a line is kept as written, including runs of spaces and form feeds.
    """

    return " ".join(stripped for line in text.split("\n") if (stripped := line.strip()))
