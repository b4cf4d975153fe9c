"""Text processing helpers."""

from __future__ import annotations

import re

WHITESPACE_RE = re.compile(r"\s+")
BLANK_LINES_RE = re.compile(r"\n\s*\n\s*\n")
HORIZONTAL_SPACE_RE = re.compile(r"[ \t]+")


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def clean_text(text: str) -> str:
    """Tidy extracted page text while keeping paragraph structure.

    Three or more line breaks (with any whitespace between them) become a
    single blank line, runs of spaces and tabs become one space.
    """
    text = BLANK_LINES_RE.sub("\n\n", text)
    text = HORIZONTAL_SPACE_RE.sub(" ", text)
    return text.strip()
