"""Helpers for generated component source before it is shipped to a renderer."""

from __future__ import annotations


FENCE = "```"


def strip_code_fences(code: str) -> str:
    """Unwrap code wrapped in a Markdown fence; other text is returned trimmed."""
    clean = str(code or "").strip()
    if not clean.startswith(FENCE):
        return clean

    lines = clean.split("\n")
    lines.pop(0)
    if lines and lines[-1].strip() == FENCE:
        lines.pop()
    return "\n".join(lines)
