"""Markdown splitter: heading-aware spans with a whole-document fallback.

Strategy:
- Find every H1/H2/H3 heading that is not inside a fenced code block.
- Each heading plus the lines up to the next heading is one span.
- Lines before the first heading (preamble) become their own span when they
  contain anything but whitespace.
- ``header_path`` is the breadcrumb of enclosing headings, e.g.
  ``"Guide > Install > Linux"``.
- Without headings the whole document is one span with an empty path.

The splitter is a pure function of its input, so re-chunking identical text
always yields identical boundaries.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# ATX heading, levels 1-3, up to three leading spaces (CommonMark).
_HEADING_RE = re.compile(r"^ {0,3}(#{1,3})[ \t]+(.+?)[ \t]*#*[ \t]*$")
_FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")

HEADER_PATH_SEPARATOR = " > "


@dataclass(frozen=True)
class ChunkSpan:
    """One contiguous span of a document. Lines are 0-based and inclusive."""

    header_path: str
    content: str
    start_line: int
    end_line: int


def split(content: str) -> list[ChunkSpan]:
    """Split markdown *content* into ordered spans.

    Returns:
        At least one span for any non-blank input; an empty list for blank input.
    """
    if not content.strip():
        return []

    lines = content.splitlines()
    headings = _find_headings(lines)
    if not headings:
        return [ChunkSpan("", content, 0, len(lines) - 1)]

    spans: list[ChunkSpan] = []

    first_line = headings[0][0]
    if first_line > 0:
        preamble = lines[:first_line]
        if any(line.strip() for line in preamble):
            spans.append(ChunkSpan("", "\n".join(preamble), 0, first_line - 1))

    for i, (line_no, header_path) in enumerate(headings):
        end = headings[i + 1][0] - 1 if i + 1 < len(headings) else len(lines) - 1
        spans.append(
            ChunkSpan(header_path, "\n".join(lines[line_no : end + 1]), line_no, end)
        )

    return spans


def _find_headings(lines: list[str]) -> list[tuple[int, str]]:
    """Return ``(line_number, header_path)`` for each splitting heading."""
    found: list[tuple[int, str]] = []
    stack: list[tuple[int, str]] = []  # (level, text) of enclosing headings
    fence: str | None = None

    for line_no, line in enumerate(lines):
        fence_match = _FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(1)
            if fence is None:
                fence = marker[0] * 3
            elif marker.startswith(fence):
                fence = None
            continue
        if fence is not None:
            continue

        match = _HEADING_RE.match(line)
        if not match:
            continue
        level = len(match.group(1))
        text = match.group(2).strip()
        while stack and stack[-1][0] >= level:
            stack.pop()
        stack.append((level, text))
        found.append((line_no, HEADER_PATH_SEPARATOR.join(t for _, t in stack)))

    return found
