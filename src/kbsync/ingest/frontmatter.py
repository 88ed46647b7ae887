"""YAML front matter parser for markdown knowledge documents.

A document may open with a ``---`` delimited YAML block. Everything after the
closing delimiter is the body. Documents without front matter are valid and
get their title from the first H1 (or the caller's fallback) and ``doc_type``
``"doc"``.
"""

from __future__ import annotations

import datetime as _dt
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import yaml

from kbsync.db.models import PromotionLevel
from kbsync.errors import ParseError

logger = logging.getLogger(__name__)

DEFAULT_DOC_TYPE = "doc"
SUMMARY_MAX_CHARS = 280

_H1_RE = re.compile(r"^#[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)


@dataclass
class ParsedDocument:
    """Result of parsing one raw markdown file."""

    title: str
    summary: str
    doc_type: str
    content: str
    metadata_json: str = "{}"
    promotion_level: PromotionLevel = PromotionLevel.STANDARD
    frontmatter: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


class FrontmatterParser:
    """Default parser: PyYAML front matter plus markdown fallbacks."""

    def parse(self, raw_text: str, fallback_title: str = "") -> ParsedDocument:
        """Parse *raw_text* into a :class:`ParsedDocument`.

        Args:
            raw_text: Full file text.
            fallback_title: Used when neither front matter nor an H1 gives a title
                (usually the file stem).

        Raises:
            ParseError: Malformed YAML, a non-mapping front matter block, or a
                field with an unusable type.
        """
        frontmatter, body = split_frontmatter(raw_text)
        warnings: list[str] = []

        title = _str_field(frontmatter, "title") or _first_h1(body) or fallback_title
        summary = (
            _str_field(frontmatter, "summary")
            or _str_field(frontmatter, "description")
            or _first_paragraph(body)
        )
        doc_type = (_str_field(frontmatter, "doc_type") or DEFAULT_DOC_TYPE).lower()

        promotion = PromotionLevel.STANDARD
        raw_level = frontmatter.get("promotion_level", frontmatter.get("promotionLevel"))
        if raw_level is not None:
            try:
                promotion = PromotionLevel.parse(str(raw_level))
            except ValueError:
                warnings.append(f"Invalid promotion_level '{raw_level}', defaulting to 'standard'")
                logger.debug("Invalid promotion level %r in front matter", raw_level)

        return ParsedDocument(
            title=title,
            summary=summary[:SUMMARY_MAX_CHARS],
            doc_type=doc_type,
            content=body,
            metadata_json=json.dumps(frontmatter, default=_json_default, sort_keys=True),
            promotion_level=promotion,
            frontmatter=frontmatter,
            warnings=warnings,
        )


def split_frontmatter(raw_text: str) -> tuple[dict[str, Any], str]:
    """Return ``(frontmatter, body)``. No opening/closing delimiter means no front matter.

    Raises:
        ParseError: If the block is not valid YAML or not a mapping.
    """
    text = raw_text.lstrip("\ufeff")
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n").rstrip() != "---":
        return {}, text

    for i in range(1, len(lines)):
        if lines[i].rstrip("\r\n").rstrip() in ("---", "..."):
            yaml_block = "".join(lines[1:i])
            body = "".join(lines[i + 1 :]).lstrip("\r\n")
            break
    else:
        return {}, text

    try:
        data = yaml.safe_load(yaml_block)
    except yaml.YAMLError as exc:
        raise ParseError(
            f"Front matter is not valid YAML: {exc}",
            field_errors={"frontmatter": str(exc)},
        ) from exc

    if data is None:
        return {}, body
    if not isinstance(data, dict):
        raise ParseError(
            "Front matter must be a YAML mapping",
            field_errors={"frontmatter": f"expected mapping, got {type(data).__name__}"},
        )
    return {str(k): v for k, v in data.items()}, body


def _str_field(frontmatter: dict[str, Any], name: str) -> str:
    value = frontmatter.get(name)
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise ParseError(
            f"Front matter field '{name}' must be a scalar",
            field_errors={name: f"expected a string, got {type(value).__name__}"},
        )
    return str(value).strip()


def _first_h1(body: str) -> str:
    match = _H1_RE.search(body)
    return match.group(1).strip() if match else ""


def _first_paragraph(body: str) -> str:
    """First run of non-blank lines outside headings and code fences."""
    paragraph: list[str] = []
    in_fence = False
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.startswith(("```", "~~~")):
            in_fence = not in_fence
            if paragraph:
                break
            continue
        if in_fence:
            continue
        if not stripped or stripped.startswith("#"):
            if paragraph:
                break
            continue
        paragraph.append(stripped)
    return " ".join(paragraph)


def _json_default(value: Any) -> str:
    # YAML dates and timestamps
    if isinstance(value, (_dt.date, _dt.datetime)):
        return value.isoformat()
    return str(value)
