"""Whitespace normalisation and OCR block flattening."""
from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping, Optional, Union

from .models import BBox, OcrLine

_NBSP_PATTERN = re.compile("[\u00a0\u2007\u202f]")
_HORIZONTAL_WS_PATTERN = re.compile(r"[^\S\n]+")
_ANY_WS_PATTERN = re.compile(r"\s+")

BlockLike = Union[OcrLine, Mapping[str, Any]]


def _normalise_line(line: str) -> str:
    cleaned = _NBSP_PATTERN.sub(" ", line)
    cleaned = _HORIZONTAL_WS_PATTERN.sub(" ", cleaned)
    return cleaned.strip()


def normalize_lines(text: str) -> List[str]:
    if not text:
        return []
    return [line for line in (_normalise_line(raw) for raw in text.splitlines()) if line]


def normalize_text(text: str) -> str:
    return "\n".join(normalize_lines(text))


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run, newlines included, into one space."""

    return _ANY_WS_PATTERN.sub(" ", _NBSP_PATTERN.sub(" ", text or "")).strip()


def _coerce_block(block: BlockLike) -> OcrLine:
    if isinstance(block, OcrLine):
        return block
    raw_bbox = block.get("bbox")
    bbox: Optional[BBox]
    if isinstance(raw_bbox, BBox):
        bbox = raw_bbox
    elif isinstance(raw_bbox, Mapping):
        bbox = BBox.from_mapping(raw_bbox)
    else:
        bbox = None
    return OcrLine(text=str(block.get("text") or ""), bbox=bbox)


def flatten_blocks(blocks: Optional[Iterable[BlockLike]], text: str) -> List[OcrLine]:
    """Split blocks into lines that inherit the parent block's bbox.

    Falls back to the plain text lines (without positions) when no blocks are
    available.
    """

    lines: List[OcrLine] = []
    for block in blocks or ():
        parent = _coerce_block(block)
        for part in normalize_lines(parent.text):
            lines.append(OcrLine(text=part, bbox=parent.bbox))
    if lines:
        return lines
    return [OcrLine(text=line) for line in normalize_lines(text)]


__all__ = ["collapse_whitespace", "flatten_blocks", "normalize_lines", "normalize_text"]
