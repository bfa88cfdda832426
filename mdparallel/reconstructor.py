"""Rebuilds a document with each translated block placed after its original."""

from __future__ import annotations

from itertools import groupby
from typing import List, Mapping, Optional, Sequence, Tuple

from .structures import Segment

LINE_ENDINGS = ("\r\n", "\n", "\r")


def _line_ending(text: str) -> Optional[str]:
    for ending in LINE_ENDINGS:
        if text.endswith(ending):
            return ending
    return None


def _document_newline(segments: Sequence[Segment]) -> str:
    for segment in segments:
        for ending in LINE_ENDINGS:
            if ending in segment.content:
                return ending
    return "\n"


def reconstruct(
    segments: Sequence[Segment],
    translations: Mapping[int, Optional[str]],
) -> str:
    """Render ``segments`` with translations keyed by segment position.

    A block whose text segments all have a translation is written twice: the
    original, a blank line, then the same block with its text replaced. Blocks
    without text, or with any missing translation, are written once as-is.
    """

    newline = _document_newline(segments)
    indexed: List[Tuple[int, Segment]] = list(enumerate(segments))
    parts: List[str] = []

    for _, group in groupby(indexed, key=lambda item: item[1].block):
        members = list(group)
        original = "".join(segment.content for _, segment in members)
        parts.append(original)

        text_positions = [position for position, segment in members if segment.is_text]
        if not text_positions:
            continue
        if any(translations.get(position) is None for position in text_positions):
            continue

        rendition = "".join(
            translations[position] if segment.is_text else segment.content  # type: ignore[misc]
            for position, segment in members
        )
        ending = _line_ending(original)
        parts.append(ending if ending else newline + newline)
        parts.append(rendition)

    return "".join(parts)
