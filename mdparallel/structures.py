"""Core data structures for the mdparallel translator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class SegmentKind(Enum):
    """Whether a span is sent for translation or copied verbatim."""

    TEXT = "text"
    OPAQUE = "opaque"


@dataclass(frozen=True)
class Segment:
    """A classified contiguous span of a Markdown document."""

    kind: SegmentKind
    content: str
    block: int = 0

    @property
    def is_text(self) -> bool:
        return self.kind is SegmentKind.TEXT


@dataclass(frozen=True)
class TranslationUnit:
    """The content of a text segment and its index in the document."""

    position: int
    text: str


@dataclass
class Batch:
    """A group of units submitted in a single request."""

    batch_id: int
    units: List[TranslationUnit]

    @property
    def texts(self) -> List[str]:
        return [unit.text for unit in self.units]

    @property
    def characters(self) -> int:
        return sum(len(unit.text) for unit in self.units)


class Formality(Enum):
    """Translation register requested from the service."""

    DEFAULT = "default"
    FORMAL = "prefer_more"
    INFORMAL = "prefer_less"

    @classmethod
    def parse(cls, value: str) -> "Formality":
        normalized = value.strip().lower()
        for member in cls:
            if normalized in {member.name.lower(), member.value}:
                return member
        raise ValueError(
            f"Unknown formality '{value}'. Use default, formal, or informal."
        )


@dataclass(frozen=True)
class GlossaryRecord:
    """A glossary as reported by the remote listing."""

    glossary_id: str
    name: str
    ready: bool
    source_lang: str
    target_lang: str
    entry_count: int = 0
    creation_time: Optional[str] = None


@dataclass(frozen=True)
class Usage:
    """Characters consumed in the current billing period."""

    character_count: int
    character_limit: Optional[int] = None

    @property
    def remaining(self) -> Optional[int]:
        if self.character_limit is None:
            return None
        return max(0, self.character_limit - self.character_count)


@dataclass
class Document:
    """A Markdown source file and its segments."""

    source_path: str
    content: str
    segments: List[Segment] = field(default_factory=list)

    def units(self) -> List[TranslationUnit]:
        return [
            TranslationUnit(position=index, text=segment.content)
            for index, segment in enumerate(self.segments)
            if segment.is_text
        ]
