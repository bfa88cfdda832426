"""Markdown segmentation into translatable and opaque spans."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .structures import Segment, SegmentKind

TEXT = SegmentKind.TEXT
OPAQUE = SegmentKind.OPAQUE

DEFAULT_TEXT_BUDGET = 5000

SENTENCE_PATTERN = re.compile(
    r".+?(?:[\.!?…‽。！？；؛](?:\s+|$)|$)", re.DOTALL
)
CLAUSE_PATTERN = re.compile(
    r".+?(?:[,;:،，；：](?:\s+|$)|$)", re.DOTALL
)
WORD_PATTERN = re.compile(r"\S+\s*|\s+")

LINE_PATTERN = re.compile(r"[^\r\n]*(?:\r\n|\r|\n)|[^\r\n]+")
FENCE_OPEN_PATTERN = re.compile(r"^(?P<indent>[ \t]*)(?P<marker>`{3,}|~{3,})(?P<info>.*)$")
FRONT_MATTER_CLOSERS = {"---": ("---", "..."), "+++": ("+++",)}
COMMENT_OPEN_PATTERN = re.compile(r"^ {0,3}<!--")
THEMATIC_BREAK_PATTERN = re.compile(
    r"^ {0,3}(?:(?:-[ \t]*){3,}|(?:\*[ \t]*){3,}|(?:_[ \t]*){3,})$"
)
SETEXT_UNDERLINE_PATTERN = re.compile(r"^ {0,3}(?:=+|-+)[ \t]*$")
LINK_DEFINITION_PATTERN = re.compile(r"^ {0,3}\[[^\]]+\]:[ \t]*\S")
TABLE_DELIMITER_PATTERN = re.compile(
    r"^[ \t]*\|?[ \t]*:?-+:?[ \t]*(?:\|[ \t]*:?-+:?[ \t]*)*\|?[ \t]*$"
)
TABLE_PIPE_PATTERN = re.compile(r"(?<!\\)\|")
CONTAINER_PATTERN = re.compile(r"[ \t]*(?:>[ \t]?[ \t]*)*")
QUOTE_MARKER_PATTERN = re.compile(r"[ \t]{0,3}>[ \t]?")
LIST_MARKER_PATTERN = re.compile(
    r"(?:[-*+]|\d{1,9}[.)])(?:[ \t]+|$)(?:\[[ xX]\][ \t]+)?"
)
HEADING_MARKER_PATTERN = re.compile(r"#{1,6}(?:[ \t]+|$)")
HEADING_CLOSING_PATTERN = re.compile(r"[ \t]+#+[ \t]*$")
INDENTED_CODE_PATTERN = re.compile(r"^(?: {4}|\t)")

INLINE_PATTERN = re.compile(
    r"""
    (?P<code>(?<!`)(?P<ticks>`+)(?!`).+?(?<!`)(?P=ticks)(?!`))
    |(?P<comment><!--.*?-->)
    |(?P<autolink><(?:[A-Za-z][A-Za-z0-9+.\-]{1,31}:[^<>\s]*|[^<>\s@]+@[^<>\s@]+\.[^<>\s@]+)>)
    |(?P<html></?[A-Za-z][A-Za-z0-9\-]*(?:\s[^<>]*)?/?>)
    |(?P<footnote>\[\^[^\]\s]+\])
    |(?P<link>
        (?P<open>!?\[)
        (?P<label>(?:\\.|`[^`]*`|`(?![^`]*`)|[^\[\]\\`]|\[(?:\\.|[^\[\]\\])*\])*)
        (?P<close>
            \]\((?:[^()\s]|\([^()\s]*\))*(?:\s+(?:"[^"]*"|'[^']*'|\([^()]*\)))?\s*\)
            |\]\[[^\]]*\]
        )
    )
    |(?P<url>https?://[^\s<>()\[\]]*[^\s<>()\[\].,;:!?'"])
    """,
    re.VERBOSE | re.DOTALL,
)


# --- Scan states -------------------------------------------------------------


@dataclass(frozen=True)
class NormalState:
    """Ordinary Markdown flow."""


@dataclass(frozen=True)
class FenceState:
    """Inside a fenced code block opened at ``start``.

    ``quotes`` is the number of blockquote markers in front of the opener;
    every body line must carry at least as many.
    """

    marker: str
    length: int
    start: int
    quotes: int = 0


@dataclass(frozen=True)
class FrontMatterState:
    """Inside a front matter block at the top of the document."""

    closers: Tuple[str, ...]


@dataclass(frozen=True)
class CommentState:
    """Inside a multi-line HTML comment opened at ``start``."""

    start: int


ScanState = Union[NormalState, FenceState, FrontMatterState, CommentState]

Piece = Tuple[SegmentKind, str]


# --- Long text splitting -----------------------------------------------------


def contains_cjk(text: str) -> bool:
    """Detect whether the text contains CJK characters."""

    for char in text:
        code = ord(char)
        if (
            0x4E00 <= code <= 0x9FFF  # CJK Unified Ideographs
            or 0x3400 <= code <= 0x4DBF  # Extension A
            or 0x3040 <= code <= 0x30FF  # Hiragana/Katakana
            or 0xAC00 <= code <= 0xD7AF  # Hangul syllables
        ):
            return True
    return False


def _consume_pattern(pattern: re.Pattern[str], text: str) -> List[str]:
    """Split text by greedily consuming matches from the start of a string."""

    chunks: List[str] = []
    index = 0
    while index < len(text):
        match = pattern.match(text, index)
        end = match.end() if match else len(text)
        if end == index:
            end += 1
        chunks.append(text[index:end])
        index = end
    return chunks


def _split_fixed(text: str, budget: int) -> List[str]:
    return [text[start:start + budget] for start in range(0, len(text), budget)]


def _pack(chunks: Sequence[str], budget: int) -> List[str]:
    """Greedily pack chunks into budget-sized pieces, splitting oversize ones."""

    packed: List[str] = []
    current = ""
    for chunk in chunks:
        if len(chunk) > budget:
            if current:
                packed.append(current)
                current = ""
            words = WORD_PATTERN.findall(chunk)
            if contains_cjk(chunk) or len(words) <= 1:
                packed.extend(_split_fixed(chunk, budget))
            else:
                packed.extend(_pack(words, budget))
            continue
        if current and len(current) + len(chunk) > budget:
            packed.append(current)
            current = chunk
        else:
            current += chunk
    if current:
        packed.append(current)
    return packed


def split_text(text: str, budget: int) -> List[str]:
    """Split text into sentence-aligned chunks of at most ``budget`` characters.

    Sentences are kept whole where they fit; longer sentences fall back to
    clauses, then words, then fixed-width slices. Joining the chunks yields the
    input unchanged.
    """

    if len(text) <= budget:
        return [text] if text else []

    chunks: List[str] = []
    for sentence in _consume_pattern(SENTENCE_PATTERN, text):
        if len(sentence) <= budget:
            chunks.append(sentence)
            continue
        clauses = _consume_pattern(CLAUSE_PATTERN, sentence)
        if max(len(clause) for clause in clauses) <= budget:
            chunks.extend(_pack(clauses, budget))
        else:
            chunks.extend(_pack(WORD_PATTERN.findall(sentence), budget))
    return _pack(chunks, budget)


# --- Inline scanning ---------------------------------------------------------


def compile_ignore_terms(terms: Iterable[str]) -> Optional[re.Pattern[str]]:
    """Build a case-insensitive matcher for words that must stay untranslated.

    Longer terms are tried first so a phrase wins over a word it contains.
    """

    cleaned = sorted(
        {term.strip() for term in terms if term.strip()},
        key=lambda term: (-len(term), term),
    )
    if not cleaned:
        return None
    alternatives = "|".join(re.escape(term) for term in cleaned)
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)", re.IGNORECASE)


def _mask_terms(text: str, ignore: Optional[re.Pattern[str]]) -> List[Piece]:
    if ignore is None:
        return [(TEXT, text)]
    pieces: List[Piece] = []
    cursor = 0
    for match in ignore.finditer(text):
        pieces.append((TEXT, text[cursor:match.start()]))
        pieces.append((OPAQUE, match.group(0)))
        cursor = match.end()
    pieces.append((TEXT, text[cursor:]))
    return pieces


def scan_inline(text: str, ignore: Optional[re.Pattern[str]] = None) -> List[Piece]:
    """Partition a run of inline Markdown into text and opaque pieces.

    Matches of ``ignore`` inside plain text are kept opaque.
    """

    pieces: List[Piece] = []
    cursor = 0
    for match in INLINE_PATTERN.finditer(text):
        if match.start() > cursor:
            pieces.extend(_mask_terms(text[cursor:match.start()], ignore))
        if match.group("link") is not None:
            pieces.append((OPAQUE, match.group("open")))
            pieces.extend(scan_inline(match.group("label"), ignore))
            pieces.append((OPAQUE, match.group("close")))
        else:
            pieces.append((OPAQUE, match.group(0)))
        cursor = match.end()
    if cursor < len(text):
        pieces.extend(_mask_terms(text[cursor:], ignore))
    return [piece for piece in pieces if piece[1]]


def _split_ending(line: str) -> Tuple[str, str]:
    body = line.rstrip("\r\n")
    return body, line[len(body):]


def _quote_depth(body: str) -> int:
    depth = 0
    position = 0
    while True:
        marker = QUOTE_MARKER_PATTERN.match(body, position)
        if marker is None:
            return depth
        depth += 1
        position = marker.end()


def _strip_quotes(body: str, depth: int) -> Optional[str]:
    """Remove ``depth`` blockquote markers, or return ``None`` if some are missing."""

    position = 0
    for _ in range(depth):
        marker = QUOTE_MARKER_PATTERN.match(body, position)
        if marker is None:
            return None
        position = marker.end()
    return body[position:]


def _is_table_row(body: str) -> bool:
    return bool(TABLE_PIPE_PATTERN.search(body))


def _is_table_delimiter(body: str) -> bool:
    return "|" in body and bool(TABLE_DELIMITER_PATTERN.match(body))


# --- Block scanning ----------------------------------------------------------


class _SegmentBuilder:
    """Accumulates pieces for one document and tracks block context."""

    def __init__(
        self, lines: List[str], ignore: Optional[re.Pattern[str]] = None
    ) -> None:
        self.lines = lines
        self.ignore = ignore
        self.pieces: List[Tuple[SegmentKind, str, int]] = []
        self.block = -1
        # paragraph, item, table, blank, code or None
        self.context: Optional[str] = None
        self.after_item = False
        self.join_from: Optional[int] = None

    def emit(self, kind: SegmentKind, content: str) -> None:
        if content:
            self.pieces.append((kind, content, self.block))

    def new_block(self, context: Optional[str]) -> None:
        self.block += 1
        self.context = context
        self.join_from = None

    def emit_opaque_block(self, content: str, context: Optional[str] = None) -> None:
        self.new_block(context)
        self.emit(OPAQUE, content)

    # --- Normal flow ------------------------------------------------------

    def normal_line(self, index: int) -> ScanState:
        line = self.lines[index]
        body, ending = _split_ending(line)

        if not body.strip():
            if self.context != "blank":
                self.new_block("blank")
            self.emit(OPAQUE, line)
            return NormalState()

        if self.context == "code" and (
            INDENTED_CODE_PATTERN.match(body) is not None
        ):
            self.emit(OPAQUE, line)
            return NormalState()

        quotes = _quote_depth(body)
        fence = FENCE_OPEN_PATTERN.match(_strip_quotes(body, quotes) or "")
        if (
            fence
            and (len(fence.group("indent")) <= 3 or self.after_item)
            and not (fence.group("marker")[0] == "`" and "`" in fence.group("info"))
        ):
            marker = fence.group("marker")
            self.new_block(None)
            return FenceState(
                marker=marker[0], length=len(marker), start=index, quotes=quotes
            )

        if COMMENT_OPEN_PATTERN.match(body) and "-->" not in body:
            self.new_block(None)
            return CommentState(start=index)

        if self.context == "table":
            if _is_table_delimiter(body):
                self.emit(OPAQUE, line)
                return NormalState()
            if _is_table_row(body):
                self.table_row(body, ending)
                return NormalState()

        if self.context == "paragraph" and SETEXT_UNDERLINE_PATTERN.match(body):
            self.emit(OPAQUE, line)
            self.context = None
            self.join_from = None
            return NormalState()

        if THEMATIC_BREAK_PATTERN.match(body):
            self.emit_opaque_block(line)
            self.after_item = False
            return NormalState()

        if LINK_DEFINITION_PATTERN.match(body):
            self.emit_opaque_block(line)
            return NormalState()

        if (
            self.context in (None, "blank")
            and not self.after_item
            and INDENTED_CODE_PATTERN.match(body)
        ):
            self.emit_opaque_block(line, context="code")
            return NormalState()

        if (
            _is_table_row(body)
            and index + 1 < len(self.lines)
            and _is_table_delimiter(_split_ending(self.lines[index + 1])[0])
        ):
            self.new_block("table")
            self.after_item = False
            self.table_row(body, ending)
            return NormalState()

        self.flow_line(body, ending)
        return NormalState()

    def flow_line(self, body: str, ending: str) -> None:
        """Emit a paragraph, list item, heading or blockquote line."""

        container = CONTAINER_PATTERN.match(body)
        position = container.end() if container else 0
        prefix_is_whitespace = ">" not in body[:position]

        item = LIST_MARKER_PATTERN.match(body, position)
        if item:
            position = item.end()
        heading = HEADING_MARKER_PATTERN.match(body, position)
        if heading:
            position = heading.end()

        prefix = body[:position]
        content = body[position:]
        closing = ""
        if heading:
            closing_match = HEADING_CLOSING_PATTERN.search(content)
            if closing_match:
                closing = content[closing_match.start():]
                content = content[:closing_match.start()]

        pieces = scan_inline(content, self.ignore)
        starts_with_text = bool(pieces) and pieces[0][0] is TEXT

        if item or heading:
            self.new_block("item" if item else None)
            self.after_item = bool(item) or (self.after_item and position > 0)
        elif self.context in ("paragraph", "item"):
            if (
                self.join_from is not None
                and prefix_is_whitespace
                and starts_with_text
            ):
                self._join_previous_line()
                self.emit(TEXT, prefix)
                prefix = ""
        else:
            self.new_block("paragraph")
            if not body[:1].isspace() and ">" not in prefix:
                self.after_item = False

        self.emit(OPAQUE, prefix)
        for kind, text in pieces:
            self.emit(kind, text)
        self.emit(OPAQUE, closing)

        last_is_text = bool(pieces) and pieces[-1][0] is TEXT and not closing
        self.join_from = (
            len(self.pieces) if last_is_text and not heading else None
        )
        self.emit(OPAQUE, ending)

    def _join_previous_line(self) -> None:
        start = self.join_from or 0
        for offset in range(start, len(self.pieces)):
            _, content, block = self.pieces[offset]
            self.pieces[offset] = (TEXT, content, block)

    def table_row(self, body: str, ending: str) -> None:
        cursor = 0
        for pipe in TABLE_PIPE_PATTERN.finditer(body):
            self._table_cell(body[cursor:pipe.start()])
            self.emit(OPAQUE, "|")
            cursor = pipe.end()
        self._table_cell(body[cursor:])
        self.emit(OPAQUE, ending)
        self.join_from = None

    def _table_cell(self, cell: str) -> None:
        for kind, text in scan_inline(cell, self.ignore):
            self.emit(kind, text)

    # --- Fences, front matter, comments -----------------------------------

    def fence_line(self, state: FenceState, index: int) -> ScanState:
        body = _strip_quotes(_split_ending(self.lines[index])[0], state.quotes)
        if body is None:
            # The enclosing blockquote ended, and the fence with it.
            self.emit(OPAQUE, "".join(self.lines[state.start:index]))
            self.context = None
            return self.normal_line(index)
        closing = re.match(
            rf"^[ \t]*{re.escape(state.marker)}{{{state.length},}}[ \t]*$", body
        )
        if index > state.start and closing:
            self.emit(OPAQUE, "".join(self.lines[state.start:index + 1]))
            self.context = None
            return NormalState()
        return state

    def comment_line(self, state: CommentState, index: int) -> ScanState:
        if index > state.start and "-->" in self.lines[index]:
            self.emit(OPAQUE, "".join(self.lines[state.start:index + 1]))
            self.context = None
            return NormalState()
        return state

    def finish(self, state: ScanState) -> None:
        """Flush a construct left open at the end of the document."""

        if isinstance(state, (FenceState, CommentState)):
            self.emit(OPAQUE, "".join(self.lines[state.start:]))


def _normalise(
    pieces: Sequence[Tuple[SegmentKind, str, int]], budget: int
) -> List[Segment]:
    """Merge adjacent pieces, peel whitespace off text and split long text."""

    merged: List[Segment] = []
    for kind, content, block in pieces:
        if merged and merged[-1].kind is kind and merged[-1].block == block:
            previous = merged.pop()
            merged.append(Segment(kind, previous.content + content, block))
        else:
            merged.append(Segment(kind, content, block))

    result: List[Segment] = []

    def append(kind: SegmentKind, content: str, block: int) -> None:
        if not content:
            return
        if (
            kind is OPAQUE
            and result
            and result[-1].kind is OPAQUE
            and result[-1].block == block
        ):
            previous = result.pop()
            result.append(Segment(OPAQUE, previous.content + content, block))
            return
        result.append(Segment(kind, content, block))

    for segment in merged:
        if not segment.is_text:
            append(OPAQUE, segment.content, segment.block)
            continue
        for chunk in split_text(segment.content, budget):
            core = chunk.strip()
            if not core:
                append(OPAQUE, chunk, segment.block)
                continue
            lead = chunk[: len(chunk) - len(chunk.lstrip())]
            trail = chunk[len(chunk.rstrip()):]
            append(OPAQUE, lead, segment.block)
            append(TEXT, core, segment.block)
            append(OPAQUE, trail, segment.block)
    return result


class MarkdownSegmenter:
    """Turns Markdown source into an ordered list of segments."""

    def __init__(
        self, budget: int = DEFAULT_TEXT_BUDGET, ignore_terms: Iterable[str] = ()
    ) -> None:
        self.budget = max(1, budget)
        self.ignore = compile_ignore_terms(ignore_terms)

    def segment(self, raw_text: str) -> List[Segment]:
        lines = LINE_PATTERN.findall(raw_text)
        if not lines:
            return []

        state: ScanState = NormalState()
        first = _split_ending(lines[0])[0]
        if first in FRONT_MATTER_CLOSERS:
            state = FrontMatterState(closers=FRONT_MATTER_CLOSERS[first])

        # Unterminated front matter: the opener is scanned as an ordinary line.
        builder = self._scan(lines, state) or self._scan(lines, NormalState())
        return _normalise(builder.pieces, self.budget)  # type: ignore[union-attr]

    def _scan(
        self, lines: List[str], state: ScanState
    ) -> Optional[_SegmentBuilder]:
        builder = _SegmentBuilder(lines, self.ignore)
        start = 0
        if isinstance(state, FrontMatterState):
            builder.new_block(None)
            start = 1

        for index in range(start, len(lines)):
            if isinstance(state, FrontMatterState):
                body, _ = _split_ending(lines[index])
                if body in state.closers:
                    builder.emit(OPAQUE, "".join(lines[: index + 1]))
                    state = NormalState()
            elif isinstance(state, FenceState):
                state = builder.fence_line(state, index)
            elif isinstance(state, CommentState):
                state = builder.comment_line(state, index)
            else:
                state = builder.normal_line(index)

        if isinstance(state, FrontMatterState):
            return None
        builder.finish(state)
        return builder


def segment(raw_text: str, budget: int = DEFAULT_TEXT_BUDGET) -> List[Segment]:
    """Segment a Markdown document with the default segmenter."""

    return MarkdownSegmenter(budget).segment(raw_text)
