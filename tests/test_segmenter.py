import random
import time

import pytest

from mdparallel.segmenter import MarkdownSegmenter, segment, split_text
from mdparallel.structures import SegmentKind


def texts(segments):
    return [s.content for s in segments if s.kind is SegmentKind.TEXT]


SAMPLES = [
    "",
    "Plain paragraph.\n",
    "No trailing newline",
    "# Title\n\nHello world.\n",
    "---\ntitle: Demo\n---\n\nBody text.\n",
    "+++\ntitle = 'x'\n+++\nBody\n",
    "Intro\n\n```python\nprint('hi')\n```\n\nOutro\n",
    "~~~\nunterminated\nfence\n",
    "| Name | Value |\n|------|-------|\n| a | b |\n",
    "- one\n- two\n  continued\n\n1. first\n2) second\n",
    "> quoted text\n> more\n",
    "See [the docs](https://x.io/a \"t\") and ![img](i.png).\n",
    "Footnote[^1] and <https://auto.link> and <b>bold</b>.\n\n[^1]: Note.\n",
    "<!--\nmulti-line\ncomment\n-->\nAfter\n",
    "Windows\r\nline endings\r\n\r\nNext\r\n",
    "Setext\n======\n\n    indented code\n\n***\n",
    "- [ ] task item\n- [x] done item\n",
    "   \n\t\n",
]


@pytest.mark.parametrize("document", SAMPLES)
def test_round_trip_reproduces_input(document):
    assert "".join(s.content for s in segment(document)) == document


def test_empty_document_has_no_segments():
    assert segment("") == []


def test_heading_and_paragraph():
    segments = segment("# Title\n\nHello world.\n")
    assert texts(segments) == ["Title", "Hello world."]
    heading = [s for s in segments if s.block == segments[1].block]
    assert "".join(s.content for s in heading) == "# Title\n"


def test_whole_fence_is_one_opaque_segment():
    fence = "```python\nprint('hi')\n```\n"
    segments = segment("Intro\n\n" + fence + "\nOutro\n")
    matching = [s for s in segments if "```" in s.content]
    assert len(matching) == 1
    assert matching[0].content == fence
    assert matching[0].kind is SegmentKind.OPAQUE
    assert texts(segments) == ["Intro", "Outro"]


def test_fence_with_longer_closing_run_and_tilde():
    document = "~~~~\n~~~\nstill code\n~~~~~\nText\n"
    segments = segment(document)
    assert segments[0].content == "~~~~\n~~~\nstill code\n~~~~~\n"
    assert texts(segments) == ["Text"]


def test_unterminated_fence_consumes_rest():
    segments = segment("```\ncode\n# not a heading\n")
    assert len(segments) == 1
    assert segments[0].kind is SegmentKind.OPAQUE


def test_front_matter_is_opaque():
    segments = segment("---\ntitle: X\n---\nBody\n")
    assert segments[0].content == "---\ntitle: X\n---\n"
    assert segments[0].kind is SegmentKind.OPAQUE
    assert texts(segments) == ["Body"]


def test_front_matter_only_document():
    segments = segment("---\na: 1\n...\n")
    assert [(s.kind, s.content) for s in segments] == [
        (SegmentKind.OPAQUE, "---\na: 1\n...\n")
    ]


def test_unterminated_front_matter_degrades_to_normal_text():
    segments = segment("---\ntitle\n")
    assert segments[0].content == "---\n"
    assert texts(segments) == ["title"]


def test_link_target_is_opaque_but_label_is_text():
    segments = segment("See [the docs](https://x.io/a) now.\n")
    assert texts(segments) == ["See", "the docs", "now."]
    assert any("(https://x.io/a)" in s.content for s in segments if not s.is_text)


def test_inline_code_and_urls_are_opaque():
    segments = segment("Run `make build` at https://example.com/path today.\n")
    assert texts(segments) == ["Run", "at", "today."]


def test_reference_links_and_footnotes():
    segments = segment("Read [this][ref] please[^n]\n")
    assert texts(segments) == ["Read", "this", "please"]


def test_table_structure_is_opaque():
    segments = segment("| Name | Value |\n|------|-------|\n| a | b |\n")
    assert texts(segments) == ["Name", "Value", "a", "b"]
    assert len({s.block for s in segments}) == 1
    assert not any("|" in text or "-" in text for text in texts(segments))


def test_soft_wrapped_lines_form_one_unit():
    segments = segment("Line one\nline two\n")
    assert texts(segments) == ["Line one\nline two"]


def test_list_items_are_separate_blocks():
    segments = segment("- one\n- two\n")
    assert texts(segments) == ["one", "two"]
    blocks = {s.block for s in segments if s.is_text}
    assert len(blocks) == 2
    assert all(not text.startswith("-") for text in texts(segments))


def test_task_list_checkbox_is_opaque():
    assert texts(segment("- [ ] buy milk\n")) == ["buy milk"]


def test_multiline_comment_is_opaque():
    segments = segment("<!--\nhidden\n-->\nShown\n")
    assert texts(segments) == ["Shown"]


def test_long_paragraph_is_split_at_sentences():
    segmenter = MarkdownSegmenter(budget=30)
    segments = segmenter.segment("First sentence here. Second sentence here.\n")
    assert texts(segments) == ["First sentence here.", "Second sentence here."]


def test_split_text_is_lossless_and_bounded():
    text = "word " * 40 + "x" * 25
    chunks = split_text(text, 12)
    assert "".join(chunks) == text
    assert all(len(chunk) <= 12 for chunk in chunks)


def test_segmentation_is_deterministic():
    document = SAMPLES[9]
    assert segment(document) == segment(document)


def test_unclosed_bracket_before_code_spans_does_not_backtrack():
    line = "[Note: run" + " `x` or `y`" * 40 + " " + "`x`y" * 200 + "\n"
    started = time.perf_counter()
    segments = segment(line)
    assert time.perf_counter() - started < 2.0
    assert "".join(s.content for s in segments) == line
    assert all("`" not in text for text in texts(segments))


def test_fence_inside_blockquote_is_opaque():
    document = "> ```\n> x = `a` if b else c\n> ```\n"
    segments = segment(document)
    assert [(s.kind, s.content) for s in segments] == [(SegmentKind.OPAQUE, document)]


def test_nested_blockquote_fence_keeps_shallower_lines():
    document = "> > ~~~\n> > code\n> > ~~~\n> After\n"
    segments = segment(document)
    assert segments[0].content == "> > ~~~\n> > code\n> > ~~~\n"
    assert texts(segments) == ["After"]


def test_blockquote_end_closes_its_fence():
    segments = segment("> ```\n> code\nAfter\n")
    assert segments[0].content == "> ```\n> code\n"
    assert segments[0].kind is SegmentKind.OPAQUE
    assert texts(segments) == ["After"]


def test_ignore_terms_stay_opaque():
    segmenter = MarkdownSegmenter(ignore_terms=["canister", "Internet Computer", " "])
    document = "Deploy a Canister on the internet computer today.\n"
    segments = segmenter.segment(document)
    assert texts(segments) == ["Deploy a", "on the", "today."]
    assert "".join(s.content for s in segments) == document


def test_ignore_terms_match_whole_words_only():
    segmenter = MarkdownSegmenter(ignore_terms=["IC"])
    assert texts(segmenter.segment("IC music\n")) == ["music"]
    assert texts(segmenter.segment("See [the IC docs](x.md)\n")) == ["See", "the", "docs"]


FRAGMENTS = [
    "Plain sentence here. Another one follows",
    "# Heading",
    "- item with `code`",
    "1. numbered [link](http://x.io)",
    "> quoted line",
    "> ```\n> quoted = `code`\n> ```",
    "```py\nx = 1\n# comment\n```",
    "~~~\nunterminated fence",
    "| a | b |\n|---|---|\n| c | d |",
    "[unclosed `x` bracket `y`",
    "See <https://auto.link> and <br> and https://y.io/z.",
    "<!--\ncomment that never closes",
    "Inline <!-- note --> comment",
    "",
    "   ",
    "***",
    "Setext\n---",
    "    indented code",
    "Trailing[^1] note",
]


@pytest.mark.parametrize("seed", range(30))
def test_random_documents_round_trip_and_keep_fences_opaque(seed):
    rng = random.Random(seed)
    parts = [rng.choice(FRAGMENTS) for _ in range(rng.randint(1, 12))]
    if rng.random() < 0.3:
        parts.insert(0, "---\ntitle: Random\n---")
    document = "\n".join(parts) + ("\n" if rng.random() < 0.5 else "")
    document = document.replace("\n", rng.choice(["\n", "\r\n"]))

    segments = segment(document, budget=rng.randint(8, 60))

    assert "".join(s.content for s in segments) == document
    assert not any("```" in text or "~~~" in text for text in texts(segments))
    assert all(s.content for s in segments)
