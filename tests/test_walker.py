import pytest

from mdparallel.errors import InputPathError, InvalidTargetError
from mdparallel.walker import MarkdownWalker


def touch(path, text="x\n"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_single_file_yields_one_pair(tmp_path):
    source = touch(tmp_path / "doc.md")
    walker = MarkdownWalker(source, tmp_path / "out" / "doc.de.md")
    assert list(walker) == [(source, tmp_path / "out" / "doc.de.md")]


def test_single_file_requires_file_output(tmp_path):
    source = touch(tmp_path / "doc.md")
    (tmp_path / "out").mkdir()
    with pytest.raises(InvalidTargetError):
        MarkdownWalker(source, tmp_path / "out")
    with pytest.raises(InvalidTargetError):
        MarkdownWalker(source, tmp_path / "no-suffix")


def test_directory_requires_directory_output(tmp_path):
    (tmp_path / "docs").mkdir()
    with pytest.raises(InvalidTargetError):
        MarkdownWalker(tmp_path / "docs", tmp_path / "out.md")
    existing = touch(tmp_path / "existing")
    with pytest.raises(InvalidTargetError):
        MarkdownWalker(tmp_path / "docs", existing)


def test_missing_input_is_fatal(tmp_path):
    with pytest.raises(InputPathError):
        MarkdownWalker(tmp_path / "missing", tmp_path / "out")


def test_order_and_filtering(tmp_path):
    root = tmp_path / "docs"
    touch(root / "b.md")
    touch(root / "a.MARKDOWN")
    touch(root / "notes.txt")
    touch(root / "sub" / "c.mdx")
    touch(root / "aaa" / "d.md")
    out = tmp_path / "out"
    pairs = list(MarkdownWalker(root, out, max_depth=1))
    assert [p.relative_to(root).as_posix() for p, _ in pairs] == [
        "a.MARKDOWN",
        "b.md",
        "aaa/d.md",
        "sub/c.mdx",
    ]
    assert pairs[2][1] == out / "aaa" / "d.md"


def test_depth_bound(tmp_path):
    root = tmp_path / "docs"
    level = root
    for depth in range(6):
        touch(level / f"depth{depth}.md")
        level = level / f"level{depth + 1}"
    names = [p.name for p, _ in MarkdownWalker(root, tmp_path / "out", max_depth=2)]
    assert names == ["depth0.md", "depth1.md", "depth2.md"]


def test_default_depth_is_top_level_only(tmp_path):
    root = tmp_path / "docs"
    touch(root / "top.md")
    touch(root / "sub" / "nested.md")
    assert [p.name for p, _ in MarkdownWalker(root, tmp_path / "out")] == ["top.md"]


def test_walk_is_restartable(tmp_path):
    root = tmp_path / "docs"
    touch(root / "a.md")
    walker = MarkdownWalker(root, tmp_path / "out")
    assert list(walker) == list(walker)


def test_nested_output_directory_is_skipped(tmp_path):
    root = tmp_path / "docs"
    touch(root / "a.md")
    touch(root / "translated" / "a.md")
    pairs = list(MarkdownWalker(root, root / "translated", max_depth=3))
    assert [p.name for p, _ in pairs] == ["a.md"]
    assert pairs[0][0] == root / "a.md"


def test_walker_does_not_create_output(tmp_path):
    root = tmp_path / "docs"
    touch(root / "a.md")
    list(MarkdownWalker(root, tmp_path / "out"))
    assert not (tmp_path / "out").exists()
