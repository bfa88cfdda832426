from mdparallel.context import RunContext
from mdparallel.errors import (
    ErrorCategory,
    QuotaExceededError,
    RateLimitedError,
)
from mdparallel.policy import RetryPolicy
from mdparallel.runner import FileState, RunController, RunOptions, RunState
from mdparallel.structures import Usage
from tests.fakes import FakeProvider, glossary


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def run(input_path, output_path, provider, **options):
    options.setdefault("source_lang", "EN")
    options.setdefault("target_lang", "DE")
    controller = RunController(
        input_path=input_path,
        output_path=output_path,
        provider=provider,
        options=RunOptions(**options),
        sleep=lambda seconds: None,
    )
    return controller.run()


def test_single_file_is_translated_side_by_side(tmp_path):
    source = write(tmp_path / "doc.md", "# Title\n\nHello.\n")
    target = tmp_path / "out" / "doc.md"
    result = run(source, target, FakeProvider(glossaries=[glossary("g1")]))

    assert result.state is RunState.COMPLETED
    assert [o.state for o in result.outcomes] == [FileState.DONE]
    assert target.read_text(encoding="utf-8") == (
        "# Title\n\n# [DE] Title\n\nHello.\n\n[DE] Hello.\n"
    )
    assert result.warnings == []
    assert result.characters == len("Title") + len("Hello.")


def test_glossary_id_reaches_the_provider(tmp_path):
    source = write(tmp_path / "doc.md", "Hello.\n")
    provider = FakeProvider(glossaries=[glossary("g1")])
    run(source, tmp_path / "out.md", provider)
    assert provider.calls[0]["glossary_id"] == "g1"


def test_glossary_miss_is_a_warning(tmp_path):
    source = write(tmp_path / "doc.md", "Hello.\n")
    provider = FakeProvider()
    result = run(source, tmp_path / "out.md", provider)
    assert result.state is RunState.COMPLETED
    assert provider.calls[0]["glossary_id"] is None
    assert [w.category for w in result.warnings] == [ErrorCategory.GLOSSARY]


def test_quota_on_second_file_aborts_run(tmp_path):
    root = tmp_path / "docs"
    for name in ("a.md", "b.md", "c.md"):
        write(root / name, f"Text of {name}.\n")
    out = tmp_path / "out"
    provider = FakeProvider([None, QuotaExceededError("quota exhausted")])

    result = run(root, out, provider, concurrency=1, glossary_name=None)

    assert result.state is RunState.ABORTED
    assert [o.input_path.name for o in result.outcomes] == ["a.md", "b.md"]
    assert [o.state for o in result.outcomes] == [FileState.DONE, FileState.FAILED]
    assert result.abort_reason.category is ErrorCategory.QUOTA
    assert (out / "a.md").exists()
    assert not (out / "b.md").exists()
    assert not (out / "c.md").exists()
    assert len(provider.calls) == 2


def test_failed_batch_keeps_original_once(tmp_path):
    source = write(tmp_path / "doc.md", "Hello.\n")
    target = tmp_path / "out.md"
    provider = FakeProvider([RateLimitedError("429")] * 2)
    result = run(
        source,
        target,
        provider,
        glossary_name=None,
        retry_policy=RetryPolicy(max_retries=1),
    )
    assert result.state is RunState.COMPLETED
    assert target.read_text(encoding="utf-8") == "Hello.\n"
    assert result.outcomes[0].untranslated_segments == 1
    assert [w.category for w in result.warnings] == [ErrorCategory.TRANSLATION]


def test_existing_output_requires_force(tmp_path):
    source = write(tmp_path / "doc.md", "Hello.\n")
    target = write(tmp_path / "out.md", "old\n")
    result = run(source, target, FakeProvider(), glossary_name=None)
    assert result.state is RunState.COMPLETED
    assert result.failed[0].error.category is ErrorCategory.FILE_IO
    assert target.read_text(encoding="utf-8") == "old\n"

    result = run(source, target, FakeProvider(), glossary_name=None, force_overwrite=True)
    assert result.done and not result.failed
    assert target.read_text(encoding="utf-8") == "Hello.\n\n[DE] Hello.\n"


def test_undecodable_file_fails_only_itself(tmp_path):
    root = tmp_path / "docs"
    (root).mkdir()
    (root / "a.md").write_bytes(b"\xff\xfe\x00broken")
    write(root / "b.md", "Fine.\n")
    result = run(root, tmp_path / "out", FakeProvider(), glossary_name=None)
    assert result.state is RunState.COMPLETED
    assert [o.state for o in result.outcomes] == [FileState.FAILED, FileState.DONE]


def test_missing_input_aborts(tmp_path):
    result = run(tmp_path / "missing", tmp_path / "out", FakeProvider())
    assert result.state is RunState.ABORTED
    assert result.abort_reason.category is ErrorCategory.FILE_IO
    assert result.outcomes == []


def test_usage_limit_sizes_the_budget(tmp_path):
    source = write(tmp_path / "doc.md", "Hello there.\n")
    provider = FakeProvider(usage=Usage(character_count=95, character_limit=100))
    result = run(source, tmp_path / "out.md", provider, glossary_name=None)
    assert result.state is RunState.ABORTED
    assert result.abort_reason.category is ErrorCategory.QUOTA
    assert provider.calls == []


def test_cancelled_context_starts_no_files(tmp_path):
    root = tmp_path / "docs"
    write(root / "a.md", "Hello.\n")
    context = RunContext()
    context.cancel()
    controller = RunController(
        input_path=root,
        output_path=tmp_path / "out",
        provider=FakeProvider(),
        options=RunOptions(source_lang="EN", target_lang="DE"),
        context=context,
    )
    result = controller.run()
    assert result.state is RunState.CANCELLED
    assert result.outcomes == []


def test_parallel_run_translates_every_file(tmp_path):
    root = tmp_path / "docs"
    names = [f"file{index}.md" for index in range(6)]
    for name in names:
        write(root / name, f"Text {name}.\n")
    result = run(root, tmp_path / "out", FakeProvider(), concurrency=3, glossary_name=None)
    assert result.state is RunState.COMPLETED
    assert sorted(o.input_path.name for o in result.done) == names
    for name in names:
        assert (tmp_path / "out" / name).exists()


def test_empty_document_is_copied(tmp_path):
    source = write(tmp_path / "empty.md", "")
    target = tmp_path / "out.md"
    provider = FakeProvider()
    result = run(source, target, provider)
    assert result.done
    assert target.read_text(encoding="utf-8") == ""
    assert provider.calls == [] and provider.listings == 0


def test_unexpected_error_fails_only_its_file(tmp_path):
    root = tmp_path / "docs"
    for name in ("a.md", "b.md", "c.md"):
        write(root / name, f"Text of {name}.\n")
    out = tmp_path / "out"
    provider = FakeProvider([None, RuntimeError("sdk bug"), None])

    result = run(root, out, provider, glossary_name=None)

    assert result.state is RunState.COMPLETED
    assert [o.state for o in result.outcomes] == [
        FileState.DONE,
        FileState.FAILED,
        FileState.DONE,
    ]
    error = result.failed[0].error
    assert error.category is ErrorCategory.OTHER
    assert error.details == "RuntimeError"
    assert error.message == "sdk bug"
    assert (out / "a.md").exists() and (out / "c.md").exists()
    assert not (out / "b.md").exists()


def test_ignore_terms_are_not_sent(tmp_path):
    source = write(tmp_path / "doc.md", "Write Motoko code.\n")
    target = tmp_path / "out.md"
    provider = FakeProvider()
    result = run(source, target, provider, glossary_name=None, ignore_terms=("motoko",))
    assert result.done
    assert provider.calls[0]["texts"] == ["Write", "code."]
    assert target.read_text(encoding="utf-8") == (
        "Write Motoko code.\n\n[DE] Write Motoko [DE] code.\n"
    )
