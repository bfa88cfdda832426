"""Run supervision: walks the input, runs one pipeline per file, reports."""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Set, Tuple

from .context import RunContext, UsageBudget
from .documents import MarkdownDocumentHandler
from .errors import (
    ErrorCategory,
    ErrorRecord,
    FatalRunError,
    MdParallelError,
    TranslationProviderError,
)
from .glossary import GlossaryResolver
from .policy import RetryPolicy
from .providers import TranslationProvider
from .reconstructor import reconstruct
from .segmenter import DEFAULT_TEXT_BUDGET, MarkdownSegmenter
from .structures import Formality
from .translator import BATCH_CHARACTERS, BATCH_TEXTS, Translator
from .walker import FilePair, MarkdownWalker

logger = logging.getLogger(__name__)

DEFAULT_GLOSSARY_NAME = "internet_computer"


class FileState(Enum):
    PENDING = "pending"
    SEGMENTING = "segmenting"
    TRANSLATING = "translating"
    RECONSTRUCTING = "reconstructing"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


class RunState(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


@dataclass
class RunOptions:
    """Per-run choices taken from the command line and settings."""

    source_lang: str
    target_lang: str
    formality: Optional[Formality] = None
    glossary_name: Optional[str] = DEFAULT_GLOSSARY_NAME
    ignore_terms: Tuple[str, ...] = ()
    max_depth: int = 0
    concurrency: int = 1
    force_overwrite: bool = False
    batch_characters: int = BATCH_CHARACTERS
    batch_texts: int = BATCH_TEXTS
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass
class FileOutcome:
    """What happened to one input file."""

    input_path: Path
    output_path: Path
    state: FileState = FileState.PENDING
    error: Optional[ErrorRecord] = None
    text_segments: int = 0
    untranslated_segments: int = 0

    @property
    def succeeded(self) -> bool:
        return self.state is FileState.DONE


@dataclass
class RunResult:
    """Report returned after a run."""

    state: RunState
    outcomes: List[FileOutcome]
    warnings: List[ErrorRecord]
    abort_reason: Optional[ErrorRecord] = None
    characters: int = 0
    elapsed_seconds: float = 0.0

    @property
    def done(self) -> List[FileOutcome]:
        return [outcome for outcome in self.outcomes if outcome.succeeded]

    @property
    def failed(self) -> List[FileOutcome]:
        return [outcome for outcome in self.outcomes if outcome.state is FileState.FAILED]


class RunController:
    """Coordinates walking, segmentation, translation and reconstruction."""

    def __init__(
        self,
        *,
        input_path: Path,
        output_path: Path,
        provider: TranslationProvider,
        options: RunOptions,
        context: Optional[RunContext] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.input_path = input_path
        self.output_path = output_path
        self.provider = provider
        self.options = options
        self.context = context or RunContext()
        self.segmenter = MarkdownSegmenter(
            min(DEFAULT_TEXT_BUDGET, max(1, options.batch_characters)),
            ignore_terms=options.ignore_terms,
        )
        self.resolver = GlossaryResolver(provider, self.context)
        self.translator = Translator(
            provider,
            self.context,
            retry_policy=options.retry_policy,
            batch_characters=options.batch_characters,
            batch_texts=options.batch_texts,
            sleep=sleep,
        )

    def run(self) -> RunResult:
        start_time = time.time()
        outcomes: List[FileOutcome] = []
        state = RunState.COMPLETED

        try:
            walker = MarkdownWalker(self.input_path, self.output_path, self.options.max_depth)
            self._prepare_budget()
            self._schedule(iter(walker), outcomes)
        except FatalRunError as exc:
            self._abort(exc)
        except KeyboardInterrupt:
            logger.warning("Interrupted, finishing files in progress")
            self.context.cancel()
            state = RunState.CANCELLED

        if self.context.aborted:
            state = RunState.ABORTED
        elif self.context.cancelled:
            state = RunState.CANCELLED

        return RunResult(
            state=state,
            outcomes=outcomes,
            warnings=self.context.warnings,
            abort_reason=self.context.abort_reason,
            characters=self.context.budget.consumed,
            elapsed_seconds=time.time() - start_time,
        )

    def _prepare_budget(self) -> None:
        """Size the run's character budget from the account's remaining quota."""

        try:
            usage = self.provider.get_usage()
        except FatalRunError:
            raise
        except TranslationProviderError as exc:
            self.context.warn(
                ErrorRecord(
                    category=ErrorCategory.NETWORK,
                    message=f"Could not query usage, quota is not checked locally: {exc}",
                    details=type(exc).__name__,
                )
            )
            return
        if usage is None:
            return
        logger.info(
            "Characters used this period: %d of %s",
            usage.character_count,
            usage.character_limit if usage.character_limit is not None else "unlimited",
        )
        self.context.budget = UsageBudget(limit=usage.remaining)

    def _schedule(self, pairs: Iterator[FilePair], outcomes: List[FileOutcome]) -> None:
        """Submit files lazily so nothing new starts after an abort or cancel."""

        concurrency = max(1, self.options.concurrency)
        with ThreadPoolExecutor(max_workers=concurrency) as pool:
            pending: Set[Future] = set()
            exhausted = False
            try:
                while True:
                    while not exhausted and len(pending) < concurrency:
                        if self.context.cancelled:
                            exhausted = True
                            break
                        pair = next(pairs, None)
                        if pair is None:
                            exhausted = True
                            break
                        outcome = FileOutcome(input_path=pair[0], output_path=pair[1])
                        outcomes.append(outcome)
                        pending.add(pool.submit(self._process, outcome))
                    if not pending:
                        break
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        future.result()
            except BaseException:
                self.context.cancel()
                raise

    def _process(self, outcome: FileOutcome) -> None:
        options = self.options
        handler = MarkdownDocumentHandler(outcome.input_path)
        label = str(outcome.input_path)
        try:
            handler.check_destination(
                outcome.output_path, force_overwrite=options.force_overwrite
            )

            self._advance(outcome, FileState.SEGMENTING)
            document = handler.load()
            document.segments = self.segmenter.segment(document.content)
            units = document.units()
            outcome.text_segments = len(units)

            self._advance(outcome, FileState.TRANSLATING)
            translations = {}
            if units:
                glossary_id = self.resolver.resolve(
                    options.source_lang, options.target_lang, options.glossary_name
                )
                results = self.translator.translate(
                    units,
                    options.source_lang,
                    options.target_lang,
                    glossary_id,
                    options.formality,
                    document=label,
                )
                translations = {
                    unit.position: result for unit, result in zip(units, results)
                }
                outcome.untranslated_segments = sum(
                    1 for result in results if result is None
                )

            self._advance(outcome, FileState.RECONSTRUCTING)
            rendered = reconstruct(document.segments, translations)

            self._advance(outcome, FileState.WRITING)
            handler.save(outcome.output_path, rendered)
            self._advance(outcome, FileState.DONE)
        except FatalRunError as exc:
            outcome.error = ErrorRecord.from_exception(exc, path=label)
            self._advance(outcome, FileState.FAILED)
            self._abort(exc, path=label)
        except MdParallelError as exc:
            outcome.error = ErrorRecord.from_exception(exc, path=label)
            self._advance(outcome, FileState.FAILED)
            logger.error(outcome.error.describe())
        except Exception as exc:
            outcome.error = ErrorRecord.from_exception(exc, path=label)
            self._advance(outcome, FileState.FAILED)
            logger.exception("Unexpected error: %s", outcome.error.describe())

    def _advance(self, outcome: FileOutcome, state: FileState) -> None:
        logger.debug("%s: %s -> %s", outcome.input_path, outcome.state.value, state.value)
        outcome.state = state

    def _abort(self, exc: BaseException, *, path: Optional[str] = None) -> None:
        record = ErrorRecord.from_exception(exc, path=path)
        if self.context.abort(record):
            logger.error("Run aborted: %s", record.describe())
