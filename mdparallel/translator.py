"""Batching and retry orchestration for translation requests."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence

from .context import RunContext
from .errors import (
    ErrorRecord,
    FatalRunError,
    TranslationFailedError,
    TranslationProviderError,
)
from .policy import RetryPolicy
from .providers import TranslationProvider
from .structures import Batch, Formality, TranslationUnit

logger = logging.getLogger(__name__)

BATCH_CHARACTERS = 30000
BATCH_TEXTS = 50


class BatchBuilder:
    """Groups units into batches under a text count and character budget.

    A unit is never split; one larger than the budget travels alone.
    """

    def __init__(self, max_characters: int = BATCH_CHARACTERS, max_texts: int = BATCH_TEXTS) -> None:
        self.max_characters = max(1, max_characters)
        self.max_texts = max(1, max_texts)

    def build(self, units: Sequence[TranslationUnit]) -> List[Batch]:
        batches: List[Batch] = []
        current: List[TranslationUnit] = []
        current_chars = 0

        for unit in units:
            size = len(unit.text)
            if current and (
                len(current) >= self.max_texts
                or current_chars + size > self.max_characters
            ):
                batches.append(Batch(batch_id=len(batches) + 1, units=current))
                current = []
                current_chars = 0
            current.append(unit)
            current_chars += size

        if current:
            batches.append(Batch(batch_id=len(batches) + 1, units=current))
        return batches


class Translator:
    """Sends units to a provider in batches and returns results in input order."""

    def __init__(
        self,
        provider: TranslationProvider,
        context: RunContext,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        batch_characters: int = BATCH_CHARACTERS,
        batch_texts: int = BATCH_TEXTS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.context = context
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_builder = BatchBuilder(
            batch_characters, min(batch_texts, provider.max_texts_per_request)
        )
        self.sleep = sleep

    def translate(
        self,
        units: Sequence[TranslationUnit],
        source_lang: str,
        target_lang: str,
        glossary_id: Optional[str] = None,
        formality: Optional[Formality] = None,
        *,
        document: Optional[str] = None,
    ) -> List[Optional[str]]:
        """Translate ``units``; ``None`` marks units whose batch failed."""

        results: List[Optional[str]] = [None] * len(units)
        if not units:
            return results

        formality = self._effective_formality(formality, target_lang)
        batches = self.batch_builder.build(units)
        logger.debug(
            "%s: %d units in %d batches", document or "<text>", len(units), len(batches)
        )

        offset = 0
        for batch in batches:
            translations = self._process_batch(
                batch,
                source_lang=source_lang,
                target_lang=target_lang,
                glossary_id=glossary_id,
                formality=formality,
                document=document,
            )
            if translations is not None:
                results[offset : offset + len(batch.units)] = translations
            offset += len(batch.units)
        return results

    def _effective_formality(
        self, formality: Optional[Formality], target_lang: str
    ) -> Optional[Formality]:
        if formality is None or formality is Formality.DEFAULT:
            return None
        try:
            supported = self.provider.supports_formality(target_lang)
        except FatalRunError:
            raise
        except TranslationProviderError as exc:
            logger.warning("Cannot check formality support for %s: %s", target_lang, exc)
            supported = False
        if not supported:
            logger.debug("Formality not supported for %s, omitting it", target_lang)
            return None
        return formality

    def _process_batch(
        self,
        batch: Batch,
        *,
        source_lang: str,
        target_lang: str,
        glossary_id: Optional[str],
        formality: Optional[Formality],
        document: Optional[str],
    ) -> Optional[List[str]]:
        self.context.budget.reserve(batch.characters)

        retry = 0
        while True:
            try:
                translations = self.provider.submit(
                    batch.texts,
                    source_lang=source_lang,
                    target_lang=target_lang,
                    glossary_id=glossary_id,
                    formality=formality,
                )
            except FatalRunError:
                raise
            except TranslationProviderError as exc:
                retry += 1
                if self.retry_policy.should_retry(exc, retry):
                    delay = self.retry_policy.delay(retry)
                    logger.warning(
                        "Batch %d failed (%s), retry %d of %d in %.1fs",
                        batch.batch_id,
                        exc,
                        retry,
                        self.retry_policy.max_retries,
                        delay,
                    )
                    self.sleep(delay)
                    continue
                self._fail(
                    batch,
                    TranslationFailedError(
                        f"Batch {batch.batch_id} ({len(batch.units)} segments) "
                        f"left untranslated after {retry} attempt(s): {exc}"
                    ),
                    document,
                )
                return None

            if len(translations) != len(batch.units):
                self._fail(
                    batch,
                    TranslationFailedError(
                        f"Batch {batch.batch_id}: sent {len(batch.units)} segments, "
                        f"received {len(translations)} translations."
                    ),
                    document,
                )
                return None

            logger.debug(
                "Batch %d translated (%d segments, %d chars)",
                batch.batch_id,
                len(batch.units),
                batch.characters,
            )
            return list(translations)

    def _fail(self, batch: Batch, failure: TranslationFailedError, document: Optional[str]) -> None:
        self.context.warn(ErrorRecord.from_exception(failure, path=document))
