"""Glossary lookup for translation runs and glossary registration helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .context import RunContext
from .errors import (
    DocumentError,
    ErrorCategory,
    ErrorRecord,
    FatalRunError,
    TranslationProviderError,
)
from .languages import same_language
from .providers import TranslationProvider

logger = logging.getLogger(__name__)


class GlossaryResolver:
    """Maps (source, target, logical name) to a remote glossary identifier.

    The remote listing is consulted at most once per distinct triple per run;
    results, including misses, are cached on the run context.
    """

    def __init__(self, provider: TranslationProvider, context: RunContext) -> None:
        self.provider = provider
        self.context = context

    def resolve(self, source_lang: str, target_lang: str, name: Optional[str]) -> Optional[str]:
        if not name:
            return None

        key = (source_lang.upper(), target_lang.upper(), name)
        with self.context.glossary_lock:
            if key in self.context.glossaries:
                return self.context.glossaries[key]
            glossary_id = self._lookup(source_lang, target_lang, name)
            self.context.glossaries[key] = glossary_id
            return glossary_id

    def _lookup(self, source_lang: str, target_lang: str, name: str) -> Optional[str]:
        pair = f"{source_lang}->{target_lang}"
        try:
            glossaries = self.provider.list_glossaries()
        except FatalRunError:
            raise
        except TranslationProviderError as exc:
            self.context.warn(
                ErrorRecord(
                    category=ErrorCategory.GLOSSARY,
                    message=(
                        f"Glossary listing failed, translating {pair} without "
                        f"glossary '{name}': {exc}"
                    ),
                    details=type(exc).__name__,
                )
            )
            return None

        matches = [
            glossary
            for glossary in glossaries
            if glossary.name == name
            and glossary.ready
            and same_language(glossary.source_lang, source_lang)
            and same_language(glossary.target_lang, target_lang)
        ]
        if not matches:
            self.context.warn(
                ErrorRecord(
                    category=ErrorCategory.GLOSSARY,
                    message=f"No ready glossary '{name}' for {pair}.",
                    details="GlossaryUnavailable",
                )
            )
            return None

        chosen = matches[0]
        if len(matches) > 1:
            self.context.warn(
                ErrorRecord(
                    category=ErrorCategory.GLOSSARY,
                    message=(
                        f"{len(matches)} glossaries named '{name}' match {pair}; "
                        f"using {chosen.glossary_id}."
                    ),
                    details="GlossaryAmbiguous",
                )
            )
        logger.debug("Using glossary %s for %s", chosen.glossary_id, pair)
        return chosen.glossary_id


def read_tsv_entries(path: Path) -> List[Tuple[str, str]]:
    """Read ``source<TAB>target`` pairs; lines without a tab are skipped."""

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentError(f"Cannot read glossary file {path}: {exc}") from exc

    pairs: List[Tuple[str, str]] = []
    for number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        if "\t" not in line:
            logger.warning("%s:%d: no tab separator, line skipped", path, number)
            continue
        source, target = line.split("\t", 1)
        pairs.append((source, target))
    return pairs


def clean_entries(pairs: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    """Strip terms, drop blank entries and keep the first of duplicate sources."""

    entries: Dict[str, str] = {}
    for source, target in pairs:
        source, target = source.strip(), target.strip()
        if not source or not target:
            continue
        if source in entries:
            logger.warning(
                "Duplicate glossary term '%s': keeping '%s', ignoring '%s'",
                source,
                entries[source],
                target,
            )
            continue
        entries[source] = target
    return entries


def entries_from_mapping(mapping: Mapping[str, str]) -> Dict[str, str]:
    return clean_entries((str(key), str(value)) for key, value in mapping.items())
