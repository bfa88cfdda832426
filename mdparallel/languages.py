"""Language code handling for translation requests and glossary matching."""

from __future__ import annotations

import re

LANGUAGE_CODE_PATTERN = re.compile(r"^[A-Za-z]{2,3}(?:[-_][A-Za-z0-9]{2,4})?$")

# Targets that the service only accepts with a regional variant.
TARGET_DEFAULT_VARIANTS = {"EN": "EN-US", "PT": "PT-BR"}


def normalise_code(code: str) -> str:
    """Validate an ISO-639 code (optionally with region) and upper-case it."""

    cleaned = code.strip()
    if not LANGUAGE_CODE_PATTERN.match(cleaned):
        raise ValueError(f"'{code}' is not a valid language code.")
    return cleaned.replace("_", "-").upper()


def base_code(code: str) -> str:
    return normalise_code(code).split("-", 1)[0]


def source_code(code: str) -> str:
    """Source languages are sent without a region."""

    return base_code(code)


def target_code(code: str) -> str:
    normalized = normalise_code(code)
    return TARGET_DEFAULT_VARIANTS.get(normalized, normalized)


def same_language(first: str, second: str) -> bool:
    """Compare two codes on their base language, ignoring case and region."""

    try:
        return base_code(first) == base_code(second)
    except ValueError:
        return False
