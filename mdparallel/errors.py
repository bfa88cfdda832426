"""Error definitions for the mdparallel translator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    """Categorises runtime errors and warnings for the run summary."""

    FILE_IO = auto()
    INVALID_TARGET = auto()
    TRANSLATION = auto()
    NETWORK = auto()
    AUTH = auto()
    QUOTA = auto()
    GLOSSARY = auto()
    CONFIGURATION = auto()
    OTHER = auto()


class MdParallelError(Exception):
    """Base exception for all custom errors."""

    category = ErrorCategory.OTHER


class FatalRunError(MdParallelError):
    """Errors that stop the whole run rather than a single file."""


class InputPathError(FatalRunError):
    """Raised when the input path does not exist or cannot be read."""

    category = ErrorCategory.FILE_IO


class InvalidTargetError(FatalRunError):
    """Raised when the input and output paths are of different kinds."""

    category = ErrorCategory.INVALID_TARGET


class ConfigurationError(MdParallelError):
    """Raised when settings are missing or invalid."""

    category = ErrorCategory.CONFIGURATION


class DocumentError(MdParallelError):
    """Raised when a source document cannot be read or its output written."""

    category = ErrorCategory.FILE_IO


class OverwriteRefusedError(DocumentError):
    """Raised when attempting to overwrite an output without consent."""


class TranslationProviderError(MdParallelError):
    """Raised when the translation service rejects a request permanently."""

    category = ErrorCategory.TRANSLATION


class RateLimitedError(TranslationProviderError):
    """The service asked us to slow down (HTTP 429)."""

    category = ErrorCategory.NETWORK


class ServiceUnavailableError(TranslationProviderError):
    """Connection problems, timeouts and 5xx responses."""

    category = ErrorCategory.NETWORK


class AuthenticationError(TranslationProviderError, FatalRunError):
    """The API key was rejected."""

    category = ErrorCategory.AUTH


class QuotaExceededError(TranslationProviderError, FatalRunError):
    """The account's character quota is exhausted."""

    category = ErrorCategory.QUOTA


class TranslationFailedError(MdParallelError):
    """A batch could not be translated within the retry ceiling."""

    category = ErrorCategory.TRANSLATION


RETRYABLE_ERRORS = (RateLimitedError, ServiceUnavailableError)


@dataclass(frozen=True)
class ErrorRecord:
    """Stores context for a handled error or warning."""

    category: ErrorCategory
    message: str
    path: Optional[str] = None
    details: Optional[str] = None

    @classmethod
    def from_exception(
        cls, exc: BaseException, *, path: Optional[str] = None
    ) -> "ErrorRecord":
        category = getattr(exc, "category", ErrorCategory.OTHER)
        return cls(
            category=category,
            message=str(exc) or type(exc).__name__,
            path=path,
            details=type(exc).__name__,
        )

    def describe(self) -> str:
        prefix = f"{self.path}: " if self.path else ""
        return f"[{self.category.name}] {prefix}{self.message}"
