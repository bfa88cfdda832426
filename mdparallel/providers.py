"""Translation provider abstractions."""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import (
    AuthenticationError,
    ConfigurationError,
    QuotaExceededError,
    RateLimitedError,
    ServiceUnavailableError,
    TranslationProviderError,
)
from .structures import Formality, GlossaryRecord, Usage

logger = logging.getLogger(__name__)


class TranslationProvider(ABC):
    """Abstract adapter for translation services."""

    name = "abstract"
    max_texts_per_request = 50

    def __init__(self, *, debug: bool = False) -> None:
        self.debug = debug

    @abstractmethod
    def submit(
        self,
        texts: Sequence[str],
        *,
        source_lang: str,
        target_lang: str,
        glossary_id: Optional[str] = None,
        formality: Optional[Formality] = None,
    ) -> List[str]:
        """Translate ``texts`` and return the results in the same order."""

    def list_glossaries(self) -> List[GlossaryRecord]:
        return []

    def create_glossary(
        self,
        name: str,
        source_lang: str,
        target_lang: str,
        entries: Mapping[str, str],
    ) -> GlossaryRecord:
        raise TranslationProviderError(
            f"The {self.name} provider does not support glossaries."
        )

    def delete_glossary(self, glossary_id: str) -> None:
        raise TranslationProviderError(
            f"The {self.name} provider does not support glossaries."
        )

    def get_usage(self) -> Optional[Usage]:
        """Return account usage, or ``None`` when the service does not report it."""

        return None

    def supports_formality(self, target_lang: str) -> bool:
        return False

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not self.debug:
            return
        if isinstance(payload, (dict, list)):
            message = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
        else:
            message = str(payload)
        logger.debug("%s:\n%s", label, message)


class EchoTranslationProvider(TranslationProvider):
    """A provider that returns the original text (useful for dry runs and tests)."""

    name = "echo"

    def submit(
        self,
        texts: Sequence[str],
        *,
        source_lang: str,
        target_lang: str,
        glossary_id: Optional[str] = None,
        formality: Optional[Formality] = None,
    ) -> List[str]:
        self._log_debug("provider.request.texts", list(texts))
        return list(texts)

    def supports_formality(self, target_lang: str) -> bool:
        return True


class DeepLTranslationProvider(TranslationProvider):
    """Translation provider backed by the DeepL API."""

    name = "deepl"

    def __init__(
        self,
        auth_key: Optional[str],
        *,
        server_url: Optional[str] = None,
        debug: bool = False,
    ) -> None:
        super().__init__(debug=debug)
        if not auth_key:
            raise ConfigurationError(
                "DeepL configuration missing. Set DEEPL_API_KEY or choose a "
                "different provider."
            )
        try:
            import deepl  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise ConfigurationError(
                "DeepL Python SDK not installed. Install with `pip install deepl`."
            ) from exc

        # Retries are driven by the translator's RetryPolicy.
        deepl.http_client.max_network_retries = 0
        self._deepl = deepl
        self._client = deepl.Translator(auth_key, server_url=server_url)
        self._formality_targets: Optional[set] = None
        self._formality_lock = threading.Lock()
        logger.debug(
            "Using the DeepL %s API",
            "free" if is_free_account_key(auth_key) else "pro",
        )

    def submit(
        self,
        texts: Sequence[str],
        *,
        source_lang: str,
        target_lang: str,
        glossary_id: Optional[str] = None,
        formality: Optional[Formality] = None,
    ) -> List[str]:
        if not texts:
            return []
        options: Dict[str, Any] = {
            "source_lang": source_lang,
            "target_lang": target_lang,
            "preserve_formatting": True,
        }
        if glossary_id:
            options["glossary"] = glossary_id
        if formality is not None and formality is not Formality.DEFAULT:
            options["formality"] = formality.value
        self._log_debug("provider.request.options", options)
        self._log_debug("provider.request.texts", list(texts))

        results = self._call(self._client.translate_text, list(texts), **options)
        if not isinstance(results, list):
            results = [results]
        translations = [result.text for result in results]
        self._log_debug("provider.response.texts", translations)
        return translations

    def list_glossaries(self) -> List[GlossaryRecord]:
        glossaries = self._call(self._client.list_glossaries)
        return [
            GlossaryRecord(
                glossary_id=info.glossary_id,
                name=info.name,
                ready=bool(info.ready),
                source_lang=str(info.source_lang),
                target_lang=str(info.target_lang),
                entry_count=info.entry_count or 0,
                creation_time=str(info.creation_time) if info.creation_time else None,
            )
            for info in glossaries
        ]

    def create_glossary(
        self,
        name: str,
        source_lang: str,
        target_lang: str,
        entries: Mapping[str, str],
    ) -> GlossaryRecord:
        info = self._call(
            self._client.create_glossary,
            name,
            source_lang=source_lang,
            target_lang=target_lang,
            entries=dict(entries),
        )
        return GlossaryRecord(
            glossary_id=info.glossary_id,
            name=info.name,
            ready=bool(info.ready),
            source_lang=str(info.source_lang),
            target_lang=str(info.target_lang),
            entry_count=info.entry_count or 0,
            creation_time=str(info.creation_time) if info.creation_time else None,
        )

    def delete_glossary(self, glossary_id: str) -> None:
        self._call(self._client.delete_glossary, glossary_id)

    def get_usage(self) -> Optional[Usage]:
        usage = self._call(self._client.get_usage)
        character = getattr(usage, "character", None)
        if character is None or not getattr(character, "valid", True):
            return None
        return Usage(character_count=character.count, character_limit=character.limit)

    def supports_formality(self, target_lang: str) -> bool:
        with self._formality_lock:
            if self._formality_targets is None:
                languages = self._call(self._client.get_target_languages)
                self._formality_targets = {
                    language.code.upper()
                    for language in languages
                    if language.supports_formality
                }
            targets = self._formality_targets
        code = target_lang.upper()
        return code in targets or code.split("-", 1)[0] in targets

    def _call(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Invoke an SDK method, mapping DeepL exceptions onto ours."""

        deepl = self._deepl
        try:
            return func(*args, **kwargs)
        except deepl.AuthorizationException as exc:
            raise AuthenticationError(f"DeepL rejected the API key: {exc}") from exc
        except deepl.QuotaExceededException as exc:
            raise QuotaExceededError(f"DeepL quota exceeded: {exc}") from exc
        except deepl.TooManyRequestsException as exc:
            raise RateLimitedError(f"DeepL rate limit reached: {exc}") from exc
        except deepl.ConnectionException as exc:
            raise ServiceUnavailableError(f"DeepL unreachable: {exc}") from exc
        except deepl.DeepLException as exc:
            status = getattr(exc, "http_status_code", None)
            if status is not None and status >= 500:
                raise ServiceUnavailableError(
                    f"DeepL temporarily unavailable (HTTP {status}): {exc}"
                ) from exc
            raise TranslationProviderError(f"DeepL request failed: {exc}") from exc


class OpenAITranslationProvider(TranslationProvider):
    """Translation provider that uses OpenAI models through the Responses API."""

    name = "openai"
    DEFAULT_MODEL = "gpt-5-mini"
    SYSTEM_PROMPT = (
        "You are a professional translator. Return only JSON. "
        "Translate the provided Markdown text fragments into the requested language. "
        "Preserve leading and trailing whitespace, line breaks, numbers, and "
        "placeholders. Respond strictly with an object shaped as "
        '{"translations": [{"id": "...", "translated": "..."}]} '
        "containing every id exactly once. "
        "Do not add commentary. Do not wrap the JSON in markdown code fences."
    )

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: Optional[str] = None,
        debug: bool = False,
    ) -> None:
        super().__init__(debug=debug)
        if not api_key:
            raise ConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        try:
            import openai  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise ConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        self._openai = openai
        # Retries are driven by the translator's RetryPolicy.
        self._client = openai.OpenAI(api_key=api_key, max_retries=0)
        self.model = model or self.DEFAULT_MODEL

    def submit(
        self,
        texts: Sequence[str],
        *,
        source_lang: str,
        target_lang: str,
        glossary_id: Optional[str] = None,
        formality: Optional[Formality] = None,
    ) -> List[str]:
        if not texts:
            return []

        user_payload = {
            "target_language": target_lang,
            "source_language": source_lang,
            "segments": [
                {"id": str(index), "text": text} for index, text in enumerate(texts)
            ],
        }
        self._log_debug("provider.request.payload", user_payload)

        response = self._invoke_model(user_payload)
        items = self._extract_translations(response)
        self._log_debug("provider.response.items", items)

        mapping: Dict[str, str] = {}
        for item in items:
            if not isinstance(item, dict):
                raise TranslationProviderError(
                    "Translation provider response malformed: expected objects."
                )
            segment_id = item.get("id")
            translated = item.get("translated")
            if not isinstance(segment_id, str) or not isinstance(translated, str):
                raise TranslationProviderError(
                    "Translation provider response malformed: missing fields."
                )
            mapping[segment_id] = translated

        missing = [str(index) for index in range(len(texts)) if str(index) not in mapping]
        if missing:
            raise TranslationProviderError(
                f"Translation provider omitted {len(missing)} segment(s)."
            )
        return [mapping[str(index)] for index in range(len(texts))]

    def _invoke_model(self, user_payload: dict) -> Any:
        openai = self._openai
        try:
            return self._client.responses.create(
                model=self.model,
                input=[
                    {
                        "role": "system",
                        "content": [
                            {"type": "input_text", "text": self.SYSTEM_PROMPT},
                        ],
                    },
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "input_text",
                                "text": json.dumps(user_payload, ensure_ascii=False),
                            }
                        ],
                    },
                ],
            )
        except openai.AuthenticationError as exc:
            raise AuthenticationError(f"OpenAI rejected the API key: {exc}") from exc
        except openai.RateLimitError as exc:
            if getattr(exc, "code", None) == "insufficient_quota":
                raise QuotaExceededError(f"OpenAI quota exceeded: {exc}") from exc
            raise RateLimitedError(f"OpenAI rate limit reached: {exc}") from exc
        except (openai.APIConnectionError, openai.InternalServerError) as exc:
            raise ServiceUnavailableError(
                f"Translation service temporarily unavailable: {exc}"
            ) from exc
        except openai.APIError as exc:
            raise TranslationProviderError(f"OpenAI request failed: {exc}") from exc

    def _extract_translations(self, response: Any) -> List[Any]:
        """Extract the structured translation list from a Responses API result."""

        output_text = getattr(response, "output_text", None)
        if not output_text:
            raise TranslationProviderError(
                "Translation provider response empty or unrecognised."
            )
        self._log_debug("provider.response.raw", output_text)
        payload_text = _strip_code_fence(str(output_text))
        try:
            payload = json.loads(payload_text)
        except json.JSONDecodeError as exc:
            raise TranslationProviderError(
                f"Translation provider returned invalid JSON: {exc}"
            ) from exc

        if isinstance(payload, dict):
            translations = payload.get("translations")
            if isinstance(translations, list):
                return translations
        if isinstance(payload, list):
            return payload
        raise TranslationProviderError(
            "Translation provider response malformed: could not find translations list."
        )


def _strip_code_fence(text: str) -> str:
    """Remove leading/trailing markdown code fences if present."""

    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    first_newline = stripped.find("\n")
    if first_newline == -1:
        return stripped
    body = stripped[first_newline + 1 :]
    closing_index = body.rfind("```")
    if closing_index != -1:
        body = body[:closing_index]
    return body.strip()


def is_free_account_key(auth_key: str) -> bool:
    """DeepL free-tier keys end in ``:fx`` and use a separate endpoint."""

    return auth_key.strip().endswith(":fx")


def build_provider(
    name: Optional[str],
    *,
    settings: Any = None,
    debug: bool = False,
) -> TranslationProvider:
    """Factory to create providers by name, reading credentials from settings."""

    normalized = (name or "deepl").strip().lower()
    if normalized in {"deepl", "default"}:
        return DeepLTranslationProvider(
            getattr(settings, "DEEPL_API_KEY", None),
            server_url=getattr(settings, "DEEPL_SERVER_URL", None),
            debug=debug,
        )
    if normalized in {"openai", "gpt"}:
        return OpenAITranslationProvider(
            getattr(settings, "OPENAI_API_KEY", None),
            model=getattr(settings, "OPENAI_MODEL", None),
            debug=debug,
        )
    if normalized in {"echo", "noop", "mock"}:
        return EchoTranslationProvider(debug=debug)
    raise ConfigurationError(f"Unknown translation provider '{name}'.")
