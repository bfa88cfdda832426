"""Prepper-backed configuration loader for mdparallel."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

from dotenv import dotenv_values
from prepper import (
    ConfigNotFound,
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import ConfigurationError

APP_NAME = "mdparallel"

# Structured settings that only make sense in YAML files.
FILE_ONLY_FIELDS = frozenset({"GLOSSARIES", "IGNORE_TERMS"})


class MdParallelConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    TRANSLATION_PROVIDER: Literal["deepl", "openai", "echo"] = Field(
        default="deepl",
        description="Translation service selection.",
    )
    DEEPL_API_KEY: str | None = Field(default=None, secret=True)
    DEEPL_SERVER_URL: str | None = Field(default=None)
    OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    OPENAI_MODEL: str | None = Field(default=None)
    GLOSSARY_NAME: str = Field(
        default="internet_computer",
        description="Logical glossary name used for translation runs.",
    )
    GLOSSARIES: dict[str, dict[str, str]] | None = Field(
        default=None,
        description="Glossary entries by logical name, used by `glossary register`.",
    )
    IGNORE_TERMS: dict[str, list[str]] | None = Field(
        default=None,
        description="Words left untranslated, by logical glossary name.",
    )
    BATCH_CHARACTERS: int = Field(default=30000)
    BATCH_TEXTS: int = Field(default=50)
    MAX_RETRIES: int = Field(default=5)
    RETRY_BASE_DELAY: float = Field(default=1.0)
    RETRY_MAX_DELAY: float = Field(default=30.0)
    MAX_DEPTH: int = Field(default=0)
    CONCURRENCY: int = Field(default=1)
    MDPARALLEL_PROVIDER_DEBUG: bool = Field(default=False)

    @model_validator(mode="before")
    def _normalise_provider(data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("TRANSLATION_PROVIDER")
            if isinstance(raw_value, str):
                normalized = raw_value.strip().lower().replace("-", "_")
                synonyms = {
                    "deepl_api": "deepl",
                    "gpt": "openai",
                    "noop": "echo",
                    "mock": "echo",
                }
                data["TRANSLATION_PROVIDER"] = synonyms.get(normalized, normalized)
        return data


@lru_cache(maxsize=4)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Load configuration layers once and cache the immutable instance."""

    base_dir = app_dir or Path.cwd()
    try:
        provenance = ProvenanceRecorder()
        combined = _load_discovered_yaml(app_dir=base_dir, provenance=provenance)
        _merge_env_sources(
            combined,
            provenance=provenance,
            app_dir=base_dir,
            schema=MdParallelConfig,
        )

        if not combined:
            raise ConfigNotFound("No configuration sources were found.")

        model = MdParallelConfig.validate(combined, provenance=provenance)
        _validate_settings(model)

        return ConfigInstance(
            model=model,
            provenance=provenance,
            env_prefix=None,
            schema_cls=MdParallelConfig,
        )
    except ConfigNotFound as exc:
        raise ConfigurationError(
            "No configuration sources were found. Provide settings via a home YAML "
            "file, a local mdparallel.yaml, a .env file, or environment variables."
        ) from exc
    except IoError as exc:
        raise ConfigurationError(f"Configuration files could not be read: {exc}") from exc
    except SchemaError as exc:
        raise ConfigurationError(f"Configuration schema error: {exc}") from exc
    except ValidationError as exc:
        raise ConfigurationError(_format_validation_errors(exc.to_dict())) from exc


def _load_discovered_yaml(
    *,
    app_dir: Path,
    provenance: ProvenanceRecorder,
) -> dict[str, Any]:
    """Load YAML configuration files using Prepper's discovery rules."""

    result: dict[str, Any] = {}
    discovered = discover_file_paths(
        APP_NAME,
        "yaml",
        app_dir=app_dir,
        extra_paths=None,
    )
    for path, label in discovered:
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        source = _path_to_source(label, "yaml", path)
        merge_layer(result, parsed, provenance=provenance, source=source, layer="file")
    return result


def _merge_env_sources(
    target: dict[str, Any],
    *,
    provenance: ProvenanceRecorder,
    app_dir: Path,
    schema: type[SchemaModel],
) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(schema.__field_infos__.keys()) - FILE_ONLY_FIELDS

    def merge_values(values: Mapping[str, str], *, source_prefix: str) -> None:
        for key, value in sorted(values.items()):
            if key not in allowed:
                continue
            merge_layer(
                target,
                {key: value},
                provenance=provenance,
                source=f"env:{source_prefix}:{key}",
                layer="env",
            )

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        dotenv_content = dotenv_values(dotenv_path)
        merge_values(
            {k: v for k, v in dotenv_content.items() if v is not None},
            source_prefix=".env",
        )

    merge_values(
        {k: v for k, v in os.environ.items() if isinstance(v, str)},
        source_prefix="process",
    )


def _validate_settings(settings: MdParallelConfig) -> None:
    errors: list[str] = []

    for name in ("BATCH_CHARACTERS", "BATCH_TEXTS", "CONCURRENCY"):
        if getattr(settings, name) < 1:
            errors.append(f"{name} must be at least 1.")
    for name in ("MAX_RETRIES", "MAX_DEPTH"):
        if getattr(settings, name) < 0:
            errors.append(f"{name} must not be negative.")
    if settings.RETRY_BASE_DELAY < 0 or settings.RETRY_MAX_DELAY < settings.RETRY_BASE_DELAY:
        errors.append("RETRY_MAX_DELAY must be at least RETRY_BASE_DELAY, both non-negative.")

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise ConfigurationError("Configuration validation errors detected:\n" + bullet_list)


def _format_validation_errors(entries: Sequence[dict[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        source = entry.get("source")
        origin = f" (source: {source})" if source else ""
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}{origin}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> MdParallelConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()
