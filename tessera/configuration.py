"""Prepper-backed configuration loader for Tessera."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping, Optional, Sequence

from dotenv import dotenv_values
from prepper import (
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

from .errors import TranslationProviderConfigurationError
from .grouping import DEFAULT_CHUNK_SIZE
from .retry import DEFAULT_CONTEXT_DISTANCE, DEFAULT_MAX_RETRIES
from .similarity import DEFAULT_SIMILARITY_THRESHOLD

APP_NAME = "Tessera"

KNOWN_PROVIDERS = ("openai", "azure_openai", "echo")


class TesseraConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    LLM_PROVIDER: Literal["azure_openai", "openai", "echo"] = Field(
        default="openai",
        description="Large language model provider selection.",
    )
    AZURE_OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    AZURE_OPENAI_ENDPOINT: str | None = Field(default=None)
    AZURE_OPENAI_API_VERSION: str | None = Field(default=None)
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = Field(default=None)
    OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    TESSERA_MODEL: str | None = Field(default=None)
    TESSERA_SOURCE_LANGUAGE: str | None = Field(default=None)
    TESSERA_TARGET_LANGUAGE: str | None = Field(default=None)
    TESSERA_CHUNK_SIZE: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        description="Character budget per batch request.",
    )
    TESSERA_CONCURRENCY: int = Field(default=4)
    TESSERA_MAX_RETRIES: int = Field(default=DEFAULT_MAX_RETRIES)
    TESSERA_SIMILARITY_CHECK: bool = Field(default=True)
    TESSERA_SIMILARITY_THRESHOLD: float = Field(default=DEFAULT_SIMILARITY_THRESHOLD)
    TESSERA_REQUEST_TIMEOUT: float = Field(
        default=120.0,
        description="Seconds before a provider call is abandoned.",
    )
    TESSERA_CACHE_DIR: str | None = Field(default=None)
    TESSERA_PROVIDER_DEBUG: bool = Field(default=False)

    @model_validator(mode="before")
    def _normalise_provider(data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("LLM_PROVIDER")
            if isinstance(raw_value, str):
                data["LLM_PROVIDER"] = normalise_provider_name(raw_value)
        return data


def normalise_provider_name(raw_value: str) -> str:
    normalized = raw_value.strip().lower().replace("-", "_")
    synonyms = {
        "azure_open_ai": "azure_openai",
        "azureopenai": "azure_openai",
    }
    normalized = synonyms.get(normalized, normalized)
    if normalized not in KNOWN_PROVIDERS:
        normalized = "openai"
    return normalized


@dataclass
class TranslatorSettings:
    """Engine settings, built from :class:`TesseraConfig` or by hand."""

    target_language: str
    source_language: Optional[str] = None
    model: Optional[str] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    concurrency: int = 4
    max_retries: int = DEFAULT_MAX_RETRIES
    context_distance: int = DEFAULT_CONTEXT_DISTANCE
    similarity_check: bool = True
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD

    @classmethod
    def from_config(cls, config: Any, **overrides: Any) -> "TranslatorSettings":
        """Build settings from a config model; ``None`` overrides are ignored."""

        values = {
            "target_language": config.TESSERA_TARGET_LANGUAGE,
            "source_language": config.TESSERA_SOURCE_LANGUAGE,
            "model": config.TESSERA_MODEL,
            "chunk_size": config.TESSERA_CHUNK_SIZE,
            "concurrency": config.TESSERA_CONCURRENCY,
            "max_retries": config.TESSERA_MAX_RETRIES,
            "similarity_check": config.TESSERA_SIMILARITY_CHECK,
            "similarity_threshold": config.TESSERA_SIMILARITY_THRESHOLD,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        if not values.get("target_language"):
            raise TranslationProviderConfigurationError(
                "A target language is required. Pass -t/--target-language or set "
                "TESSERA_TARGET_LANGUAGE."
            )
        return cls(**values)


@lru_cache(maxsize=1)
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
            schema=TesseraConfig,
        )

        model = TesseraConfig.validate(combined, provenance=provenance)

        instance = ConfigInstance(
            model=model,
            provenance=provenance,
            env_prefix=None,
            schema_cls=TesseraConfig,
        )
        return instance
    except IoError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration schema error: {exc}"
        ) from exc
    except ValidationError as exc:
        issues = _format_validation_errors(exc.to_dict())
        raise TranslationProviderConfigurationError(issues) from exc


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

    allowed = set(schema.__field_infos__.keys())

    def merge_values(values: Mapping[str, str], *, source_prefix: str) -> None:
        for key, value in sorted(values.items()):
            if value is None:
                continue
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


def validate_provider_settings(settings: Any, provider: str | None = None) -> None:
    """Check that credentials exist for the provider about to be used."""

    provider = normalise_provider_name(provider or settings.LLM_PROVIDER)
    errors: list[str] = []

    if provider == "openai":
        if not settings.OPENAI_API_KEY:
            errors.append(
                "OPENAI_API_KEY is required when LLM_PROVIDER is 'openai'."
            )
    elif provider == "azure_openai":
        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": settings.AZURE_OPENAI_API_KEY,
                "AZURE_OPENAI_ENDPOINT": settings.AZURE_OPENAI_ENDPOINT,
                "AZURE_OPENAI_API_VERSION": settings.AZURE_OPENAI_API_VERSION,
                "AZURE_OPENAI_DEPLOYMENT_NAME": settings.AZURE_OPENAI_DEPLOYMENT_NAME,
            }.items()
            if not value
        ]
        if missing:
            errors.append(
                "The following Azure OpenAI settings must be provided when "
                f"LLM_PROVIDER is 'azure_openai': {', '.join(missing)}."
            )

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise TranslationProviderConfigurationError(
            "Configuration validation errors detected:\n" + bullet_list
        )


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


def get_settings(app_dir: Path | None = None) -> TesseraConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()
