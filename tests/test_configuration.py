"""Tests for configuration helpers."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from tessera.configuration import (
    TranslatorSettings,
    _format_validation_errors,
    normalise_provider_name,
    validate_provider_settings,
)
from tessera.errors import TranslationProviderConfigurationError


def _config(**overrides: Any) -> SimpleNamespace:
    values: dict[str, Any] = {
        "LLM_PROVIDER": "openai",
        "OPENAI_API_KEY": None,
        "AZURE_OPENAI_API_KEY": None,
        "AZURE_OPENAI_ENDPOINT": None,
        "AZURE_OPENAI_API_VERSION": None,
        "AZURE_OPENAI_DEPLOYMENT_NAME": None,
        "TESSERA_MODEL": None,
        "TESSERA_SOURCE_LANGUAGE": None,
        "TESSERA_TARGET_LANGUAGE": "German",
        "TESSERA_CHUNK_SIZE": 1000,
        "TESSERA_CONCURRENCY": 4,
        "TESSERA_MAX_RETRIES": 3,
        "TESSERA_SIMILARITY_CHECK": True,
        "TESSERA_SIMILARITY_THRESHOLD": 0.95,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestProviderName:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("OpenAI", "openai"),
            ("azure-openai", "azure_openai"),
            ("Azure_Open_AI", "azure_openai"),
            ("echo", "echo"),
            ("something", "openai"),
        ],
    )
    def test_normalisation(self, raw: str, expected: str) -> None:
        assert normalise_provider_name(raw) == expected


class TestValidateProviderSettings:
    def test_openai_requires_key(self) -> None:
        with pytest.raises(TranslationProviderConfigurationError, match="OPENAI_API_KEY"):
            validate_provider_settings(_config())

    def test_openai_with_key(self) -> None:
        validate_provider_settings(_config(OPENAI_API_KEY="sk-test"))

    def test_azure_lists_missing_settings(self) -> None:
        config = _config(LLM_PROVIDER="azure_openai", AZURE_OPENAI_API_KEY="key")

        with pytest.raises(TranslationProviderConfigurationError) as excinfo:
            validate_provider_settings(config)

        message = str(excinfo.value)
        assert "AZURE_OPENAI_ENDPOINT" in message
        assert "AZURE_OPENAI_API_KEY" not in message

    def test_echo_needs_nothing(self) -> None:
        validate_provider_settings(_config(), "echo")


class TestFormatValidationErrors:
    def test_entries_are_listed(self) -> None:
        text = _format_validation_errors(
            [
                {"path": ["TESSERA_CHUNK_SIZE"], "message": "not an int", "source": "env:process"},
                {"path": [], "msg": "bad"},
            ]
        )

        assert text.startswith("Configuration validation errors detected:")
        assert "- TESSERA_CHUNK_SIZE: not an int (source: env:process)" in text
        assert "- bad" in text


class TestTranslatorSettings:
    def test_from_config_with_overrides(self) -> None:
        settings = TranslatorSettings.from_config(
            _config(TESSERA_CHUNK_SIZE=500),
            target_language="French",
            concurrency=None,
            similarity_check=False,
        )

        assert settings.target_language == "French"
        assert settings.chunk_size == 500
        assert settings.concurrency == 4
        assert settings.similarity_check is False
        assert settings.context_distance == 2

    def test_target_language_required(self) -> None:
        with pytest.raises(TranslationProviderConfigurationError, match="target language"):
            TranslatorSettings.from_config(_config(TESSERA_TARGET_LANGUAGE=None))
