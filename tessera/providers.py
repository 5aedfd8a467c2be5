"""Translation provider abstractions."""

from __future__ import annotations

import json
import os
import sys
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from .errors import (
    ErrorCategory,
    TranslationCancelled,
    TranslationProviderConfigurationError,
    TranslationProviderError,
)
from .protection import preserve_instructions
from .protocol import marker_instructions


class TranslationProvider(ABC):
    """Abstract adapter for translation providers.

    ``translate`` receives a whole marker-encoded batch and must return the
    translated batch as text, markers included.
    """

    name: str = "provider"
    model: Optional[str] = None

    @abstractmethod
    def translate(
        self,
        text: str,
        *,
        source_language: str | None,
        target_language: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Translate ``text`` and return the provider's reply."""


def _check_cancelled(metadata: Optional[Dict[str, Any]]) -> None:
    event = (metadata or {}).get("cancel_event")
    if isinstance(event, threading.Event) and event.is_set():
        raise TranslationCancelled("translation cancelled")


class EchoTranslationProvider(TranslationProvider):
    """A provider that returns the original text (useful for testing)."""

    name = "echo"

    def translate(
        self,
        text: str,
        *,
        source_language: str | None,
        target_language: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        _check_cancelled(metadata)
        return text


def build_system_prompt(source_language: str | None, target_language: str) -> str:
    source = source_language or "the source language"
    return "\n\n".join(
        [
            "You are a professional translator. "
            f"Translate the text from {source} into {target_language}. "
            "Preserve formatting, numbers, and markup. "
            "Do not add commentary. Do not wrap the output in markdown code fences.",
            marker_instructions(),
            preserve_instructions(),
        ]
    )


def _setting(settings: Any, name: str) -> Optional[str]:
    value = getattr(settings, name, None) if settings is not None else None
    if value:
        return str(value)
    return os.getenv(name)


def _normalise_kind(value: str | None) -> str:
    normalized = (value or "openai").strip().lower().replace("-", "_")
    if normalized in {"azure_open_ai", "azureopenai"}:
        normalized = "azure_openai"
    if normalized not in {"openai", "azure_openai"}:
        normalized = "openai"
    return normalized


def _provider_error_from_sdk(exc: Exception) -> TranslationProviderError:
    """Map an ``openai`` SDK exception onto a categorised provider error."""

    import openai  # type: ignore

    message = f"Translation service call failed: {exc}"
    if isinstance(exc, openai.APITimeoutError):
        return TranslationProviderError(message, category=ErrorCategory.TIMEOUT)
    if isinstance(exc, openai.RateLimitError):
        if "insufficient_quota" in str(exc):
            return TranslationProviderError(
                message, category=ErrorCategory.QUOTA, retryable=False
            )
        return TranslationProviderError(message, category=ErrorCategory.RATE_LIMIT)
    if isinstance(exc, openai.APIConnectionError):
        return TranslationProviderError(message, category=ErrorCategory.NETWORK)
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return TranslationProviderError(
            message, category=ErrorCategory.AUTH, retryable=False
        )
    if isinstance(exc, openai.BadRequestError):
        return TranslationProviderError(
            message, category=ErrorCategory.VALIDATION, retryable=False
        )
    return TranslationProviderError(message)


def strip_code_fence(text: str) -> str:
    """Remove leading/trailing markdown code fences if present."""

    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped

    # Drop opening fence and optional language hint.
    first_newline = stripped.find("\n")
    if first_newline == -1:
        return stripped
    body = stripped[first_newline + 1 :]
    closing_index = body.rfind("```")
    if closing_index != -1:
        body = body[:closing_index]
    return body.strip()


class OpenAITranslationProvider(TranslationProvider):
    """Translation provider that uses the OpenAI Responses API."""

    DEFAULT_MODEL = "gpt-5-mini"

    def __init__(
        self,
        *,
        debug: bool = False,
        model: str | None = None,
        timeout: float | None = None,
        kind: str | None = None,
        settings: Any = None,
    ) -> None:
        self.debug = debug
        self.timeout = timeout
        self._settings = settings
        self.provider_kind = _normalise_kind(kind or _setting(settings, "LLM_PROVIDER"))
        self.name = self.provider_kind
        self._client, default_model = self._build_client()
        self.model = model or default_model

    def _build_client(self) -> tuple[Any, str]:
        if self.provider_kind == "azure_openai":
            return self._build_azure_client()

        return self._build_openai_client()

    def _client_options(self) -> Dict[str, Any]:
        return {"timeout": self.timeout} if self.timeout else {}

    def _build_openai_client(self) -> tuple[Any, str]:
        api_key = _setting(self._settings, "OPENAI_API_KEY")
        if not api_key:
            raise TranslationProviderConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        try:
            from openai import OpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        return OpenAI(api_key=api_key, **self._client_options()), self.DEFAULT_MODEL

    def _build_azure_client(self) -> tuple[Any, str]:
        values = {
            name: _setting(self._settings, name)
            for name in (
                "AZURE_OPENAI_API_KEY",
                "AZURE_OPENAI_ENDPOINT",
                "AZURE_OPENAI_API_VERSION",
                "AZURE_OPENAI_DEPLOYMENT_NAME",
            )
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise TranslationProviderConfigurationError(
                "Azure OpenAI configuration incomplete. Please set: "
                + ", ".join(missing)
                + "."
            )

        try:
            from openai import AzureOpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        client = AzureOpenAI(
            api_key=values["AZURE_OPENAI_API_KEY"],
            api_version=values["AZURE_OPENAI_API_VERSION"],
            azure_endpoint=values["AZURE_OPENAI_ENDPOINT"],
            **self._client_options(),
        )
        return client, values["AZURE_OPENAI_DEPLOYMENT_NAME"]  # type: ignore[return-value]

    def translate(
        self,
        text: str,
        *,
        source_language: str | None,
        target_language: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        if not text.strip():
            return text

        _check_cancelled(metadata)
        system_prompt = build_system_prompt(source_language, target_language)
        self._log_debug("provider.request.system_prompt", system_prompt)
        self._log_debug(
            "provider.request.metadata",
            {key: value for key, value in (metadata or {}).items() if key != "cancel_event"},
        )
        self._log_debug("provider.request.text", text)

        reply = self._invoke_model(
            system_prompt=system_prompt,
            text=text,
            model=self.model or self.DEFAULT_MODEL,
        )
        _check_cancelled(metadata)

        reply = strip_code_fence(reply)
        self._log_debug("provider.response.text", reply)
        if not reply:
            raise TranslationProviderError(
                "Translation provider response empty or unrecognised.",
                category=ErrorCategory.INVALID_RESPONSE,
            )
        return reply

    def _invoke_model(self, *, system_prompt: str, text: str, model: str) -> str:
        """Call the OpenAI Responses API and return the reply text."""

        try:
            response = self._client.responses.create(
                model=model,
                input=[
                    {
                        "role": "system",
                        "content": [
                            {"type": "input_text", "text": system_prompt},
                        ],
                    },
                    {
                        "role": "user",
                        "content": [{"type": "input_text", "text": text}],
                    },
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise _provider_error_from_sdk(exc) from exc
        self._log_debug("provider.response.raw", self._safe_dump_response(response))
        return self._extract_text(response)

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not getattr(self, "debug", False):
            return
        try:
            if isinstance(payload, (dict, list)):
                message = json.dumps(payload, ensure_ascii=False, indent=2)
            else:
                message = str(payload)
        except (TypeError, ValueError):
            message = repr(payload)
        print(f"[tessera][provider-debug] {label}:\n{message}", file=sys.stderr)

    def _safe_dump_response(self, response: Any) -> Any:
        """Best-effort conversion of SDK response objects into JSON-friendly data."""

        dump = getattr(response, "model_dump", None)
        if callable(dump):
            try:
                return dump()
            except (TypeError, ValueError):
                pass
        return str(response)

    def _extract_text(self, response: Any) -> str:
        """Collect the reply text from a Responses API result."""

        output_text = getattr(response, "output_text", None)
        if output_text:
            return str(output_text)

        parts: list[str] = []
        for item in getattr(response, "output", None) or []:
            for part in getattr(item, "content", None) or []:
                text_value = getattr(part, "text", None)
                if hasattr(text_value, "value"):
                    text_value = text_value.value
                if text_value:
                    parts.append(str(text_value))
        if parts:
            return "\n".join(parts)

        raise TranslationProviderError(
            "Translation provider response empty or unrecognised.",
            category=ErrorCategory.INVALID_RESPONSE,
        )


class LegacyOpenAITranslationProvider(OpenAITranslationProvider):
    """Translation provider that uses the Chat Completions API for compatibility."""

    def _invoke_model(self, *, system_prompt: str, text: str, model: str) -> str:
        """Call the Chat Completions API and return the reply text."""

        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": text},
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise _provider_error_from_sdk(exc) from exc
        self._log_debug("provider.response.raw", self._safe_dump_response(response))

        choices = getattr(response, "choices", None) or []
        for choice in choices:
            message = getattr(choice, "message", None)
            content = getattr(message, "content", None) if message is not None else None
            if isinstance(content, list):
                parts = [
                    str(part.get("text") if isinstance(part, dict) else getattr(part, "text", ""))
                    for part in content
                ]
                content = "\n".join(part for part in parts if part)
            if content:
                return str(content)

        raise TranslationProviderError(
            "Translation provider response empty or unrecognised.",
            category=ErrorCategory.INVALID_RESPONSE,
        )


def build_provider(
    name: str | None,
    *,
    debug: bool = False,
    model: str | None = None,
    timeout: float | None = None,
    settings: Any = None,
) -> TranslationProvider:
    """Factory to create providers by name.

    Without a name the ``LLM_PROVIDER`` setting decides.
    """

    normalized = (name or _setting(settings, "LLM_PROVIDER") or "openai").strip().lower()
    if normalized in {"echo", "noop", "mock"}:
        return EchoTranslationProvider()
    if normalized in {"openai", "gpt", "default"}:
        return OpenAITranslationProvider(
            debug=debug, model=model, timeout=timeout, settings=settings
        )
    if normalized in {"azure_openai", "azure-openai", "azure"}:
        return OpenAITranslationProvider(
            debug=debug, model=model, timeout=timeout, kind="azure_openai", settings=settings
        )
    if normalized in {"legacy-openai", "legacy_openai", "legacy", "openai-legacy"}:
        return LegacyOpenAITranslationProvider(
            debug=debug, model=model, timeout=timeout, settings=settings
        )
    raise TranslationProviderConfigurationError(
        f"Unknown translation provider '{name}'."
    )
