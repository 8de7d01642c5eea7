"""OpenAI-compatible provider presets.

Each preset names the chat completions base URL, the settings field holding
the API key, and the primary/fallback model pair. ``LLM_BASE_URL``,
``TEXT_MODEL`` and ``FALLBACK_MODEL`` override the preset, which lets any
OpenAI-compatible endpoint be used.

Usage:
    from services.codegen.providers import resolve_provider

    provider = resolve_provider(get_settings())
"""

from __future__ import annotations

from dataclasses import dataclass

from core.config import Settings


@dataclass(frozen=True, slots=True)
class ProviderPreset:
    base_url: str
    api_key_setting: str
    text_model: str
    fallback_model: str | None = None


PROVIDER_PRESETS: dict[str, ProviderPreset] = {
    "openai": ProviderPreset(
        base_url="https://api.openai.com/v1",
        api_key_setting="OPENAI_API_KEY",
        text_model="gpt-4o-mini",
        fallback_model="gpt-3.5-turbo",
    ),
    "mistral": ProviderPreset(
        base_url="https://api.mistral.ai/v1",
        api_key_setting="MISTRAL_API_KEY",
        text_model="mistral-large-latest",
        fallback_model="mistral-small",
    ),
    "fireworks": ProviderPreset(
        base_url="https://api.fireworks.ai/inference/v1",
        api_key_setting="FIREWORKS_API_KEY",
        text_model="accounts/fireworks/models/llama-v3p1-70b-instruct",
        fallback_model="accounts/fireworks/models/llama-v3p1-8b-instruct",
    ),
    "gemini": ProviderPreset(
        base_url="https://generativelanguage.googleapis.com/v1beta/openai",
        api_key_setting="GEMINI_API_KEY",
        text_model="gemini-1.5-flash",
        fallback_model="gemini-1.5-flash-8b",
    ),
}


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Resolved connection details for the configured provider."""

    name: str
    base_url: str
    api_key: str | None
    text_model: str
    fallback_model: str | None

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"


def resolve_provider(settings: Settings) -> ProviderConfig:
    """Build the provider config from settings.

    Raises:
        ValueError: ``LLM_PROVIDER`` names no known preset
    """
    preset = PROVIDER_PRESETS.get(settings.LLM_PROVIDER)
    if preset is None:
        known = ", ".join(sorted(PROVIDER_PRESETS))
        raise ValueError(
            f"Unknown LLM_PROVIDER {settings.LLM_PROVIDER!r}; expected one of {known}"
        )

    fallback = settings.FALLBACK_MODEL or preset.fallback_model
    text_model = settings.TEXT_MODEL or preset.text_model
    return ProviderConfig(
        name=settings.LLM_PROVIDER,
        base_url=settings.LLM_BASE_URL or preset.base_url,
        api_key=getattr(settings, preset.api_key_setting) or None,
        text_model=text_model,
        # A fallback equal to the primary model counts as no fallback
        fallback_model=fallback if fallback != text_model else None,
    )
