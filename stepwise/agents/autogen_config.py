from __future__ import annotations

from typing import Any

from autogen import LLMConfig

from stepwise.config import Settings


def model_for(settings: Settings, *, vision: bool) -> str:
    """Image prompts go to the vision model when one is configured."""

    if vision and settings.vision_model:
        return settings.vision_model
    return settings.model


def _api_key(settings: Settings) -> str:
    if settings.openai_api_key:
        return settings.openai_api_key
    # OpenAI-compatible local servers (e.g. Ollama) ignore the key, but the client insists on one.
    if settings.openai_base_url:
        return "ollama"
    raise RuntimeError(
        "Set OPENAI_API_KEY for hosted OpenAI, or set OPENAI_BASE_URL for a local OpenAI-compatible server"
    )


def config_entry(settings: Settings, *, vision: bool = False) -> dict[str, Any]:
    """One OAI_CONFIG_LIST-style entry for the chosen model."""

    entry: dict[str, Any] = {"model": model_for(settings, vision=vision), "api_key": _api_key(settings)}
    if settings.openai_base_url:
        entry["base_url"] = settings.openai_base_url
    return entry


def llm_config_for(settings: Settings, *, vision: bool = False) -> LLMConfig:
    return LLMConfig(config_list=[config_entry(settings, vision=vision)])
