"""LLM provider loader.

Centralises construction of chat models so insights can swap providers via
env vars. Groq is the default; NVIDIA and OpenAI are used when their
LangChain integration packages are installed.
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from langchain_core.language_models.chat_models import BaseChatModel

load_dotenv()

DEFAULT_NVIDIA_BASE = "https://integrate.api.nvidia.com/v1"

DEFAULT_MODELS = {
    "groq": "llama-3.1-8b-instant",
    "nvidia": "meta/llama-3.1-8b-instruct",
    "openai": "gpt-4o-mini",
}

_PROVIDER_ALIASES = {
    "groq": "groq",
    "nvidia": "nvidia",
    "nv": "nvidia",
    "nvcf": "nvidia",
    "openai": "openai",
    "oa": "openai",
}


class LLMConfigError(RuntimeError):
    """Raised when the requested LLM provider cannot be initialised."""


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip() or default


def get_provider_name() -> str:
    raw = (_env("LLM_PROVIDER", "groq") or "groq").lower()
    provider = _PROVIDER_ALIASES.get(raw)
    if provider is None:
        raise LLMConfigError(
            f"Unsupported LLM_PROVIDER '{raw}'. Expected 'groq', 'nvidia' or 'openai'."
        )
    return provider


def _resolve_model(provider: str) -> str:
    default = DEFAULT_MODELS[provider]
    return _env("LLM_MODEL", default) or default


def _require_key(provider: str, *names: str) -> str:
    api_key = _env("LLM_API_KEY")
    for name in names:
        api_key = api_key or _env(name)
    if not api_key:
        raise LLMConfigError(
            f"{provider} provider selected but no API key found. "
            f"Set LLM_API_KEY or {' / '.join(names)}."
        )
    return api_key


def create_chat_model(temperature: float = 0.2, max_tokens: Optional[int] = None) -> BaseChatModel:
    """Return a LangChain chat model for the configured provider."""

    provider = get_provider_name()
    model = _resolve_model(provider)

    if provider == "groq":
        try:
            from langchain_groq import ChatGroq  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise LLMConfigError(
                "Groq provider selected but langchain-groq is not installed. "
                "Run `pip install langchain-groq` or switch LLM_PROVIDER."
            ) from exc

        api_key = _require_key("Groq", "GROQ_API_KEY")
        kwargs = {"model": model, "temperature": temperature, "groq_api_key": api_key}
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        return ChatGroq(**kwargs)

    if provider == "nvidia":
        try:
            from langchain_nvidia_ai_endpoints import ChatNVIDIA  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise LLMConfigError(
                "NVIDIA provider selected but langchain-nvidia-ai-endpoints is not installed."
            ) from exc

        api_key = _require_key("NVIDIA", "NVIDIA_API_KEY", "NVCF_API_KEY")
        base_url = _env("LLM_BASE_URL", DEFAULT_NVIDIA_BASE)
        kwargs = {
            "model": model,
            "temperature": temperature,
            "base_url": base_url.rstrip("/"),
            "api_key": api_key,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        return ChatNVIDIA(**kwargs)

    try:
        from langchain_openai import ChatOpenAI  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise LLMConfigError(
            "OpenAI provider selected but langchain-openai is not installed. "
            "Run `pip install langchain-openai` or switch LLM_PROVIDER back to 'groq'."
        ) from exc

    api_key = _require_key("OpenAI", "OPENAI_API_KEY")
    base_url = _env("LLM_BASE_URL") or _env("OPENAI_BASE_URL")
    kwargs = {"model": model, "temperature": temperature, "api_key": api_key}
    if base_url:
        kwargs["base_url"] = base_url.rstrip("/")
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    return ChatOpenAI(**kwargs)


def get_chat_model(temperature: float = 0.2, max_tokens: Optional[int] = None) -> BaseChatModel:
    """Public entry point used by the insights skill."""

    return create_chat_model(temperature=temperature, max_tokens=max_tokens)
