"""Chat-completion provider endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ai_futures.config import AIProvider, Settings


class AuthStrategy(str, Enum):
    BEARER = "bearer"
    NONE = "none"


@dataclass(slots=True, frozen=True)
class ProviderConfig:
    """Resolved endpoint for one provider."""

    provider: AIProvider
    base_url: str
    model_name: str
    auth_strategy: AuthStrategy = AuthStrategy.BEARER

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"


_DEFAULTS: dict[AIProvider, tuple[str, str]] = {
    AIProvider.DEEPSEEK: ("https://api.deepseek.com/v1", "deepseek-chat"),
    AIProvider.QWEN: ("https://dashscope.aliyuncs.com/compatible-mode/v1", "qwen-plus"),
    AIProvider.OPENROUTER: ("https://openrouter.ai/api/v1", "deepseek/deepseek-chat"),
}


class ProviderConfigError(ValueError):
    """Raised when a provider cannot be resolved from settings."""


def resolve_provider(settings: Settings) -> ProviderConfig:
    """Build the endpoint for ``settings.ai_provider``.

    ``ai_base_url`` and ``ai_model`` override the provider defaults. The
    custom provider has no defaults and must set both; it sends no
    ``Authorization`` header when no key is configured.
    """
    provider = settings.ai_provider
    if provider == AIProvider.CUSTOM:
        if not settings.ai_base_url or not settings.ai_model:
            raise ProviderConfigError("custom provider requires AI_BASE_URL and AI_MODEL")
        auth = AuthStrategy.BEARER if settings.ai_api_key else AuthStrategy.NONE
        return ProviderConfig(provider, settings.ai_base_url, settings.ai_model, auth)

    default_url, default_model = _DEFAULTS[provider]
    return ProviderConfig(
        provider=provider,
        base_url=settings.ai_base_url or default_url,
        model_name=settings.ai_model or default_model,
    )
