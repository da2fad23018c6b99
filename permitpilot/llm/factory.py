# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Factory for creating LLM provider instances."""

import os
from typing import Any, Dict, Mapping, Optional

from permitpilot.exceptions import ConfigurationError
from permitpilot.llm.anthropic_provider import AnthropicProvider
from permitpilot.llm.base import BaseLLMProvider
from permitpilot.llm.config import DEFAULT_CONFIGS, LLMProviderConfig, LLMProviderType
from permitpilot.llm.openai_provider import AzureOpenAIProvider, OpenAIProvider
from permitpilot.utils.logger import logger


class LLMProviderFactory:
    """Factory for creating LLM provider instances."""

    _providers = {
        "openai": OpenAIProvider,
        "azure": AzureOpenAIProvider,
        "azure_openai": AzureOpenAIProvider,  # Alias for azure
        "anthropic": AnthropicProvider,
        "claude": AnthropicProvider,  # Alias for anthropic
    }

    @classmethod
    def create(
        cls,
        provider: str,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        vision_enabled: Optional[bool] = None,
        **kwargs: Any,
    ) -> BaseLLMProvider:
        """
        Create an LLM provider instance.

        Args:
            provider: Provider name (openai, azure, anthropic)
            model: Model or deployment name (provider default if omitted)
            api_key: API key for the provider
            vision_enabled: Override auto-detected vision capability
            **kwargs: Provider-specific options (azure_endpoint, api_version, base_url)

        Raises:
            ConfigurationError: If the provider is not supported
        """
        provider_lower = provider.lower()

        if provider_lower not in cls._providers:
            raise ConfigurationError(
                f"Unsupported LLM provider: {provider}. "
                f"Supported providers: {', '.join(cls._providers.keys())}"
            )

        provider_class = cls._providers[provider_lower]

        if not model:
            try:
                provider_type = LLMProviderType(provider_lower)
                model = DEFAULT_CONFIGS.get(provider_type, {}).get("model", "default")
            except ValueError:
                model = DEFAULT_CONFIGS[LLMProviderType.OPENAI]["model"]

        if vision_enabled is not None:
            kwargs["vision_enabled"] = vision_enabled

        return provider_class(model=model, api_key=api_key, **kwargs)

    @classmethod
    def create_from_config(cls, config: LLMProviderConfig) -> BaseLLMProvider:
        """Create a provider from a configuration object."""
        kwargs: Dict[str, Any] = dict(config.extra_options)
        if config.base_url:
            kwargs["base_url"] = config.base_url
        if config.azure_endpoint:
            kwargs["azure_endpoint"] = config.azure_endpoint
        if config.api_version:
            kwargs["api_version"] = config.api_version
        return cls.create(
            provider=config.provider_type.value,
            model=config.model,
            api_key=config.api_key,
            **kwargs,
        )

    @classmethod
    def register_provider(cls, name: str, provider_class: type) -> None:
        """
        Register a custom provider.

        Raises:
            ValueError: If provider_class does not inherit from BaseLLMProvider
        """
        if not issubclass(provider_class, BaseLLMProvider):
            raise ValueError(
                f"Provider class must inherit from BaseLLMProvider, got {provider_class}"
            )
        cls._providers[name.lower()] = provider_class

    @classmethod
    def list_providers(cls) -> list:
        return list(cls._providers.keys())


def create_provider_from_env(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BaseLLMProvider:
    """
    Create a vision provider from the standard provider environment variables.

    Without an explicit ``provider`` the first configured one wins, in order:
    OpenAI (``OPENAI_API_KEY``), Azure OpenAI (``AZURE_OPENAI_ENDPOINT`` and
    ``AZURE_OPENAI_API_KEY``), Anthropic (``ANTHROPIC_API_KEY``).

    Raises:
        ConfigurationError: If no provider is configured
    """
    env = os.environ if environ is None else environ
    chosen = (provider or "").lower()

    if not chosen:
        if env.get("OPENAI_API_KEY"):
            chosen = "openai"
        elif env.get("AZURE_OPENAI_ENDPOINT") and env.get("AZURE_OPENAI_API_KEY"):
            chosen = "azure"
        elif env.get("ANTHROPIC_API_KEY"):
            chosen = "anthropic"
        else:
            raise ConfigurationError(
                "No vision provider configured. Set OPENAI_API_KEY, "
                "AZURE_OPENAI_ENDPOINT + AZURE_OPENAI_API_KEY, or ANTHROPIC_API_KEY."
            )

    if chosen == "openai":
        return LLMProviderFactory.create(
            "openai",
            model=model or env.get("OPENAI_MODEL") or "gpt-4o",
            api_key=env.get("OPENAI_API_KEY"),
        )
    if chosen in ("azure", "azure_openai"):
        endpoint = env.get("AZURE_OPENAI_ENDPOINT")
        if not endpoint:
            raise ConfigurationError("AZURE_OPENAI_ENDPOINT is required for the azure provider")
        logger.info("Using Azure OpenAI for vision analysis")
        return LLMProviderFactory.create(
            "azure",
            model=model or env.get("AZURE_OPENAI_DEPLOYMENT") or "gpt-4o",
            api_key=env.get("AZURE_OPENAI_API_KEY"),
            azure_endpoint=endpoint,
            api_version=env.get("AZURE_OPENAI_API_VERSION") or "2024-08-01-preview",
        )
    return LLMProviderFactory.create(
        chosen,
        model=model,
        api_key=env.get("ANTHROPIC_API_KEY") if chosen in ("anthropic", "claude") else None,
    )
