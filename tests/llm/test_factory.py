# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for provider creation."""

from __future__ import annotations

import pytest

from permitpilot.exceptions import ConfigurationError
from permitpilot.llm.anthropic_provider import AnthropicProvider
from permitpilot.llm.config import LLMProviderConfig, LLMProviderType
from permitpilot.llm.factory import LLMProviderFactory, create_provider_from_env
from permitpilot.llm.openai_provider import AzureOpenAIProvider, OpenAIProvider

AZURE_ENV = {
    "AZURE_OPENAI_ENDPOINT": "https://permits.openai.azure.com",
    "AZURE_OPENAI_API_KEY": "azure-key",
    "AZURE_OPENAI_DEPLOYMENT": "gpt-4o-permits",
}


class TestLLMProviderFactory:

    def test_openai_default_model(self):
        provider = LLMProviderFactory.create("openai", api_key="sk-test")
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o"
        assert provider.vision_enabled is True

    def test_aliases(self):
        assert isinstance(LLMProviderFactory.create("claude", api_key="sk-ant-test"), AnthropicProvider)
        provider = LLMProviderFactory.create(
            "azure_openai", model="gpt-4o-prod", api_key="k", azure_endpoint="https://x.openai.azure.com"
        )
        assert isinstance(provider, AzureOpenAIProvider)

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            LLMProviderFactory.create("ollama")

    def test_vision_override(self):
        provider = LLMProviderFactory.create("openai", model="gpt-3.5-turbo", api_key="sk-test")
        assert provider.vision_enabled is False
        provider = LLMProviderFactory.create("openai", model="gpt-3.5-turbo", api_key="sk-test", vision_enabled=True)
        assert provider.vision_enabled is True

    def test_from_config(self):
        config = LLMProviderConfig(
            provider_type=LLMProviderType.AZURE,
            model="gpt-4o-prod",
            api_key="k",
            azure_endpoint="https://x.openai.azure.com",
        )
        provider = LLMProviderFactory.create_from_config(config)
        assert isinstance(provider, AzureOpenAIProvider)
        assert provider.model == "gpt-4o-prod"

    def test_azure_config_needs_endpoint(self):
        with pytest.raises(ValueError):
            LLMProviderConfig(provider_type=LLMProviderType.AZURE, model="gpt-4o")

    def test_register_rejects_foreign_class(self):
        with pytest.raises(ValueError):
            LLMProviderFactory.register_provider("custom", dict)


class TestCreateProviderFromEnv:

    def test_openai_first(self):
        environ = {"OPENAI_API_KEY": "sk-test", "ANTHROPIC_API_KEY": "sk-ant-test", **AZURE_ENV}
        provider = create_provider_from_env(environ=environ)
        assert isinstance(provider, OpenAIProvider)
        assert not isinstance(provider, AzureOpenAIProvider)

    def test_azure_before_anthropic(self):
        provider = create_provider_from_env(environ={"ANTHROPIC_API_KEY": "sk-ant-test", **AZURE_ENV})
        assert isinstance(provider, AzureOpenAIProvider)
        assert provider.model == "gpt-4o-permits"

    def test_anthropic(self):
        provider = create_provider_from_env(environ={"ANTHROPIC_API_KEY": "sk-ant-test"})
        assert isinstance(provider, AnthropicProvider)
        assert provider.api_key == "sk-ant-test"

    def test_explicit_provider_and_model(self):
        environ = {"OPENAI_API_KEY": "sk-test", "OPENAI_MODEL": "gpt-4.1"}
        assert create_provider_from_env("openai", environ=environ).model == "gpt-4.1"
        assert create_provider_from_env("openai", model="gpt-4o-mini", environ=environ).model == "gpt-4o-mini"

    def test_azure_requires_endpoint(self):
        with pytest.raises(ConfigurationError):
            create_provider_from_env("azure", environ={"AZURE_OPENAI_API_KEY": "k"})

    def test_nothing_configured(self):
        with pytest.raises(ConfigurationError):
            create_provider_from_env(environ={})
