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

"""LLM provider abstraction for screenshot analysis."""

from permitpilot.llm.anthropic_provider import AnthropicProvider
from permitpilot.llm.base import BaseLLMProvider, ImageInput, LLMResponse, extract_json_text
from permitpilot.llm.config import LLMProviderConfig, LLMProviderType, RetryConfig
from permitpilot.llm.factory import LLMProviderFactory, create_provider_from_env
from permitpilot.llm.openai_provider import AzureOpenAIProvider, OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "AzureOpenAIProvider",
    "BaseLLMProvider",
    "ImageInput",
    "LLMProviderConfig",
    "LLMProviderFactory",
    "LLMProviderType",
    "LLMResponse",
    "OpenAIProvider",
    "RetryConfig",
    "create_provider_from_env",
    "extract_json_text",
]
