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

"""
OpenAI and Azure OpenAI LLM providers.

Both use the Chat Completions API; Azure differs only in how the client is
built (endpoint, API version, deployment name in place of a model name).
Screenshots are sent as base64 data URLs with a configurable detail level.
"""

from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional, Union

from openai import AsyncAzureOpenAI, AsyncOpenAI

from permitpilot.exceptions import LLMProviderError
from permitpilot.llm.base import BaseLLMProvider, ImageInput, LLMResponse
from permitpilot.utils.logger import logger


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI provider using the Chat Completions API.

    Attributes:
        client: AsyncOpenAI client instance

    Example:
        >>> provider = OpenAIProvider(model="gpt-4o", api_key="sk-...")
        >>> response = await provider.generate_with_vision("Describe this page", screenshot)
    """

    provider_name = "openai"

    def __init__(self, model: str = "gpt-4o", api_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(model, api_key, **kwargs)
        self.client = self._build_client(api_key, **kwargs)

    def _build_client(self, api_key: Optional[str], **kwargs: Any) -> Any:
        base_url = kwargs.get("base_url")
        if base_url:
            return AsyncOpenAI(api_key=api_key, base_url=base_url)
        return AsyncOpenAI(api_key=api_key)

    def _messages(self, system_prompt: Optional[str], content: Any) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": content})
        return messages

    def _to_response(self, response: Any) -> LLMResponse:
        choice = response.choices[0]
        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        llm_response = LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage=usage,
            finish_reason=choice.finish_reason,
        )
        self._track_usage(llm_response)
        return llm_response

    async def _complete(
        self,
        messages: List[Dict[str, Any]],
        temperature: float,
        max_tokens: Optional[int],
        **kwargs: Any,
    ) -> Any:
        api_kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            api_kwargs["max_tokens"] = max_tokens
        if "response_format" in kwargs:
            api_kwargs["response_format"] = kwargs["response_format"]

        return await self._execute_with_rate_limit_retry(
            lambda: self.client.chat.completions.create(**api_kwargs)
        )

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a text response.

        Raises:
            LLMProviderError: If the API call fails
        """
        try:
            response = await self._complete(
                self._messages(system_prompt, prompt), temperature, max_tokens, **kwargs
            )
            return self._to_response(response)
        except Exception as e:
            logger.error(f"{self.provider_name} generation error: {e}")
            raise LLMProviderError(f"{self.provider_name} generation failed: {e}") from e

    async def generate_with_vision(
        self,
        prompt: str,
        image_data: Union[bytes, ImageInput, List[ImageInput]],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a response from a prompt and screenshots.

        Images are placed before the text in the user message. ``detail``
        (low/high/auto) applies to images that did not set their own.

        Raises:
            LLMProviderError: If the API call fails
        """
        detail = kwargs.pop("detail", None)
        images = self._normalize_images(image_data)

        content: List[Dict[str, Any]] = []
        for img in images:
            if img.source_type == "bytes":
                img_base64 = base64.b64encode(img.data).decode("utf-8")
            else:
                img_base64 = img.data
            content.append({
                "type": "image_url",
                "image_url": {
                    "url": f"data:{img.media_type};base64,{img_base64}",
                    "detail": detail or img.detail,
                },
            })
        content.append({"type": "text", "text": prompt})

        try:
            response = await self._complete(
                self._messages(system_prompt, content), temperature, max_tokens, **kwargs
            )
            return self._to_response(response)
        except Exception as e:
            logger.error(f"{self.provider_name} vision generation error: {e}")
            raise LLMProviderError(f"{self.provider_name} vision generation failed: {e}") from e


class AzureOpenAIProvider(OpenAIProvider):
    """
    Azure OpenAI provider.

    ``model`` is the Azure deployment name.

    Example:
        >>> provider = AzureOpenAIProvider(
        ...     model="gpt-4o-prod",
        ...     api_key="...",
        ...     azure_endpoint="https://example.openai.azure.com",
        ... )
    """

    provider_name = "azure"
    DEFAULT_API_VERSION = "2024-08-01-preview"

    def _build_client(self, api_key: Optional[str], **kwargs: Any) -> Any:
        endpoint = kwargs.get("azure_endpoint")
        if not endpoint:
            raise LLMProviderError("Azure OpenAI requires azure_endpoint")
        return AsyncAzureOpenAI(
            azure_endpoint=endpoint,
            api_key=api_key,
            api_version=kwargs.get("api_version") or self.DEFAULT_API_VERSION,
        )

    def supports_vision(self) -> bool:
        # Deployment names carry no model family
        return True
