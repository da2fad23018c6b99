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

"""Anthropic Claude provider implementation."""

from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional, Union

from anthropic import AsyncAnthropic

from permitpilot.exceptions import LLMProviderError
from permitpilot.llm.base import BaseLLMProvider, ImageInput, LLMResponse
from permitpilot.utils.logger import logger


class AnthropicProvider(BaseLLMProvider):
    """
    Anthropic provider using the Messages API.

    Example:
        >>> provider = AnthropicProvider(api_key="sk-ant-...")
        >>> response = await provider.generate_with_vision("Describe this page", screenshot)
    """

    provider_name = "anthropic"

    def __init__(
        self,
        model: str = "claude-sonnet-4-5-20250929",
        api_key: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(model, api_key, **kwargs)
        self.client = AsyncAnthropic(api_key=api_key)

    def _to_response(self, response: Any) -> LLMResponse:
        total_tokens = response.usage.input_tokens + response.usage.output_tokens
        llm_response = LLMResponse(
            content=response.content[0].text if response.content else "",
            model=response.model,
            usage={
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": total_tokens,
            },
            finish_reason=response.stop_reason,
        )
        self._track_usage(llm_response)
        return llm_response

    async def _create(
        self,
        content: Any,
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: Optional[int],
    ) -> Any:
        return await self._execute_with_rate_limit_retry(
            lambda: self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens or 4096,
                temperature=temperature,
                system=system_prompt or "",
                messages=[{"role": "user", "content": content}],
            )
        )

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        try:
            response = await self._create(prompt, system_prompt, temperature, max_tokens)
            return self._to_response(response)
        except Exception as e:
            logger.error(f"Anthropic generation error: {e}")
            raise LLMProviderError(f"Anthropic generation failed: {e}") from e

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
        Generate a response with screenshots.

        Images first, then text (Anthropic format). The Messages API has no
        JSON mode, so ``response_format`` is ignored and callers rely on the
        prompt to request JSON.
        """
        images = self._normalize_images(image_data)

        content: List[Dict[str, Any]] = []
        for img in images:
            if img.source_type == "bytes":
                img_base64 = base64.b64encode(img.data).decode("utf-8")
            else:
                img_base64 = img.data
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": img.media_type,
                    "data": img_base64,
                },
            })
        content.append({"type": "text", "text": prompt})

        try:
            response = await self._create(content, system_prompt, temperature, max_tokens)
            return self._to_response(response)
        except Exception as e:
            logger.error(f"Anthropic vision generation error: {e}")
            raise LLMProviderError(f"Anthropic vision generation failed: {e}") from e
