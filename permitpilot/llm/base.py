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
Base LLM provider interface.

This module defines the abstract base class for the vision-capable language
model providers used to analyze portal screenshots, plus the LLMResponse and
ImageInput value types shared by all providers.

Providers implement two calls:
- generate(): text-only generation
- generate_with_vision(): generation with one or more screenshots

Rate-limit (HTTP 429) retries with exponential backoff and jitter are provided
here so every provider handles them the same way.
"""

from __future__ import annotations

import asyncio
import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from permitpilot.utils.logger import logger

# Model families known to accept image input
VISION_MODEL_PREFIXES = (
    "gpt-4o",
    "gpt-4.1",
    "gpt-4-turbo",
    "gpt-4-vision",
    "gpt-5",
    "o1",
    "o3",
    "o4",
    "claude-3",
    "claude-sonnet-4",
    "claude-opus-4",
    "claude-haiku-4",
)


@dataclass
class ImageInput:
    """
    An image passed to a vision-capable model.

    Attributes:
        data: Image bytes or a base64 string
        media_type: MIME type (e.g. "image/png")
        detail: OpenAI detail level ("low", "high", "auto")
        source_type: "bytes" or "base64"
    """

    data: Union[bytes, str]
    media_type: str = "image/png"
    detail: str = "auto"
    source_type: str = "bytes"

    @classmethod
    def from_bytes(cls, data: bytes, media_type: str = "image/png", detail: str = "auto") -> "ImageInput":
        return cls(data=data, media_type=media_type, detail=detail, source_type="bytes")

    @classmethod
    def from_base64(cls, data: str, media_type: str = "image/png", detail: str = "auto") -> "ImageInput":
        return cls(data=data, media_type=media_type, detail=detail, source_type="base64")


@dataclass
class LLMResponse:
    """
    Standardized response from an LLM provider.

    Attributes:
        content: Generated text
        model: Model that produced it
        usage: prompt_tokens, completion_tokens, total_tokens
        finish_reason: e.g. "stop" or "length"
    """

    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None


def extract_json_text(content: str) -> str:
    """
    Strip markdown fences and surrounding prose from a JSON answer.

    Returns the substring from the first ``{`` to the last ``}`` when both are
    present, otherwise the stripped content unchanged.
    """
    text = (content or "").strip()
    if text.startswith("```"):
        fenced = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
        if fenced:
            text = fenced.group(1).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        text = text[start:end + 1]
    return text


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Attributes:
        model: Model name or deployment name
        api_key: Provider API key
        extra_config: Provider-specific options

    Example:
        >>> class MyProvider(BaseLLMProvider):
        ...     async def generate(self, prompt, **kwargs):
        ...         ...
        ...     async def generate_with_vision(self, prompt, image_data, **kwargs):
        ...         ...
    """

    provider_name = "base"

    def __init__(self, model: str, api_key: Optional[str] = None, **kwargs: Any) -> None:
        self.model = model
        self.api_key = api_key
        self.extra_config = kwargs
        # None = detect from model name, True/False = explicit override
        self._vision_enabled_override: Optional[bool] = kwargs.get("vision_enabled")
        self._session_calls = 0
        self._session_total_tokens = 0

    def supports_vision(self) -> bool:
        model_lower = self.model.lower()
        return any(model_lower.startswith(prefix) for prefix in VISION_MODEL_PREFIXES)

    @property
    def vision_enabled(self) -> bool:
        """Explicit override first, then detection from the model name."""
        if self._vision_enabled_override is not None:
            return self._vision_enabled_override
        return self.supports_vision()

    async def _execute_with_rate_limit_retry(
        self,
        api_call: Callable[[], Awaitable[Any]],
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
    ) -> Any:
        """
        Execute an API call, retrying only on rate-limit errors.

        Backoff is exponential with +/-25% jitter; a "retry after N s" hint in
        the error message takes precedence. Any other error propagates
        immediately.
        """
        for attempt in range(max_retries + 1):
            try:
                return await api_call()
            except Exception as e:
                error_str = str(e).lower()
                is_rate_limit = (
                    ("rate" in error_str and "limit" in error_str)
                    or getattr(e, "status_code", None) == 429
                    or "429" in error_str
                )
                if not is_rate_limit or attempt >= max_retries:
                    raise

                delay = min(base_delay * (2 ** attempt), max_delay)
                retry_match = re.search(r"retry.*?(\d+\.?\d*)\s*s", error_str)
                if retry_match:
                    delay = min(float(retry_match.group(1)), max_delay)
                delay = max(0.1, delay + delay * 0.25 * (2 * random.random() - 1))

                logger.warning(
                    f"[{self.__class__.__name__}] Rate limit hit (attempt {attempt + 1}/{max_retries + 1}). "
                    f"Waiting {delay:.2f}s before retry..."
                )
                await asyncio.sleep(delay)

        raise RuntimeError("Unexpected state in rate limit retry")

    def _track_usage(self, response: LLMResponse) -> None:
        self._session_calls += 1
        if response.usage:
            self._session_total_tokens += response.usage.get("total_tokens", 0)

    def get_session_usage(self) -> Dict[str, Any]:
        return {
            "calls": self._session_calls,
            "total_tokens": self._session_total_tokens,
        }

    def _normalize_images(
        self, image_data: Union[bytes, ImageInput, List[Union[bytes, ImageInput]]]
    ) -> List[ImageInput]:
        if isinstance(image_data, bytes):
            return [ImageInput.from_bytes(image_data)]
        elif isinstance(image_data, ImageInput):
            return [image_data]
        elif isinstance(image_data, list):
            result = []
            for item in image_data:
                if isinstance(item, bytes):
                    result.append(ImageInput.from_bytes(item))
                elif isinstance(item, ImageInput):
                    result.append(item)
                else:
                    raise ValueError(f"Unsupported image item type in list: {type(item)}")
            return result
        else:
            raise ValueError(f"Unsupported image_data type: {type(image_data)}")

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate a text response."""
        pass

    @abstractmethod
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
        Generate a response from text plus one or more images.

        Args:
            prompt: User prompt
            image_data: Screenshot bytes, an ImageInput, or a list of ImageInput
            system_prompt: System prompt
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            **kwargs: Provider-specific parameters (e.g. response_format)
        """
        pass
