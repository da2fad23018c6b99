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

"""LLM provider configuration management."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class LLMProviderType(str, Enum):
    """Supported LLM provider types."""

    OPENAI = "openai"
    AZURE = "azure"
    ANTHROPIC = "anthropic"


class RetryConfig(BaseModel):
    """Rate-limit retry configuration for LLM requests."""

    max_retries: int = Field(default=3, ge=0, le=10)
    initial_delay: float = Field(default=1.0, ge=0.1, le=60.0)
    max_delay: float = Field(default=60.0, ge=1.0, le=300.0)


class LLMProviderConfig(BaseModel):
    """Configuration for an LLM provider."""

    provider_type: LLMProviderType
    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = Field(default=60.0, ge=1.0, le=300.0)

    # Azure OpenAI
    azure_endpoint: Optional[str] = Field(default=None, validate_default=True)
    api_version: Optional[str] = None

    retry_config: RetryConfig = Field(default_factory=RetryConfig)
    extra_options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("azure_endpoint")
    @classmethod
    def validate_azure_endpoint(cls, v: Optional[str], info: Any) -> Optional[str]:
        """Azure deployments are unreachable without an endpoint."""
        if info.data.get("provider_type") == LLMProviderType.AZURE and not v:
            raise ValueError("azure_endpoint is required for the azure provider")
        return v


# Screenshot analysis settings per provider
DEFAULT_CONFIGS = {
    LLMProviderType.OPENAI: {
        "model": "gpt-4o",
        "max_tokens": 2000,
    },
    LLMProviderType.AZURE: {
        "model": "gpt-4o",
        "api_version": "2024-08-01-preview",
        "max_tokens": 2000,
    },
    LLMProviderType.ANTHROPIC: {
        "model": "claude-sonnet-4-5-20250929",
        "max_tokens": 2000,
    },
}
