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
Runtime settings for PermitPilot.

Settings are read from ``PERMITPILOT_*`` environment variables (after
``.env`` and ``.env.local`` are loaded) or from a YAML/JSON file. LLM
credentials are not part of the settings: providers read their own standard
variables (``OPENAI_API_KEY``, ``AZURE_OPENAI_*``, ``ANTHROPIC_API_KEY``).

Example:
    >>> from permitpilot.config import get_settings
    >>> settings = get_settings()
    >>> settings.portal_url
    'https://shapephx.phoenix.gov/s/'
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional, Sequence

import yaml
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

from permitpilot.core.policy import OrchestratorPolicy, PolicyPreset

DOTENV_FILES = (".env", ".env.local")


class Settings(BaseSettings):
    """PermitPilot runtime settings."""

    portal_url: str = Field(default="https://shapephx.phoenix.gov/s/", description="Portal entry URL")
    session_file: str = Field(default="shape-phx-session.json", description="Saved portal session")
    screenshot_dir: str = Field(default="./screenshots", description="Screenshot output directory")
    checkpoint_dir: str = Field(default="./checkpoints", description="Checkpoint directory")
    queue_dir: str = Field(default="./queue", description="Submission queue directory")
    download_dir: str = Field(default="./downloads", description="Issued permit PDF directory")

    headless: bool = Field(default=True, description="Run the browser without a window")
    browser_type: str = Field(default="chromium", description="chromium, firefox or webkit")

    llm_provider: Optional[str] = Field(default=None, description="openai, azure or anthropic; auto if unset")
    llm_model: Optional[str] = Field(default=None, description="Model or deployment name")

    policy_preset: PolicyPreset = Field(default=PolicyPreset.BALANCED, description="Timeout preset")

    model_config = {
        "env_prefix": "PERMITPILOT_",
        "case_sensitive": False,
        "extra": "ignore",
    }

    def policy(self) -> OrchestratorPolicy:
        """Policy for the configured preset, with ``PERMITPILOT_POLICY_*`` overrides."""
        return OrchestratorPolicy.from_env(self.policy_preset)


def load_env_files(files: Sequence[str] = DOTENV_FILES, base_dir: Optional[str] = None) -> None:
    """Load dotenv files without overriding variables already set."""
    root = Path(base_dir) if base_dir else Path.cwd()
    for name in files:
        path = root / name
        if path.exists():
            load_dotenv(path, override=False)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings, loading dotenv files on first use."""
    global _settings
    if _settings is None:
        load_env_files()
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    global _settings
    _settings = Settings()
    return _settings


def load_settings_from_file(path: str) -> Settings:
    """
    Load settings from a YAML or JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file format is unsupported
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Settings file not found: {path}")

    with open(path, "r") as f:
        if path.endswith(".yaml") or path.endswith(".yml"):
            data = yaml.safe_load(f) or {}
        elif path.endswith(".json"):
            data = json.load(f)
        else:
            raise ValueError(f"Unsupported settings file format: {path}")

    global _settings
    _settings = Settings(**data)
    return _settings
