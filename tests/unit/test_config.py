# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for runtime settings."""

from __future__ import annotations

import json

import pytest

from permitpilot.config import Settings, load_env_files, load_settings_from_file
from permitpilot.core.policy import PolicyPreset


class TestSettings:

    def test_defaults(self, monkeypatch):
        for var in ("PERMITPILOT_PORTAL_URL", "PERMITPILOT_HEADLESS", "PERMITPILOT_POLICY_PRESET"):
            monkeypatch.delenv(var, raising=False)
        settings = Settings()
        assert settings.portal_url == "https://shapephx.phoenix.gov/s/"
        assert settings.session_file == "shape-phx-session.json"
        assert settings.headless is True
        assert settings.policy_preset == PolicyPreset.BALANCED

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("PERMITPILOT_HEADLESS", "false")
        monkeypatch.setenv("PERMITPILOT_QUEUE_DIR", "/srv/queue")
        monkeypatch.setenv("PERMITPILOT_POLICY_PRESET", "fast")
        settings = Settings()
        assert settings.headless is False
        assert settings.queue_dir == "/srv/queue"
        assert settings.policy().anchor_timeout_ms == 5000

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "permitpilot.yaml"
        path.write_text("queue_dir: ./q\nheadless: false\nllm_provider: azure\n", encoding="utf-8")
        settings = load_settings_from_file(str(path))
        assert settings.queue_dir == "./q"
        assert settings.llm_provider == "azure"

    def test_json_file(self, tmp_path):
        path = tmp_path / "permitpilot.json"
        path.write_text(json.dumps({"browser_type": "firefox"}), encoding="utf-8")
        assert load_settings_from_file(str(path)).browser_type == "firefox"

    def test_unsupported_file(self, tmp_path):
        path = tmp_path / "permitpilot.toml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ValueError):
            load_settings_from_file(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings_from_file(str(tmp_path / "absent.yaml"))


class TestDotenv:

    def test_does_not_override_environment(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text(
            "PERMITPILOT_BROWSER_TYPE=webkit\nPERMITPILOT_SCREENSHOT_DIR=/tmp/shots\n", encoding="utf-8"
        )
        monkeypatch.setenv("PERMITPILOT_BROWSER_TYPE", "firefox")
        monkeypatch.delenv("PERMITPILOT_SCREENSHOT_DIR", raising=False)
        load_env_files(base_dir=str(tmp_path))
        try:
            settings = Settings()
            assert settings.browser_type == "firefox"
            assert settings.screenshot_dir == "/tmp/shots"
        finally:
            monkeypatch.delenv("PERMITPILOT_SCREENSHOT_DIR", raising=False)
